"""
Prompt templates for the autonomous run phases.

This module provides the templates compiled by the scheduler for:
- Request analysis
- Task planning
- Task execution (plain and with remote actions)
- Result synthesis

Templates may be registered per provider and per model; lookup falls back from
the most specific registration to the default one.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from string import Template
from typing import Any, Dict, List, Optional, Tuple

from autonomy.core.errors import PromptTemplateMissing

logger = logging.getLogger(__name__)


class PromptKind(str, Enum):
    """Phase a prompt belongs to."""

    ANALYSIS = "analysis"
    PLANNING = "planning"
    EXECUTION = "execution"
    REMOTE_EXECUTION = "remote_execution"
    SYNTHESIS = "synthesis"


class PromptTemplate:
    """
    A template for generating prompts with variable substitution.

    Example:
        ```python
        template = PromptTemplate(
            kind=PromptKind.ANALYSIS,
            template="Analyze this request: ${user_request}",
            variables=["user_request"]
        )
        prompt = template.render(user_request="Build a two-step report")
        ```
    """

    def __init__(
        self,
        kind: PromptKind,
        template: str,
        variables: List[str],
        description: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ):
        """
        Initialize a prompt template.

        Args:
            kind: Phase this template serves
            template: Template string with ${variable} placeholders
            variables: Variable names the template expects
            description: Optional description of template purpose
            provider: Restrict the template to one provider
            model: Restrict the template to one model (requires provider)
        """
        self.kind = kind
        self.template_str = template
        self.variables = variables
        self.description = description
        self.provider = provider
        self.model = model
        self._template = Template(template)

    def render(self, **kwargs) -> str:
        """
        Render the template with provided variables.

        Missing variables are logged and left as placeholders.
        """
        missing = set(self.variables) - set(kwargs.keys())
        if missing:
            logger.warning(
                f"Variables {sorted(missing)} not provided for template '{self.kind.value}'"
            )
        return self._template.safe_substitute(**{k: _stringify(v) for k, v in kwargs.items()})

    @property
    def key(self) -> Tuple[str, Optional[str], Optional[str]]:
        return (self.kind.value, self.provider, self.model)


@dataclass
class CompiledPrompt:
    """A rendered prompt ready for the reasoning backend."""

    kind: PromptKind
    content: str
    variables: Dict[str, Any] = field(default_factory=dict)
    system: Optional[str] = None


def _stringify(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


class PromptManager:
    """
    Registry and compiler for prompt templates.

    Example:
        ```python
        manager = PromptManager()
        compiled = manager.compile_prompt(
            PromptKind.ANALYSIS,
            {"user_request": "Summarize last quarter's incidents"},
        )
        ```
    """

    def __init__(self, register_defaults: bool = True):
        self._templates: Dict[Tuple[str, Optional[str], Optional[str]], PromptTemplate] = {}
        if register_defaults:
            for template in DEFAULT_TEMPLATES:
                self.register_template(template)

    def register_template(self, template: PromptTemplate):
        """Register (or replace) a template under its kind/provider/model key."""
        if template.model and not template.provider:
            raise ValueError("A model-specific template must also name its provider")
        self._templates[template.key] = template
        logger.debug(f"Registered prompt template {template.key}")

    def get_template(
        self,
        kind: PromptKind,
        provider: Optional[str] = None,
        model: Optional[str] = None
    ) -> Optional[PromptTemplate]:
        """
        Look up a template: model-specific, then provider-specific, then default.

        Returns:
            The template, or None if nothing is registered for the kind
        """
        if provider and model:
            specific = self._templates.get((kind.value, provider, model))
            if specific:
                return specific
        if provider:
            by_provider = self._templates.get((kind.value, provider, None))
            if by_provider:
                return by_provider
        return self._templates.get((kind.value, None, None))

    def compile_prompt(
        self,
        kind: PromptKind,
        variables: Dict[str, Any],
        provider: Optional[str] = None,
        model: Optional[str] = None,
        system: Optional[str] = None
    ) -> CompiledPrompt:
        """
        Render the template for a phase.

        Raises:
            PromptTemplateMissing: No template registered for the kind
        """
        template = self.get_template(kind, provider, model)
        if template is None:
            raise PromptTemplateMissing(kind.value, provider, model)

        return CompiledPrompt(
            kind=kind,
            content=template.render(**variables).strip(),
            variables=dict(variables),
            system=system if system is not None else AUTONOMY_SYSTEM_PROMPT,
        )

    def list_templates(self) -> List[Tuple[str, Optional[str], Optional[str]]]:
        return sorted(self._templates.keys(), key=lambda k: (k[0], k[1] or "", k[2] or ""))


# ============================================================================
# SYSTEM PROMPT
# ============================================================================

AUTONOMY_SYSTEM_PROMPT = """You are an autonomous assistant that works through requests without
continuous human supervision. You must:

1. Understand the request in depth
2. Break complex problems into manageable tasks
3. Carry out those tasks methodically
4. Base decisions on context and intermediate results
5. Adapt the plan when new information appears
6. Produce complete, accurate and useful results
7. Explain your reasoning and document your process

Only ask for clarification when an ambiguity is critical. When a response format
is specified, follow it exactly."""


# ============================================================================
# PHASE TEMPLATES
# ============================================================================

ANALYSIS_TEMPLATE = PromptTemplate(
    kind=PromptKind.ANALYSIS,
    description="Understand the intent, domains and complexity of a request",
    variables=["user_request"],
    template="""# Request Analysis

## User Request
"${user_request}"

## Instructions
1. Analyze the request in depth
2. Identify the main objective
3. Determine the knowledge domains involved
4. Identify explicit and implicit constraints
5. Rate the complexity (simple, medium, complex)

## Response Format
Respond with JSON only:
```json
{
  "mainObjective": "Main objective of the request",
  "knowledgeDomains": ["domain1", "domain2"],
  "constraints": ["constraint1", "constraint2"],
  "complexity": "simple|medium|complex",
  "clarificationNeeded": false,
  "clarificationQuestions": []
}
```""",
)

PLANNING_TEMPLATE = PromptTemplate(
    kind=PromptKind.PLANNING,
    description="Decompose an analyzed request into dependent tasks",
    variables=["analysis_result"],
    template="""# Task Planning

## Request Analysis
${analysis_result}

## Instructions
1. Break the main objective into executable tasks
2. Order them logically
3. Declare dependencies between tasks (by task id, within this plan only)
4. Estimate the time for each task in minutes
5. List the tools each task needs

Dependencies must not form a cycle.

## Response Format
Respond with JSON only:
```json
{
  "tasks": [
    {
      "id": "task-1",
      "description": "What to do",
      "dependencies": [],
      "estimatedTime": "10",
      "tools": ["tool1"],
      "expectedOutput": "What the task produces"
    }
  ]
}
```""",
)

EXECUTION_TEMPLATE = PromptTemplate(
    kind=PromptKind.EXECUTION,
    description="Execute one planned task",
    variables=["task_id", "task_description", "available_tools", "request_context"],
    template="""# Task Execution

## Task
${task_description}

## Available Tools
${available_tools}

## Request Context
${request_context}

## Instructions
1. Carry out the task using the available tools
2. Document each step
3. If you hit an obstacle, work around it or explain why it is impossible
4. Produce a result that meets the expected output

## Response Format
Respond with JSON only:
```json
{
  "taskId": "${task_id}",
  "steps": [
    {"stepNumber": 1, "description": "Step", "toolUsed": null, "result": "Step result"}
  ],
  "outcome": "success|partial|failure",
  "result": "Final result of the task",
  "issues": []
}
```""",
)

REMOTE_EXECUTION_TEMPLATE = PromptTemplate(
    kind=PromptKind.REMOTE_EXECUTION,
    description="Execute one planned task through remote-control actions",
    variables=["task_id", "task_description", "available_actions", "request_context"],
    template="""# Task Execution with Remote Control

## Task
${task_description}

## Remote Actions Available
${available_actions}

## Request Context
${request_context}

## Instructions
1. Inspect the current screen state before acting
2. Plan the remote actions needed to accomplish the task
3. Propose actions in the order they must run
4. Never propose destructive actions or access sensitive files without explicit consent

## Response Format
Respond with JSON only:
```json
{
  "taskId": "${task_id}",
  "actions": [
    {"actionType": "screenshot", "parameters": {}, "purpose": "Inspect the screen"}
  ],
  "outcome": "success|partial|failure",
  "result": "Final result of the task",
  "issues": []
}
```""",
)

SYNTHESIS_TEMPLATE = PromptTemplate(
    kind=PromptKind.SYNTHESIS,
    description="Combine task results into the final answer",
    variables=["user_request", "task_results"],
    template="""# Result Synthesis

## Original Request
${user_request}

## Task Results
${task_results}

## Instructions
1. Review the results of every task, including failed ones
2. Combine them into a coherent answer to the original request
3. Check the answer addresses the request
4. Present it clearly, with:
   - A summary of the actions taken
   - The main results
   - Recommendations where appropriate
   - Limitations or caveats, including tasks that failed""",
)

DEFAULT_TEMPLATES = [
    ANALYSIS_TEMPLATE,
    PLANNING_TEMPLATE,
    EXECUTION_TEMPLATE,
    REMOTE_EXECUTION_TEMPLATE,
    SYNTHESIS_TEMPLATE,
]
