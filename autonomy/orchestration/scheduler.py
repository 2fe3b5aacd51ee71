"""
Autonomous run scheduler.

Drives one request through four phases:

1. Analysis: the request (optionally enhanced from the experience network) is
   analysed into an objective, domains, constraints and a complexity tier.
2. Planning: the analysis is decomposed into a dependency-ordered task plan,
   which is materialized into the task graph store.
3. Execution: ready tasks run concurrently, each through the execution
   prompt (or the remote execution prompt when it needs remote control).
   A failing task is recorded and never aborts the run.
4. Synthesis: per-task outcomes are combined into the final answer.

The session tracker records each phase, its progress and a timestamped log.
"""

import asyncio
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from autonomy.collective.network import ExperienceNetwork
from autonomy.config import SchedulerConfig
from autonomy.core.errors import (
    InvalidTransition,
    MalformedResponse,
    RunCancelled,
    Unreachable,
)
from autonomy.core.prompts import PromptKind, PromptManager
from autonomy.core.reasoning import ReasoningOperation, RetryPolicy, invoke_reasoning
from autonomy.core.workflow import AutonomySession, SessionStatus, SessionTracker
from autonomy.models.experience import ExperienceMetadata
from autonomy.models.responses import ExecutionOutcome, PlannedTask, RequestAnalysis, TaskPlan
from autonomy.models.task import Failure, Outcome, Success, Task, TaskSpec, TaskStatus, UserRequest
from autonomy.orchestration.parsing import parse_analysis, parse_execution_report, parse_plan
from autonomy.orchestration.remote import CapabilityService, RemoteActionExecutor, describe_actions
from autonomy.orchestration.task_graph import TaskGraphStore

logger = logging.getLogger(__name__)


TOOL_CATALOGUE: List[Dict[str, str]] = [
    {"name": "search", "description": "Search the web for information"},
    {"name": "calculate", "description": "Perform mathematical calculations"},
    {"name": "remote_control", "description": "Control the user's computer (when permitted)"},
]

REMOTE_TOOL = "remote_control"

# Session progress reached on entering each phase
PHASE_PROGRESS = {
    SessionStatus.ANALYZING: 10,
    SessionStatus.PLANNING: 25,
    SessionStatus.EXECUTING: 40,
    SessionStatus.SYNTHESIZING: 80,
    SessionStatus.COMPLETED: 100,
}


@dataclass
class RunResult:
    """Result of a completed autonomous run."""

    session_id: str
    request_id: str
    output: str
    analysis: RequestAnalysis
    plan: TaskPlan
    # Keyed by plan-local task id, in plan order
    outcomes: Dict[str, Outcome] = field(default_factory=dict)
    # Plan-local task id -> store task id
    task_ids: Dict[str, str] = field(default_factory=dict)
    experience_node_id: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes.values() if not o.ok)


class AutonomyScheduler:
    """
    Runs requests autonomously over injected collaborators.

    Example:
        ```python
        scheduler = AutonomyScheduler(
            reasoning=ProviderReasoning(get_provider_from_config(get_config())),
            network=ExperienceNetwork(),
        )
        result = asyncio.run(scheduler.run(UserRequest(content="Build a two-step report")))
        print(result.output)
        ```
    """

    def __init__(
        self,
        reasoning: ReasoningOperation,
        prompt_manager: Optional[PromptManager] = None,
        store: Optional[TaskGraphStore] = None,
        tracker: Optional[SessionTracker] = None,
        network: Optional[ExperienceNetwork] = None,
        capability: Optional[CapabilityService] = None,
        config: Optional[SchedulerConfig] = None,
        action_delay: float = 0.0
    ):
        """
        Initialize the scheduler.

        Args:
            reasoning: Text generation used at every phase
            prompt_manager: Prompt templates (defaults registered if omitted)
            store: Task graph store, shareable between schedulers
            tracker: Session tracker, shareable between schedulers
            network: Experience network for prompt enhancement and recording
            capability: Remote-control service; remote tasks need it
            config: Scheduler settings
            action_delay: Pause between remote actions (seconds)
        """
        self.reasoning = reasoning
        self.prompt_manager = prompt_manager or PromptManager()
        self.store = store or TaskGraphStore()
        self.tracker = tracker or SessionTracker()
        self.network = network
        self.config = config or SchedulerConfig()
        self.remote_executor = (
            RemoteActionExecutor(capability, action_delay=action_delay) if capability else None
        )

        self.retry_policy = RetryPolicy(
            max_retries=self.config.reasoning_max_retries,
            base_delay=self.config.reasoning_retry_delay,
        )

        self._cancel_reasons: Dict[str, str] = {}
        self._wakeups: Dict[str, Tuple[asyncio.AbstractEventLoop, asyncio.Event]] = {}
        self._lock = threading.Lock()

        logger.info(
            f"AutonomyScheduler initialized (reasoning={reasoning.provider_id}/{reasoning.model_id}, "
            f"network={'on' if network else 'off'}, remote={'on' if capability else 'off'})"
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def run(self, request: Union[UserRequest, str]) -> RunResult:
        """
        Execute a request end to end.

        Args:
            request: Request (or its text)

        Returns:
            RunResult with the synthesized output and per-task outcomes

        Raises:
            MalformedResponse: Analysis, planning or synthesis output unusable
            CyclicDependency: The plan contains a cycle
            Unreachable: Pending tasks can never become ready
            RunCancelled: The session was cancelled
            ReasoningTimeout, ProviderAPIError: A phase-level reasoning call failed
        """
        if isinstance(request, str):
            request = UserRequest(content=request)

        session = self.tracker.create_session(request.id, request.content)
        session_id = session.id
        logger.info(f"Starting autonomous run {session_id} for request {request.id}")

        try:
            self._advance(session_id, SessionStatus.ANALYZING, "Analyzing user request...")
            analysis = await self._analyze(request, session_id)

            self._advance(session_id, SessionStatus.PLANNING, "Planning tasks...")
            plan = await self._plan(analysis, session_id)
            task_ids = self._materialize(request, plan, session_id)

            self._advance(session_id, SessionStatus.EXECUTING, "Executing planned tasks...")
            outcomes = await self._execute_tasks(request, analysis, plan, task_ids, session_id)

            self._advance(session_id, SessionStatus.SYNTHESIZING, "Synthesizing results...")
            output = await self._synthesize(request, outcomes, session_id)

            self._advance(session_id, SessionStatus.COMPLETED, "Autonomous run completed successfully.")

        except Exception as e:
            current = self.tracker.get_session(session_id)
            if current is not None and not current.status.is_terminal:
                self.tracker.transition(
                    session_id, SessionStatus.FAILED, 100, f"Autonomous run failed: {e}"
                )
            logger.error(f"Autonomous run {session_id} failed: {e}")
            raise

        finally:
            with self._lock:
                self._cancel_reasons.pop(session_id, None)

        result = RunResult(
            session_id=session_id,
            request_id=request.id,
            output=output,
            analysis=analysis,
            plan=plan,
            outcomes=outcomes,
            task_ids=task_ids,
        )
        result.experience_node_id = self._record_experience(request, analysis, result)

        logger.info(
            f"Autonomous run {session_id} completed: "
            f"{result.succeeded} succeeded, {result.failed} failed"
        )
        return result

    def cancel(self, session_id: str, reason: str = "cancelled by caller") -> bool:
        """
        Cancel a running session.

        The session is marked failed immediately. The run stops at its next
        checkpoint; reasoning calls already in flight are awaited.

        Returns:
            True if the session was running and is now cancelled
        """
        session = self.tracker.get_session(session_id)
        if session is None or session.status.is_terminal:
            return False

        with self._lock:
            self._cancel_reasons[session_id] = reason
            wakeup = self._wakeups.get(session_id)

        # Reason is recorded first so the run sees it when its own transition fails
        try:
            self.tracker.transition(session_id, SessionStatus.FAILED, 100, f"Cancelled: {reason}")
        except InvalidTransition:
            with self._lock:
                self._cancel_reasons.pop(session_id, None)
            return False

        if wakeup is not None:
            loop, event = wakeup
            loop.call_soon_threadsafe(event.set)

        logger.info(f"Session {session_id} cancelled: {reason}")
        return True

    def get_session(self, session_id: str) -> Optional[AutonomySession]:
        return self.tracker.get_session(session_id)

    def get_sessions_by_request(self, request_id: str) -> List[AutonomySession]:
        return self.tracker.get_sessions_by_request(request_id)

    # ========================================================================
    # PHASES
    # ========================================================================

    async def _analyze(self, request: UserRequest, session_id: str) -> RequestAnalysis:
        user_request = request.content
        if self.network is not None:
            user_request = self.network.enhance_prompt(request.content, request.user_id)
            if user_request != request.content:
                self.tracker.log(session_id, "Request enhanced with a similar past experience")

        text = await self._invoke(PromptKind.ANALYSIS, {"user_request": user_request})
        analysis = parse_analysis(text)

        self.tracker.log(
            session_id,
            f"Main objective: {analysis.main_objective} (complexity: {analysis.complexity.value})"
        )
        if analysis.clarification_needed:
            questions = "; ".join(analysis.clarification_questions) or "none given"
            self.tracker.log(session_id, f"Clarification suggested, continuing anyway: {questions}")

        return analysis

    async def _plan(self, analysis: RequestAnalysis, session_id: str) -> TaskPlan:
        analysis_result = analysis.model_dump_json(by_alias=True, indent=2)
        text = await self._invoke(PromptKind.PLANNING, {"analysis_result": analysis_result})
        plan = parse_plan(text)
        self.tracker.log(session_id, f"Planned {len(plan.tasks)} tasks")
        return plan

    def _materialize(self, request: UserRequest, plan: TaskPlan, session_id: str) -> Dict[str, str]:
        """Insert the plan into the store in one batch; returns plan id -> store id."""
        task_ids = {planned.id: str(uuid.uuid4()) for planned in plan.tasks}
        specs = [
            TaskSpec(
                description=planned.description,
                dependencies=[task_ids[dep] for dep in planned.dependencies],
                task_id=task_ids[planned.id],
            )
            for planned in plan.tasks
        ]
        self.store.create_tasks(request.id, specs, session_id=session_id)
        return task_ids

    async def _execute_tasks(
        self,
        request: UserRequest,
        analysis: RequestAnalysis,
        plan: TaskPlan,
        task_ids: Dict[str, str],
        session_id: str
    ) -> Dict[str, Outcome]:
        """
        Run every task of the plan, respecting dependencies.

        Ready tasks are launched up to ``max_parallel_tasks`` at a time. The
        loop wakes on store notifications, with a backoff timeout as a
        fallback, and ends when no task is ready or running.
        """
        planned_by_store_id = {task_ids[p.id]: p for p in plan.tasks}
        outcomes: Dict[str, Outcome] = {}
        in_flight: Dict[str, asyncio.Task] = {}

        loop = asyncio.get_running_loop()
        wakeup = asyncio.Event()

        def on_task_change(task: Task):
            if task.session_id == session_id:
                loop.call_soon_threadsafe(wakeup.set)

        self.store.add_listener(on_task_change)
        with self._lock:
            self._wakeups[session_id] = (loop, wakeup)

        delay = self.config.poll_initial_delay
        try:
            while not self._is_cancelled(session_id):
                wakeup.clear()

                for store_id in [tid for tid, t in in_flight.items() if t.done()]:
                    await in_flight.pop(store_id)

                capacity = self.config.max_parallel_tasks - len(in_flight)
                ready = self.store.get_next_executable_tasks(request.id, session_id)
                for task in ready[:max(capacity, 0)]:
                    planned = planned_by_store_id[task.id]
                    self.store.start_task(task.id)
                    self.tracker.set_current_task(session_id, task.id)
                    self.tracker.log(session_id, f"Starting task {planned.id}: {planned.description}")
                    in_flight[task.id] = asyncio.create_task(
                        self._run_task(request, analysis, planned, task.id, outcomes, session_id)
                    )

                if not in_flight:
                    self._resolve_stall(request, planned_by_store_id, outcomes, session_id)
                    break

                try:
                    await asyncio.wait_for(wakeup.wait(), timeout=delay)
                    delay = self.config.poll_initial_delay
                except asyncio.TimeoutError:
                    delay = min(delay * 2, self.config.poll_max_delay)

        finally:
            self.store.remove_listener(on_task_change)
            with self._lock:
                self._wakeups.pop(session_id, None)
            if in_flight:
                await asyncio.gather(*in_flight.values(), return_exceptions=True)

        self._check_cancelled(session_id)
        self.tracker.set_current_task(session_id, None)

        return {p.id: outcomes[p.id] for p in plan.tasks if p.id in outcomes}

    def _resolve_stall(
        self,
        request: UserRequest,
        planned_by_store_id: Dict[str, PlannedTask],
        outcomes: Dict[str, Outcome],
        session_id: str
    ):
        """
        Account for pending tasks once nothing is ready or running.

        Tasks blocked by a failed dependency get a Failure outcome. Any other
        pending task has a dependency that can never complete.
        """
        if self.store.are_all_tasks_completed(request.id, session_id):
            return

        pending = self.store.get_tasks(request.id, session_id, status=TaskStatus.PENDING)
        blocked = self.store.get_blocked_tasks(request.id, session_id)
        blocked_ids = {t.id for t in blocked}

        unresolved = [t.id for t in pending if t.id not in blocked_ids]
        if unresolved:
            raise Unreachable(
                f"{len(unresolved)} pending tasks can never become ready: {unresolved}"
            )

        for task in blocked:
            planned = planned_by_store_id[task.id]
            failed_deps = [
                planned_by_store_id[d].id
                for d in task.dependencies
                if d in planned_by_store_id and (
                    d in blocked_ids or self.store.get_task(d).status == TaskStatus.FAILED
                )
            ]
            error = f"blocked by failed dependency: {', '.join(failed_deps)}"
            outcomes[planned.id] = Failure(error)
            self.tracker.log(session_id, f"Task {planned.id} skipped, {error}")

    async def _run_task(
        self,
        request: UserRequest,
        analysis: RequestAnalysis,
        planned: PlannedTask,
        store_id: str,
        outcomes: Dict[str, Outcome],
        session_id: str
    ):
        """Execute one started task and commit its outcome. Never raises."""
        try:
            outcome = await self._execute_task(request, analysis, planned, outcomes)
        except Exception as e:
            outcome = Failure(str(e) or e.__class__.__name__)

        outcomes[planned.id] = outcome
        if outcome.ok:
            self.store.complete_task(store_id, outcome.value)
            self.tracker.log(session_id, f"Task {planned.id} completed")
        else:
            logger.warning(f"Task {planned.id} ({store_id}) failed: {outcome.error}")
            self.store.fail_task(store_id, outcome.error)
            self.tracker.log(session_id, f"Task {planned.id} failed: {outcome.error}")

    async def _execute_task(
        self,
        request: UserRequest,
        analysis: RequestAnalysis,
        planned: PlannedTask,
        outcomes: Dict[str, Outcome]
    ) -> Outcome:
        request_context = self._request_context(request, analysis, planned, outcomes)

        if self.remote_executor is not None and REMOTE_TOOL in planned.tools:
            text = await self._invoke(PromptKind.REMOTE_EXECUTION, {
                "task_id": planned.id,
                "task_description": planned.description,
                "available_actions": describe_actions(),
                "request_context": request_context,
            })
            report = parse_execution_report(text)
            if report.outcome == ExecutionOutcome.FAILURE:
                return Failure(self._report_error(report.issues))

            sequence = await self.remote_executor.execute_action_sequence(report.actions)
            if not sequence.success:
                return Failure("; ".join(sequence.errors))
            return Success({"result": report.result, "remote_actions": sequence.to_dict()})

        text = await self._invoke(PromptKind.EXECUTION, {
            "task_id": planned.id,
            "task_description": planned.description,
            "available_tools": json.dumps(TOOL_CATALOGUE, indent=2),
            "request_context": request_context,
        })
        report = parse_execution_report(text)
        if report.outcome == ExecutionOutcome.FAILURE:
            return Failure(self._report_error(report.issues))
        return Success(report.result)

    async def _synthesize(
        self,
        request: UserRequest,
        outcomes: Dict[str, Outcome],
        session_id: str
    ) -> str:
        task_results = json.dumps(
            {task_id: outcome.to_dict() for task_id, outcome in outcomes.items()},
            indent=2,
            ensure_ascii=False,
            default=str,
        )
        text = await self._invoke(PromptKind.SYNTHESIS, {
            "user_request": request.content,
            "task_results": task_results,
        })
        output = text.strip()
        if not output:
            raise MalformedResponse("synthesis", "empty response", raw_text=text)

        self.tracker.log(session_id, f"Synthesized answer from {len(outcomes)} task results")
        return output

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _invoke(self, kind: PromptKind, variables: Dict[str, Any]) -> str:
        compiled = self.prompt_manager.compile_prompt(
            kind,
            variables,
            provider=self.reasoning.provider_id,
            model=self.reasoning.model_id,
        )
        return await invoke_reasoning(
            self.reasoning,
            kind,
            {"prompt": compiled.content, "system": compiled.system},
            timeout=self.config.reasoning_timeout,
            retry_policy=self.retry_policy,
        )

    @staticmethod
    def _request_context(
        request: UserRequest,
        analysis: RequestAnalysis,
        planned: PlannedTask,
        outcomes: Dict[str, Outcome]
    ) -> str:
        lines = [
            f"Request: {request.content}",
            f"Main objective: {analysis.main_objective}",
        ]
        if analysis.constraints:
            lines.append(f"Constraints: {'; '.join(analysis.constraints)}")
        if planned.expected_output:
            lines.append(f"Expected output: {planned.expected_output}")

        dependency_results = {
            dep: outcomes[dep].to_dict() for dep in planned.dependencies if dep in outcomes
        }
        if dependency_results:
            lines.append("Results of prerequisite tasks:")
            lines.append(json.dumps(dependency_results, indent=2, ensure_ascii=False, default=str))
        return "\n".join(lines)

    @staticmethod
    def _report_error(issues: List[str]) -> str:
        return "; ".join(issues) if issues else "task reported failure"

    def _advance(self, session_id: str, status: SessionStatus, message: str):
        self._check_cancelled(session_id)
        try:
            self.tracker.transition(session_id, status, PHASE_PROGRESS[status], message)
        except InvalidTransition:
            # cancel() may have won the race for the session
            self._check_cancelled(session_id)
            raise

    def _is_cancelled(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._cancel_reasons

    def _check_cancelled(self, session_id: str):
        with self._lock:
            reason = self._cancel_reasons.get(session_id)
        if reason is not None:
            raise RunCancelled(f"Session {session_id} cancelled: {reason}")

    def _record_experience(
        self,
        request: UserRequest,
        analysis: RequestAnalysis,
        result: RunResult
    ) -> Optional[str]:
        if self.network is None or not self.config.record_experiences:
            return None

        total = len(result.outcomes)
        effectiveness = round(100 * result.succeeded / total) if total else 0
        node = self.network.add_experience(
            request.content,
            result.output,
            effectiveness,
            ExperienceMetadata(
                provider=self.reasoning.provider_id,
                model=self.reasoning.model_id,
                context=analysis.main_objective,
                tags=analysis.knowledge_domains,
            ),
        )
        return node.id
