"""
Integration tests for complete autonomous runs.

Exercises the scheduler together with the task graph store, session tracker
and experience network: end-to-end happy path, task failure isolation,
dependency ordering under parallel execution, cancellation and stalls.
"""

import asyncio
import json

import pytest

from autonomy.collective.network import ExperienceNetwork
from autonomy.core.errors import RunCancelled
from autonomy.core.prompts import PromptKind
from autonomy.core.workflow import SessionStatus, SessionTracker
from autonomy.models.task import Failure, Success, TaskStatus, UserRequest
from autonomy.orchestration.scheduler import AutonomyScheduler
from autonomy.orchestration.task_graph import TaskGraphStore

from conftest import ScriptedReasoning, analysis_json, by_task, plan_json, planned, report_json

pytestmark = pytest.mark.integration


class ConcurrentReasoning(ScriptedReasoning):
    """Scripted reasoning that yields during execution and tracks overlap."""

    def __init__(self, script, delay=0.02):
        super().__init__(script)
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def invoke(self, prompt_kind, variables):
        if prompt_kind != PromptKind.EXECUTION:
            return await super().invoke(prompt_kind, variables)

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            return await super().invoke(prompt_kind, variables)
        finally:
            self.active -= 1


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def store():
    return TaskGraphStore()


@pytest.fixture
def tracker():
    return SessionTracker()


@pytest.fixture
def start_violations(store):
    """Record any task observed running before its dependencies completed."""
    violations = []

    def check(task):
        if task.status != TaskStatus.RUNNING:
            return
        for dep_id in task.dependencies:
            if store.get_task(dep_id).status != TaskStatus.COMPLETED:
                violations.append((task.id, dep_id))

    store.add_listener(check)
    return violations


# ============================================================================
# Test Class 1: End-to-end
# ============================================================================

class TestHappyPath:
    """A two-step plan executed to completion."""

    def test_two_step_report(self, store, tracker, fast_config, start_violations):
        """Test analysis -> plan -> two dependent tasks -> synthesis."""
        reasoning = ScriptedReasoning({
            PromptKind.ANALYSIS: analysis_json(objective="Deliver a two-step report"),
            PromptKind.PLANNING: plan_json([
                planned("task-1", "Collect the data"),
                planned("task-2", "Write the report", ["task-1"]),
            ]),
            PromptKind.EXECUTION: by_task({
                "Collect the data": report_json(result="data collected"),
                "Write the report": report_json(result="report written"),
            }),
            PromptKind.SYNTHESIS: "# Report\n\nThe data was collected and the report written.",
        })
        scheduler = AutonomyScheduler(reasoning, store=store, tracker=tracker, config=fast_config)
        request = UserRequest(content="Build a two-step report")

        result = asyncio.run(scheduler.run(request))

        session = tracker.get_session(result.session_id)
        assert session.status == SessionStatus.COMPLETED
        assert session.progress == 100
        assert result.output.startswith("# Report")
        assert start_violations == []

        # task-2 ran after task-1 finished
        first = store.get_task(result.task_ids["task-1"])
        second = store.get_task(result.task_ids["task-2"])
        assert second.started_at >= first.completed_at

        # every phase left a timestamped log line
        assert len(session.logs) >= 6
        assert all(line.startswith("[") for line in session.logs)


# ============================================================================
# Test Class 2: Failure isolation
# ============================================================================

class TestFailureIsolation:
    """A failing task does not abort its siblings or the run."""

    def test_independent_task_survives_failure(self, store, tracker, fast_config):
        """Test task-2 completes although task-1 throws."""
        reasoning = ScriptedReasoning({
            PromptKind.ANALYSIS: analysis_json(),
            PromptKind.PLANNING: plan_json([
                planned("task-1", "Call the flaky service"),
                planned("task-2", "Summarize the notes"),
            ]),
            PromptKind.EXECUTION: by_task({
                "Call the flaky service": RuntimeError("service unavailable"),
                "Summarize the notes": report_json(result="summary"),
            }),
            PromptKind.SYNTHESIS: "Partial answer.",
        })
        scheduler = AutonomyScheduler(reasoning, store=store, tracker=tracker, config=fast_config)

        result = asyncio.run(scheduler.run("Two independent chores"))

        assert result.outcomes == {
            "task-1": Failure("service unavailable"),
            "task-2": Success("summary"),
        }
        statuses = [t.to_status for t in tracker.get_session(result.session_id).transitions]
        assert SessionStatus.SYNTHESIZING in statuses
        assert statuses[-1] == SessionStatus.COMPLETED

        synthesis_input = reasoning.prompts_for(PromptKind.SYNTHESIS)[0]
        payload = synthesis_input.split("## Task Results\n", 1)[1].split("\n\n## Instructions", 1)[0]
        assert json.loads(payload) == {
            "task-1": {"status": "failure", "error": "service unavailable"},
            "task-2": {"status": "success", "result": "summary"},
        }

        assert store.get_task(result.task_ids["task-1"]).status == TaskStatus.FAILED
        assert store.get_task(result.task_ids["task-1"]).error == "service unavailable"

    def test_dependents_of_failed_task_reported_blocked(self, store, fast_config):
        """Test blocked tasks are never executed and appear as failures."""
        reasoning = ScriptedReasoning({
            PromptKind.ANALYSIS: analysis_json(),
            PromptKind.PLANNING: plan_json([
                planned("a", "Fetch inputs"),
                planned("b", "Transform inputs", ["a"]),
                planned("c", "Publish output", ["b"]),
                planned("d", "Send a notice"),
            ]),
            PromptKind.EXECUTION: by_task({
                "Fetch inputs": report_json(outcome="failure", issues=["source offline"]),
                "Send a notice": report_json(result="sent"),
            }),
            PromptKind.SYNTHESIS: "Could not publish.",
        })
        scheduler = AutonomyScheduler(reasoning, store=store, config=fast_config)

        result = asyncio.run(scheduler.run("Publish the weekly output"))

        assert list(result.outcomes) == ["a", "b", "c", "d"]
        assert result.outcomes["a"] == Failure("source offline")
        assert result.outcomes["b"] == Failure("blocked by failed dependency: a")
        assert result.outcomes["c"] == Failure("blocked by failed dependency: b")
        assert result.outcomes["d"] == Success("sent")

        assert store.get_task(result.task_ids["b"]).status == TaskStatus.PENDING
        assert len(reasoning.prompts_for(PromptKind.EXECUTION)) == 2


# ============================================================================
# Test Class 3: Parallel execution
# ============================================================================

class TestParallelExecution:
    """Ready tasks run concurrently within the configured bound."""

    def _fan_plan(self, width):
        tasks = [planned(f"w{i}", f"Worker {i}") for i in range(width)]
        tasks.append(planned("join", "Join results", [f"w{i}" for i in range(width)]))
        return tasks

    def test_fan_out_fan_in(self, store, fast_config, start_violations):
        """Test independent tasks overlap and the join waits for all of them."""
        width = 4
        reasoning = ConcurrentReasoning({
            PromptKind.ANALYSIS: analysis_json(),
            PromptKind.PLANNING: plan_json(self._fan_plan(width)),
            PromptKind.EXECUTION: by_task({
                **{f"Worker {i}": report_json(result=f"part {i}") for i in range(width)},
                "Join results": report_json(result="joined"),
            }),
            PromptKind.SYNTHESIS: "All parts joined.",
        })
        scheduler = AutonomyScheduler(reasoning, store=store, config=fast_config)

        result = asyncio.run(scheduler.run("Fan out and join"))

        assert result.succeeded == width + 1
        assert reasoning.max_active > 1
        assert start_violations == []

        join = store.get_task(result.task_ids["join"])
        for i in range(width):
            assert join.started_at >= store.get_task(result.task_ids[f"w{i}"]).completed_at

    def test_parallelism_bound(self, store, fast_config):
        """Test no more than max_parallel_tasks run at once."""
        width = 5
        reasoning = ConcurrentReasoning({
            PromptKind.ANALYSIS: analysis_json(),
            PromptKind.PLANNING: plan_json([planned(f"w{i}", f"Worker {i}") for i in range(width)]),
            PromptKind.EXECUTION: by_task({f"Worker {i}": report_json() for i in range(width)}),
            PromptKind.SYNTHESIS: "done",
        })
        config = fast_config.model_copy(update={"max_parallel_tasks": 2})

        result = asyncio.run(AutonomyScheduler(reasoning, store=store, config=config).run("Bounded"))

        assert result.succeeded == width
        assert reasoning.max_active == 2


# ============================================================================
# Test Class 4: Cancellation
# ============================================================================

class TestCancellation:
    """Cancelling a session stops the run at its next checkpoint."""

    def test_cancel_during_execution(self, store, tracker, fast_config):
        """Test the in-flight task finishes but its dependent never starts."""
        holder = {}

        def first_task(prompt):
            session = tracker.list_sessions()[0]
            holder["session_id"] = session.id
            assert holder["scheduler"].cancel(session.id, "user stop")
            return report_json(result="first done")

        reasoning = ScriptedReasoning({
            PromptKind.ANALYSIS: analysis_json(),
            PromptKind.PLANNING: plan_json([
                planned("task-1", "Start the job"),
                planned("task-2", "Finish the job", ["task-1"]),
            ]),
            PromptKind.EXECUTION: first_task,
            PromptKind.SYNTHESIS: "unused",
        })
        scheduler = AutonomyScheduler(reasoning, store=store, tracker=tracker, config=fast_config)
        holder["scheduler"] = scheduler
        request = UserRequest(content="Long job")

        with pytest.raises(RunCancelled):
            asyncio.run(scheduler.run(request))

        session = tracker.get_session(holder["session_id"])
        assert session.status == SessionStatus.FAILED
        assert session.progress == 100
        assert any("Cancelled: user stop" in line for line in session.logs)
        assert reasoning.prompts_for(PromptKind.SYNTHESIS) == []

        tasks = {t.description: t for t in store.get_tasks(request.id)}
        assert tasks["Start the job"].status == TaskStatus.COMPLETED
        assert tasks["Finish the job"].status == TaskStatus.PENDING

    def test_cancel_during_analysis(self, tracker, fast_config):
        """Test no further phase starts after cancellation."""
        holder = {}

        def analysis(prompt):
            session = tracker.list_sessions()[0]
            holder["scheduler"].cancel(session.id)
            return analysis_json()

        reasoning = ScriptedReasoning({PromptKind.ANALYSIS: analysis})
        scheduler = AutonomyScheduler(reasoning, tracker=tracker, config=fast_config)
        holder["scheduler"] = scheduler

        with pytest.raises(RunCancelled):
            asyncio.run(scheduler.run("Anything"))

        session = tracker.list_sessions()[0]
        assert [t.to_status for t in session.transitions] == [SessionStatus.ANALYZING, SessionStatus.FAILED]
        assert reasoning.prompts_for(PromptKind.PLANNING) == []


# ============================================================================
# Test Class 5: Shared collaborators
# ============================================================================

class TestSharedCollaborators:
    """Several runs over one store, tracker and network."""

    def _script(self, label):
        return {
            PromptKind.ANALYSIS: analysis_json(objective=f"Objective {label}", domains=[label]),
            PromptKind.PLANNING: plan_json([
                planned("task-1", f"Step one of {label}"),
                planned("task-2", f"Step two of {label}", ["task-1"]),
            ]),
            PromptKind.EXECUTION: by_task({
                f"Step one of {label}": report_json(result=f"{label} one"),
                f"Step two of {label}": report_json(result=f"{label} two"),
            }),
            PromptKind.SYNTHESIS: f"Answer for {label}",
        }

    def test_concurrent_runs(self, store, tracker, fast_config, start_violations):
        """Test two runs proceed concurrently without mixing tasks."""
        network = ExperienceNetwork()
        first = AutonomyScheduler(
            ConcurrentReasoning(self._script("alpha")), store=store, tracker=tracker,
            network=network, config=fast_config,
        )
        second = AutonomyScheduler(
            ConcurrentReasoning(self._script("beta")), store=store, tracker=tracker,
            network=network, config=fast_config,
        )

        async def both():
            return await asyncio.gather(
                first.run("Plan the alpha rollout"),
                second.run("Draft a budget for beta"),
            )

        alpha, beta = asyncio.run(both())

        assert alpha.output == "Answer for alpha"
        assert beta.output == "Answer for beta"
        assert alpha.outcomes["task-2"] == Success("alpha two")
        assert beta.outcomes["task-2"] == Success("beta two")
        assert len(store.get_tasks()) == 4
        assert start_violations == []
        assert network.node_count == 2

    def test_repeated_request_keeps_every_session(self, store, tracker, fast_config):
        """Test a request run twice yields two sessions and separate task sets."""
        request = UserRequest(content="Plan the alpha rollout")
        network = ExperienceNetwork()

        for _ in range(2):
            scheduler = AutonomyScheduler(
                ScriptedReasoning(self._script("alpha")), store=store, tracker=tracker,
                network=network, config=fast_config,
            )
            asyncio.run(scheduler.run(request))

        sessions = tracker.get_sessions_by_request(request.id)
        assert len(sessions) == 2
        assert all(s.status == SessionStatus.COMPLETED for s in sessions)
        for session in sessions:
            assert len(store.get_tasks(request.id, session.id)) == 2

        # second run reused the first run's experience instead of adding a node
        assert network.node_count == 1
