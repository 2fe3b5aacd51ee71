"""
Tests for request, task and response models.
"""

import pytest
from pydantic import ValidationError

from autonomy.models import (
    Complexity,
    ExecutionOutcome,
    ExecutionReport,
    ExperienceMetadata,
    Failure,
    PlannedTask,
    RequestAnalysis,
    Success,
    TaskStatus,
    UserRequest,
    clamp_effectiveness,
)


class TestUserRequest:
    """Test request validation."""

    def test_content_trimmed(self):
        request = UserRequest(content="  Summarize the report  ")

        assert request.content == "Summarize the report"
        assert request.id

    def test_blank_rejected(self):
        with pytest.raises(ValidationError):
            UserRequest(content="   ")

    def test_empty_rejected(self):
        with pytest.raises(ValidationError):
            UserRequest(content="")


class TestResponseModels:
    """Test lenient parsing of model output."""

    def test_camel_case_aliases(self):
        analysis = RequestAnalysis.model_validate({
            "mainObjective": "Ship it",
            "knowledgeDomains": ["ops"],
            "complexity": "Moderate",
            "clarificationNeeded": False,
        })

        assert analysis.main_objective == "Ship it"
        assert analysis.knowledge_domains == ["ops"]
        assert analysis.complexity == Complexity.MEDIUM

    def test_snake_case_accepted(self):
        analysis = RequestAnalysis.model_validate({"main_objective": "Ship it"})

        assert analysis.complexity == Complexity.MEDIUM

    def test_numeric_ids_coerced(self):
        task = PlannedTask.model_validate({"id": 1, "description": "x", "dependencies": [2, "3"], "estimatedTime": 5})

        assert task.id == "1"
        assert task.dependencies == ["2", "3"]
        assert task.estimated_time == "5"

    def test_outcome_aliases(self):
        report = ExecutionReport.model_validate({"outcome": "Failed", "issues": ["no data"]})

        assert report.outcome == ExecutionOutcome.FAILURE

    def test_unknown_outcome_rejected(self):
        with pytest.raises(ValidationError):
            ExecutionReport.model_validate({"outcome": "maybe"})

    def test_tools_used(self):
        report = ExecutionReport.model_validate({
            "outcome": "success",
            "steps": [
                {"stepNumber": 1, "toolUsed": "search"},
                {"stepNumber": 2},
            ],
        })

        assert report.tools_used() == ["search"]


class TestOutcomesAndScores:
    """Test outcome values and effectiveness clamping."""

    def test_outcomes(self):
        assert Success({"a": 1}).ok
        assert Success({"a": 1}).to_dict() == {"status": "success", "result": {"a": 1}}
        assert not Failure("boom").ok
        assert Failure("boom").to_dict() == {"status": "failure", "error": "boom"}

    def test_terminal_statuses(self):
        assert TaskStatus.COMPLETED.is_terminal
        assert TaskStatus.FAILED.is_terminal
        assert not TaskStatus.PENDING.is_terminal
        assert not TaskStatus.RUNNING.is_terminal

    @pytest.mark.parametrize("raw,expected", [(-5, 0), (0, 0), (49.6, 50), (50.5, 51), (51.5, 52), (100, 100), (180, 100)])
    def test_clamp_effectiveness(self, raw, expected):
        assert clamp_effectiveness(raw) == expected

    def test_tags_deduplicated(self):
        meta = ExperienceMetadata(tags=["react", "api", "react"])

        assert meta.tags == ["react", "api"]
