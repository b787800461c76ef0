"""
Tests for result projection.

Projection is pure, so outcomes are built by hand.
"""

from datetime import datetime, timezone
from types import MappingProxyType

import pytest

from app.exceptions import AllSelectionsFailedError, ErrorCategory
from app.providers.image.interface import ImageData
from app.services.orchestrator import GenerationOutcome, InvocationSnapshot, OutcomeStatus
from app.services.projection import (
    RETRY_HINT,
    StatusBadge,
    format_duration,
    project_rows,
    snapshot_to_dict,
    summarize,
)

from conftest import select


STARTED = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
SELECTIONS = [select("a", "gemini", "flash"), select("b", "flux", "kontext")]


def success(selection, duration_ms=850.0):
    return GenerationOutcome(
        selection_id=selection.selection_id,
        provider_id=selection.provider_id,
        model_id=selection.model_id,
        status=OutcomeStatus.SUCCESS,
        images=(ImageData(b"sheet", "image/png"),),
        started_at=STARTED,
        completed_at=STARTED,
        duration_ms=duration_ms,
    )


def failure(selection, message="Generation failed: boom"):
    return GenerationOutcome.failure(selection, message, ErrorCategory.GENERIC, STARTED, 12345.0)


class TestFormatDuration:
    @pytest.mark.parametrize(
        "duration_ms, label",
        [(None, None), (850.4, "850ms"), (999.0, "999ms"), (1000.0, "1.0s"), (12345.0, "12.3s")],
    )
    def test_labels(self, duration_ms, label):
        assert format_duration(duration_ms) == label


class TestProjectRows:
    def test_missing_outcomes_project_as_loading(self):
        rows = project_rows(SELECTIONS, {})

        assert [row.selection_id for row in rows] == ["a", "b"]
        assert all(row.is_loading for row in rows)
        assert all(row.badge is StatusBadge.LOADING for row in rows)
        assert rows[0].image_base64 is None

    def test_mixed_outcomes(self):
        outcomes = {"a": success(SELECTIONS[0]), "b": failure(SELECTIONS[1])}

        ok, ko = project_rows(SELECTIONS, outcomes)

        assert ok.badge is StatusBadge.SUCCESS
        assert ok.image_base64 == "c2hlZXQ="
        assert ok.mime_type == "image/png"
        assert ok.duration_label == "850ms"
        assert ok.error is None

        assert ko.badge is StatusBadge.ERROR
        assert ko.error == "Generation failed: boom"
        assert ko.error_category == "generic"
        assert ko.retry_hint == RETRY_HINT
        assert ko.duration_label == "12.3s"
        assert ko.image_base64 is None

    def test_row_order_follows_selections_not_settlement(self):
        outcomes = {"b": failure(SELECTIONS[1]), "a": success(SELECTIONS[0])}

        rows = project_rows(SELECTIONS, outcomes)

        assert [row.selection_id for row in rows] == ["a", "b"]

    def test_projection_is_repeatable(self):
        outcomes = {"a": success(SELECTIONS[0])}

        assert project_rows(SELECTIONS, outcomes) == project_rows(SELECTIONS, outcomes)

    def test_to_dict_uses_camel_case(self):
        row = project_rows(SELECTIONS, {"a": success(SELECTIONS[0])})[0]

        data = row.to_dict()

        assert data["selectionId"] == "a"
        assert data["isLoading"] is False
        assert data["imageData"] == "c2hlZXQ="
        assert data["durationLabel"] == "850ms"
        assert data["generatedAt"] == STARTED.isoformat()
        assert data["label"] == "gemini / flash"


class TestSummarize:
    def _snapshot(self, outcomes, complete, error=None):
        return InvocationSnapshot(
            invocation_id="inv-1",
            outcomes=MappingProxyType(outcomes),
            sequence=len(outcomes),
            complete=complete,
            error=error,
        )

    def test_partial_counts(self):
        snapshot = self._snapshot(
            {"a": success(SELECTIONS[0]), "b": GenerationOutcome.pending(SELECTIONS[1])},
            complete=False,
        )

        summary = summarize(snapshot)

        assert summary == {
            "total": 2,
            "pending": 1,
            "succeeded": 1,
            "failed": 0,
            "allFailed": False,
            "banner": None,
        }

    def test_banner_only_when_all_failed(self):
        error = AllSelectionsFailedError(2)
        snapshot = self._snapshot(
            {"a": failure(SELECTIONS[0]), "b": failure(SELECTIONS[1])},
            complete=True,
            error=error,
        )

        summary = summarize(snapshot)

        assert summary["allFailed"] is True
        assert summary["banner"] == "All models failed to generate. Please try again."

    def test_snapshot_to_dict(self):
        snapshot = self._snapshot({"a": success(SELECTIONS[0]), "b": failure(SELECTIONS[1])}, complete=True)

        data = snapshot_to_dict(snapshot, SELECTIONS)

        assert data["invocationId"] == "inv-1"
        assert data["complete"] is True
        assert data["error"] is None
        assert [row["badge"] for row in data["results"]] == ["success", "error"]
