"""
Result projection for display.

Turns outcome snapshots into presentation rows (one per selection, in
selection order). Everything here is pure: the same selections and outcomes
always project to the same rows, whether the snapshot is the all-Pending
skeleton, partial or final.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from app.services.orchestrator import (
    GenerationOutcome,
    InvocationSnapshot,
    OutcomeStatus,
    ProviderSelection,
)

RETRY_HINT = "Please try again."


class StatusBadge(str, Enum):
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


_BADGES = {
    OutcomeStatus.PENDING: StatusBadge.LOADING,
    OutcomeStatus.SUCCESS: StatusBadge.SUCCESS,
    OutcomeStatus.FAILURE: StatusBadge.ERROR,
}


def format_duration(duration_ms: float | None) -> str | None:
    """
    Human label for a duration: "850ms" below one second, "12.3s" above.
    """
    if duration_ms is None:
        return None
    if duration_ms < 1000:
        return f"{round(duration_ms)}ms"
    return f"{duration_ms / 1000:.1f}s"


@dataclass(frozen=True)
class PresentationRow:
    """Display-ready state of one selection."""
    selection_id: str
    label: str
    provider_id: str
    model_id: str
    status: OutcomeStatus
    badge: StatusBadge
    image_base64: str | None = None
    mime_type: str | None = None
    error: str | None = None
    error_category: str | None = None
    retry_hint: str | None = None
    duration_ms: float | None = None
    duration_label: str | None = None
    generated_at: datetime | None = None

    @property
    def is_loading(self) -> bool:
        return self.status is OutcomeStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        """camelCase wire form."""
        return {
            "selectionId": self.selection_id,
            "label": self.label,
            "provider": self.provider_id,
            "model": self.model_id,
            "status": self.status.value,
            "badge": self.badge.value,
            "isLoading": self.is_loading,
            "imageData": self.image_base64,
            "mimeType": self.mime_type,
            "error": self.error,
            "errorCategory": self.error_category,
            "retryHint": self.retry_hint,
            "durationMs": round(self.duration_ms, 1) if self.duration_ms is not None else None,
            "durationLabel": self.duration_label,
            "generatedAt": self.generated_at.isoformat() if self.generated_at else None,
        }


def project_row(selection: ProviderSelection, outcome: GenerationOutcome | None) -> PresentationRow:
    """Project one selection; a missing outcome is shown as Pending."""
    if outcome is None:
        outcome = GenerationOutcome.pending(selection)

    row = PresentationRow(
        selection_id=selection.selection_id,
        label=selection.label,
        provider_id=outcome.provider_id,
        model_id=outcome.model_id,
        status=outcome.status,
        badge=_BADGES[outcome.status],
        duration_ms=outcome.duration_ms,
        duration_label=format_duration(outcome.duration_ms),
        generated_at=outcome.completed_at,
    )

    if outcome.status is OutcomeStatus.SUCCESS:
        image = outcome.images[0]
        return replace(row, image_base64=image.to_base64(), mime_type=image.mime_type)
    if outcome.status is OutcomeStatus.FAILURE:
        return replace(
            row,
            error=outcome.error_message,
            error_category=outcome.error_category.value if outcome.error_category else None,
            retry_hint=RETRY_HINT,
        )
    return row


def project_rows(
    selections: Sequence[ProviderSelection],
    outcomes: Mapping[str, GenerationOutcome],
) -> list[PresentationRow]:
    """Project every selection, in selection order."""
    return [project_row(s, outcomes.get(s.selection_id)) for s in selections]


def summarize(snapshot: InvocationSnapshot) -> dict[str, Any]:
    """Counts plus the global banner, which is set only when every selection failed."""
    return {
        "total": len(snapshot.outcomes),
        "pending": snapshot.pending_count,
        "succeeded": snapshot.success_count,
        "failed": snapshot.failure_count,
        "allFailed": snapshot.all_failed,
        "banner": snapshot.error.message if snapshot.error is not None else None,
    }


def snapshot_to_dict(
    snapshot: InvocationSnapshot,
    selections: Sequence[ProviderSelection],
) -> dict[str, Any]:
    """Wire form of a whole snapshot, as streamed to clients."""
    return {
        "invocationId": snapshot.invocation_id,
        "sequence": snapshot.sequence,
        "complete": snapshot.complete,
        "error": snapshot.error.to_dict() if snapshot.error is not None else None,
        "summary": summarize(snapshot),
        "results": [row.to_dict() for row in project_rows(selections, snapshot.outcomes)],
    }
