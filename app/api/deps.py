from __future__ import annotations
from typing import Optional

from fastapi import Query

from app.core.exceptions import (
    ConfirmationRequiredError, ConflictError, NotFoundError, StorageError
)
from app.core.pipeline import SyncOutcome, SyncResult


class QueryConfirmation:
    """Confirmation callback answered by the `confirm` query parameter."""

    def __init__(self, confirmed: bool):
        self.confirmed = confirmed
        self.prompt: Optional[str] = None

    def __call__(self, prompt: str) -> bool:
        self.prompt = prompt
        return self.confirmed

    def declined(self) -> ConfirmationRequiredError:
        return ConfirmationRequiredError(
            self.prompt or "This operation must be confirmed",
            {"hint": "Repeat the request with confirm=true"}
        )


def get_confirmation(
    confirm: bool = Query(False, description="Confirm a destructive operation"),
) -> QueryConfirmation:
    return QueryConfirmation(confirm)


def raise_for_sync_result(result: Optional[SyncResult]) -> None:
    """Turn a failed pipeline synchronization of a direct user action into an error."""
    if result is None or result.ok:
        return
    details = {"lead_id": result.lead_id, "outcome": result.outcome.value}
    if result.outcome == SyncOutcome.NOT_FOUND:
        raise NotFoundError(result.message or "Lead not found", details)
    if result.outcome == SyncOutcome.CONFLICT:
        raise ConflictError(result.message or "Lead was modified concurrently", details)
    raise StorageError(result.message or "Failed to update the lead", details)
