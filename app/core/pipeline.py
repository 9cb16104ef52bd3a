"""
Pipeline (kanban) vocabulary shared by the synchronizer, the kanban service and reports.
Stage keys, default stages, history entry types and synchronization results.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple


class StageColor(str, Enum):
    """Closed palette for pipeline stage colors."""
    BLUE = "blue"
    YELLOW = "yellow"
    ORANGE = "orange"
    GREEN = "green"
    RED = "red"
    PURPLE = "purple"
    PINK = "pink"
    GRAY = "gray"


class StageKey(str, Enum):
    """Stable keys of the default stages, targeted by pipeline automation."""
    PROSPECT = "prospect"
    FIRST_CONTACT = "first-contact"
    QUALIFICATION = "qualification"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    SCHEDULED = "scheduled"
    IN_SERVICE = "in-service"
    WAITING_PARTS = "waiting-parts"
    COMPLETED = "completed"
    INVOICED = "invoiced"
    CLOSED = "closed"


# (key, name, color) in pipeline order
DEFAULT_STAGES: List[Tuple[StageKey, str, StageColor]] = [
    (StageKey.PROSPECT, "Prospect", StageColor.BLUE),
    (StageKey.FIRST_CONTACT, "First Contact", StageColor.YELLOW),
    (StageKey.QUALIFICATION, "Qualification", StageColor.ORANGE),
    (StageKey.PROPOSAL, "Proposal Sent", StageColor.PURPLE),
    (StageKey.NEGOTIATION, "Negotiation", StageColor.PINK),
    (StageKey.SCHEDULED, "Scheduled", StageColor.BLUE),
    (StageKey.IN_SERVICE, "In Service", StageColor.ORANGE),
    (StageKey.WAITING_PARTS, "Waiting Parts", StageColor.YELLOW),
    (StageKey.COMPLETED, "Service Completed", StageColor.GREEN),
    (StageKey.INVOICED, "Invoiced", StageColor.PURPLE),
    (StageKey.CLOSED, "Closed", StageColor.GRAY),
]

# Stages counted as a won/closed deal in the conversion rate
CONVERTED_STAGE_KEYS = (StageKey.COMPLETED, StageKey.INVOICED)


class HistoryType(str, Enum):
    """Kinds of entries in a lead's activity history."""
    CREATION = "creation"
    STAGE_CHANGE = "stage_change"
    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_EDITED = "appointment_edited"
    APPOINTMENT_DELETED = "appointment_deleted"
    ATTENDANCE_REGISTERED = "attendance_registered"
    EDIT = "edit"
    SERVICE_ORDER_CREATED = "service_order_created"
    SERVICE_ORDER_STATUS = "service_order_status"
    SERVICE_ORDER_FINISHED = "service_order_finished"
    SERVICE_ORDER_DELETED = "service_order_deleted"
    DIAGNOSIS_COMPLETED = "diagnosis_completed"
    LEAD_LOST = "lead_lost"

    @property
    def label(self) -> str:
        return HISTORY_LABELS[self]


HISTORY_LABELS = {
    HistoryType.CREATION: "Creation",
    HistoryType.STAGE_CHANGE: "Stage Change",
    HistoryType.APPOINTMENT_CREATED: "Appointment Created",
    HistoryType.APPOINTMENT_EDITED: "Appointment Edited",
    HistoryType.APPOINTMENT_DELETED: "Appointment Deleted",
    HistoryType.ATTENDANCE_REGISTERED: "Attendance Registered",
    HistoryType.EDIT: "Edit",
    HistoryType.SERVICE_ORDER_CREATED: "OS Created",
    HistoryType.SERVICE_ORDER_STATUS: "Status OS",
    HistoryType.SERVICE_ORDER_FINISHED: "OS Finished",
    HistoryType.SERVICE_ORDER_DELETED: "OS Deleted",
    HistoryType.DIAGNOSIS_COMPLETED: "Diagnosis Completed",
    HistoryType.LEAD_LOST: "Lead Lost",
}


class SyncOutcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    STORAGE_ERROR = "storage_error"
    CONFLICT = "conflict"


@dataclass
class SyncResult:
    """Outcome of a best-effort lead synchronization. Truthy only when it succeeded."""
    outcome: SyncOutcome
    lead_id: Optional[int] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == SyncOutcome.OK

    def __bool__(self) -> bool:
        return self.ok


# Receives the prompt text and returns True to proceed with a destructive operation
ConfirmCallback = Callable[[str], bool]


def is_confirmed(confirm: Optional[ConfirmCallback], prompt: str) -> bool:
    """Ask the caller-supplied confirmation callback; no callback means declined."""
    if confirm is None:
        return False
    return bool(confirm(prompt))
