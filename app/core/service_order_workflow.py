"""
Service order workflow rules for PitStop.
Statuses, the fixed status to pipeline stage mapping, order numbering and cost totals.
"""

import logging
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional

from app.core.pipeline import StageKey

logger = logging.getLogger(__name__)


class ServiceOrderStatus(str, Enum):
    """Service order statuses. There is no forbidden-transition table."""
    DIAGNOSIS = "diagnosis"
    WAITING_PARTS = "waiting_parts"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    WAITING_PICKUP = "waiting_pickup"
    PAID = "paid"
    CANCELLED = "cancelled"


# Every status must map to the pipeline stage its lead moves to
STATUS_TO_STAGE: Dict[ServiceOrderStatus, StageKey] = {
    ServiceOrderStatus.DIAGNOSIS: StageKey.IN_SERVICE,
    ServiceOrderStatus.WAITING_PARTS: StageKey.WAITING_PARTS,
    ServiceOrderStatus.IN_PROGRESS: StageKey.IN_SERVICE,
    ServiceOrderStatus.COMPLETED: StageKey.COMPLETED,
    ServiceOrderStatus.WAITING_PICKUP: StageKey.COMPLETED,
    ServiceOrderStatus.PAID: StageKey.INVOICED,
    ServiceOrderStatus.CANCELLED: StageKey.CLOSED,
}

_unmapped = set(ServiceOrderStatus) - set(STATUS_TO_STAGE)
if _unmapped:
    raise RuntimeError(f"Service order statuses without a pipeline stage: {sorted(s.value for s in _unmapped)}")

# Statuses whose totals count as revenue in reports
REVENUE_STATUSES = (ServiceOrderStatus.COMPLETED, ServiceOrderStatus.PAID)

STATUS_SUMMARIES: Dict[ServiceOrderStatus, Dict[str, str]] = {
    ServiceOrderStatus.DIAGNOSIS: {
        "title": "Diagnosis",
        "description": "Vehicle is being inspected to identify the problem",
        "color": "blue",
    },
    ServiceOrderStatus.WAITING_PARTS: {
        "title": "Waiting Parts",
        "description": "Work is paused until parts arrive",
        "color": "orange",
    },
    ServiceOrderStatus.IN_PROGRESS: {
        "title": "In Progress",
        "description": "Work is currently being performed",
        "color": "yellow",
    },
    ServiceOrderStatus.COMPLETED: {
        "title": "Completed",
        "description": "Work has been completed",
        "color": "green",
    },
    ServiceOrderStatus.WAITING_PICKUP: {
        "title": "Waiting Pickup",
        "description": "Vehicle is ready and waiting for the customer",
        "color": "purple",
    },
    ServiceOrderStatus.PAID: {
        "title": "Paid",
        "description": "Service order has been paid",
        "color": "green",
    },
    ServiceOrderStatus.CANCELLED: {
        "title": "Cancelled",
        "description": "Service order has been cancelled",
        "color": "red",
    },
}


def target_stage_for(status: ServiceOrderStatus) -> StageKey:
    """Pipeline stage a lead moves to when its service order enters `status`."""
    return STATUS_TO_STAGE[ServiceOrderStatus(status)]


def parse_status(value: str) -> Optional[ServiceOrderStatus]:
    try:
        return ServiceOrderStatus(value)
    except ValueError:
        return None


def get_status_summary(status: ServiceOrderStatus) -> Dict[str, str]:
    """Get a summary description for a service order status."""
    return STATUS_SUMMARIES[ServiceOrderStatus(status)]


def list_status_summaries() -> List[Dict[str, str]]:
    """Every status in workflow order with its title, description, color and pipeline stage."""
    return [
        {"status": s.value, **STATUS_SUMMARIES[s], "stage_key": STATUS_TO_STAGE[s].value}
        for s in ServiceOrderStatus
    ]


def format_os_number(year: int, month: int, sequence: int) -> str:
    """Display number: OS + year + zero-padded month + 4-digit monthly sequence."""
    return f"OS{year}{month:02d}{sequence:04d}"


def period_key(year: int, month: int) -> str:
    return f"{year}{month:02d}"


def calculate_total(costs: Iterable[Optional[Decimal]]) -> Decimal:
    """Sum item costs. Totals are always recomputed, never stored."""
    total = Decimal("0")
    for cost in costs:
        if cost is None:
            continue
        total += Decimal(str(cost))
    return total
