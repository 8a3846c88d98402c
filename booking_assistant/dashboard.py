"""Per-user dashboard: approval-flow progress from ``flowTracking``.

Each flow document carries an integer ``step`` (0-based, missing means 0).
The indicator has four fixed entries; for step ``n`` entries ``1..n+1``
are active and entry ``n+1`` is current.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from booking_assistant.models.booking import FlowTracking
from booking_assistant.stores.base import BookingStore

log = logging.getLogger("booking_assistant.dashboard")

FLOW_STEP_LABELS: tuple[str, ...] = (
    "Draft",
    "Awaiting approval (stage 1)",
    "Awaiting approval (stage 2)",
    "Done",
)


class StepIndicator(BaseModel):
    number: int
    label: str
    is_active: bool
    is_current: bool


class FlowProgress(BaseModel):
    flow: FlowTracking
    steps: list[StepIndicator]


def progress_steps(step: int | None) -> list[StepIndicator]:
    position = (step or 0) + 1
    return [
        StepIndicator(
            number=number,
            label=label,
            is_active=position >= number,
            is_current=position == number,
        )
        for number, label in enumerate(FLOW_STEP_LABELS, start=1)
    ]


async def load_dashboard(store: BookingStore, owner_email: str) -> list[FlowProgress]:
    """Return the owner's flows with their progress indicators."""
    flows = await store.list_flow_tracking(owner_email)
    log.info("Loaded %d flow(s) for dashboard", len(flows))
    return [FlowProgress(flow=f, steps=progress_steps(f.step)) for f in flows]


def dashboard_payload(email: str, flows: list[FlowProgress]) -> dict[str, Any]:
    return {
        "email": email,
        "flows": [
            {
                "flow": p.flow.model_dump(by_alias=True, mode="json"),
                "steps": [s.model_dump() for s in p.steps],
            }
            for p in flows
        ],
    }
