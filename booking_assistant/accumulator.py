"""Merge newly extracted booking details into the running record.

Each field is considered independently and values are opaque scalars:

  extracted value non-empty            → extracted value wins
  extracted empty, no previous value   → extracted value kept as placeholder
  extracted empty, previous value set  → previous value kept

"Empty" means None, or the empty string for text fields.  After the pass,
any field still absent is filled from the schema defaults so that every
declared field is defined from then on.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from booking_assistant.models.booking import (
    BOOKING_FIELDS,
    BookingRecord,
    booking_defaults,
)

log = logging.getLogger("booking_assistant.accumulator")


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    return True


def merge_booking_details(
    accumulated: Mapping[str, Any] | None,
    extracted: BookingRecord | Mapping[str, Any],
) -> dict[str, Any]:
    """Return a new record combining ``accumulated`` with ``extracted``.

    Neither input is mutated.
    """
    merged: dict[str, Any] = dict(accumulated or {})
    if isinstance(extracted, BookingRecord):
        new_values = extracted.model_dump()
    else:
        new_values = dict(extracted)

    updated = []
    for name in BOOKING_FIELDS:
        if name not in new_values:
            continue
        new_value = new_values[name]
        if _has_value(new_value):
            if merged.get(name) != new_value:
                updated.append(name)
            merged[name] = new_value
        elif merged.get(name) is None:
            merged[name] = new_value

    for name, default in booking_defaults().items():
        merged.setdefault(name, default)

    log.debug("Merged extraction, updated fields: %s", updated)
    return merged
