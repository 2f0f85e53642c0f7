"""
Canonical appointment time labels.

The clinic books in half-hour slots from 09:00 to 17:30. Labels are stored
as 24-hour ``"HH:MM"`` strings; 12-hour labels such as ``"01:30 PM"`` are
accepted on input and normalised.
"""
from datetime import datetime, time, timedelta
from typing import Iterable, List

OPEN_TIME = time(9, 0)
LAST_START_TIME = time(17, 30)
SLOT_INCREMENT_MINUTES = 30


def _build_canonical_times() -> List[str]:
    labels = []
    current = datetime.combine(datetime.min.date(), OPEN_TIME)
    last = datetime.combine(datetime.min.date(), LAST_START_TIME)
    while current <= last:
        labels.append(current.strftime("%H:%M"))
        current += timedelta(minutes=SLOT_INCREMENT_MINUTES)
    return labels


CANONICAL_TIMES: List[str] = _build_canonical_times()
_CANONICAL_INDEX = {label: index for index, label in enumerate(CANONICAL_TIMES)}


def normalize_time_label(label: str) -> str:
    """Return the canonical ``HH:MM`` form of ``label``.

    Raises ``ValueError`` if the label cannot be parsed or is not one of the
    clinic's half-hour slots.
    """
    if not isinstance(label, str) or not label.strip():
        raise ValueError("Time is required")

    value = label.strip().upper()
    parsed = None
    for fmt in ("%H:%M", "%I:%M %p", "%I:%M%p"):
        try:
            parsed = datetime.strptime(value, fmt).time()
            break
        except ValueError:
            continue

    if parsed is None:
        raise ValueError(f"Invalid time label: {label!r}")

    normalized = parsed.strftime("%H:%M")
    if normalized not in _CANONICAL_INDEX:
        raise ValueError(
            f"Time {label!r} is not a bookable slot "
            f"({CANONICAL_TIMES[0]}-{CANONICAL_TIMES[-1]}, every {SLOT_INCREMENT_MINUTES} minutes)"
        )
    return normalized


def sort_times(labels: Iterable[str]) -> List[str]:
    """De-duplicate canonical labels and order them chronologically."""
    return sorted(set(labels), key=lambda label: _CANONICAL_INDEX.get(label, len(_CANONICAL_INDEX)))
