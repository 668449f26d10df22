"""
Estimated-amount flag.

is_estimate is a real column. Rows written before the column existed
carry the flag as a marker token inside notes instead. Those rows are
decoded on read and stored without the marker on their next write; the marker is
never produced for new rows.
"""

import re
from typing import Optional

from clubdues.models.bill import PayableBill


def strip_marker(notes: Optional[str], marker: str) -> tuple[Optional[str], bool]:
    """
    Remove the first marker token from notes.

    Returns the cleaned notes (None when nothing is left) and whether the
    marker was present.
    """
    if not notes or marker not in notes:
        return notes, False
    cleaned = re.sub(re.escape(marker) + r"\s*", "", notes, count=1).strip()
    return cleaned or None, True


def decode_legacy_estimate(bill: PayableBill, marker: str) -> PayableBill:
    """Move a legacy notes marker into the is_estimate column."""
    notes, found = strip_marker(bill.notes, marker)
    if not found:
        return bill
    return bill.model_copy(update={"notes": notes, "is_estimate": True})
