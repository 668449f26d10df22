"""
Club Dues - Source Package

Dues and reconciliation engine for a small membership organization:
who owes what and since when, which ledger transaction settled which
payable bill, and a reversible history of every change.

DESIGN PRINCIPLES:
1. Derived values (member status, bill status) are computed, never trusted from storage
2. A bill and the transaction that paid it never disagree
3. Every mutation leaves an undo snapshot
4. Optional features degrade, core features fail loudly
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Club Dues Team"
