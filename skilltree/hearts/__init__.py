"""Hearts economy: the session-scoped ledger and time-based regeneration."""

from .ledger import HeartsLedger
from .regeneration import can_purchase_heart, hours_until_next_heart, regenerated_balance

__all__ = [
    "HeartsLedger",
    "can_purchase_heart",
    "hours_until_next_heart",
    "regenerated_balance",
]
