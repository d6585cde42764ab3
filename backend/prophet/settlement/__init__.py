"""Settlement: market lifecycle, stakes, payouts and the credit ledger.

The engine and appeal service live in `prophet.settlement.engine` and
`prophet.settlement.appeals`; they depend on `prophet.storage`, which in turn
imports the models exported here.
"""

from prophet.settlement.models import (
    ArbitratorType,
    MarketDraft,
    MarketState,
    Outcome,
    Principal,
)
from prophet.settlement.payouts import plan_settlement, verify_conservation

__all__ = [
    "ArbitratorType",
    "MarketDraft",
    "MarketState",
    "Outcome",
    "Principal",
    "plan_settlement",
    "verify_conservation",
]
