"""Ledger store interface.

A store hands out units of work. Everything done through one LedgerUnit
commits together when the `unit()` context exits cleanly and is discarded if
it raises.
"""

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from prophet.settlement.models import (
    Appeal,
    AppealStatus,
    ArbitratorType,
    CreditTransaction,
    Market,
    MarketState,
    Outcome,
    PaymentRecord,
    Position,
    ResolutionDecision,
    User,
)


class DuplicateRecordError(Exception):
    """A uniqueness guard rejected the write (decision, payment, appeal)."""

    def __init__(self, record: str, key: str):
        super().__init__(f"{record} already exists for {key}")
        self.record = record
        self.key = key


class LedgerUnit(Protocol):
    # Users and balances
    async def get_user(self, user_id: str) -> User | None: ...

    async def insert_user(self, user: User) -> None: ...

    async def apply_balance_delta(
        self, user_id: str, delta: Decimal, *, require_funds: bool = False
    ) -> Decimal:
        """Add `delta` to the balance and return the new balance.

        With require_funds, the debit only applies if the balance still covers
        it at write time; otherwise InsufficientBalanceError.
        """
        ...

    async def insert_credit_transaction(self, transaction: CreditTransaction) -> None: ...

    async def list_credit_transactions(
        self, *, user_id: str | None = None, market_id: str | None = None
    ) -> list[CreditTransaction]: ...

    # Markets and positions
    async def get_market(self, market_id: str, *, for_update: bool = False) -> Market | None: ...

    async def insert_market(self, market: Market) -> None: ...

    async def list_markets(
        self,
        *,
        state: MarketState | None = None,
        arbitrator_type: ArbitratorType | None = None,
        deadline_before: datetime | None = None,
    ) -> list[Market]: ...

    async def list_positions(self, market_id: str) -> list[Position]: ...

    async def insert_position(self, position: Position) -> None: ...

    async def increment_market_pools(
        self, market_id: str, side: Outcome, amount: Decimal
    ) -> Market: ...

    async def update_market_resolution(
        self,
        market_id: str,
        state: MarketState,
        outcome: Outcome | None,
        resolved_at: datetime,
    ) -> None: ...

    # Decisions
    async def get_resolution_decision(self, market_id: str) -> ResolutionDecision | None: ...

    async def insert_resolution_decision(self, decision: ResolutionDecision) -> None:
        """Raises DuplicateRecordError if the market already has a decision."""
        ...

    # Payments
    async def get_payment(self, checkout_session_id: str) -> PaymentRecord | None: ...

    async def insert_payment(self, payment: PaymentRecord) -> None: ...

    # Appeals
    async def get_appeal(self, appeal_id: str) -> Appeal | None: ...

    async def find_appeal(self, market_id: str, user_id: str) -> Appeal | None: ...

    async def insert_appeal(self, appeal: Appeal) -> None: ...

    async def update_appeal(self, appeal: Appeal) -> None: ...

    async def list_appeals(
        self, user_id: str, *, status: AppealStatus | None = None
    ) -> list[Appeal]: ...


class LedgerStore(Protocol):
    def unit(self) -> AbstractAsyncContextManager[LedgerUnit]: ...
