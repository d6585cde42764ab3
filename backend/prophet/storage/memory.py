"""In-process ledger store.

Units are serialized by one asyncio.Lock and work on a deep copy of the
tables; the copy replaces the live tables only when the unit exits cleanly.
Used by the test suite and for single-process demos.
"""

import asyncio
import copy
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from prophet.errors import InsufficientBalanceError, MarketNotFoundError, UserNotFoundError
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
    as_utc,
)
from prophet.storage.base import DuplicateRecordError


@dataclass
class _Tables:
    users: dict[str, User] = field(default_factory=dict)
    markets: dict[str, Market] = field(default_factory=dict)
    positions: dict[str, Position] = field(default_factory=dict)
    transactions: list[CreditTransaction] = field(default_factory=list)
    decisions: dict[str, ResolutionDecision] = field(default_factory=dict)
    payments: dict[str, PaymentRecord] = field(default_factory=dict)
    appeals: dict[str, Appeal] = field(default_factory=dict)


class InMemoryLedgerUnit:
    def __init__(self, tables: _Tables):
        self._t = tables

    # Users and balances

    async def get_user(self, user_id: str) -> User | None:
        return self._t.users.get(user_id)

    async def insert_user(self, user: User) -> None:
        if user.id in self._t.users:
            raise DuplicateRecordError("user", user.id)
        self._t.users[user.id] = user

    async def apply_balance_delta(
        self, user_id: str, delta: Decimal, *, require_funds: bool = False
    ) -> Decimal:
        user = self._t.users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        new_balance = user.balance + delta
        if require_funds and new_balance < 0:
            raise InsufficientBalanceError(user_id)
        self._t.users[user_id] = user.model_copy(update={"balance": new_balance})
        return new_balance

    async def insert_credit_transaction(self, transaction: CreditTransaction) -> None:
        self._t.transactions.append(transaction)

    async def list_credit_transactions(
        self, *, user_id: str | None = None, market_id: str | None = None
    ) -> list[CreditTransaction]:
        return [
            tx
            for tx in self._t.transactions
            if (user_id is None or tx.user_id == user_id)
            and (market_id is None or tx.market_id == market_id)
        ]

    # Markets and positions

    async def get_market(self, market_id: str, *, for_update: bool = False) -> Market | None:
        return self._t.markets.get(market_id)

    async def insert_market(self, market: Market) -> None:
        self._t.markets[market.id] = market

    async def list_markets(
        self,
        *,
        state: MarketState | None = None,
        arbitrator_type: ArbitratorType | None = None,
        deadline_before: datetime | None = None,
    ) -> list[Market]:
        markets = [
            m
            for m in self._t.markets.values()
            if (state is None or m.state == state)
            and (arbitrator_type is None or m.arbitrator_type == arbitrator_type)
            and (deadline_before is None or as_utc(m.deadline) <= deadline_before)
        ]
        return sorted(markets, key=lambda m: as_utc(m.deadline))

    async def list_positions(self, market_id: str) -> list[Position]:
        positions = [p for p in self._t.positions.values() if p.market_id == market_id]
        return sorted(positions, key=lambda p: p.created_at)

    async def insert_position(self, position: Position) -> None:
        self._t.positions[position.id] = position

    async def increment_market_pools(
        self, market_id: str, side: Outcome, amount: Decimal
    ) -> Market:
        market = self._t.markets.get(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        field_name = "pool_for" if side == Outcome.YES else "pool_against"
        updated = market.model_copy(
            update={field_name: getattr(market, field_name) + amount}
        )
        self._t.markets[market_id] = updated
        return updated

    async def update_market_resolution(
        self,
        market_id: str,
        state: MarketState,
        outcome: Outcome | None,
        resolved_at: datetime,
    ) -> None:
        market = self._t.markets.get(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        self._t.markets[market_id] = market.model_copy(
            update={"state": state, "outcome": outcome, "resolved_at": resolved_at}
        )

    # Decisions

    async def get_resolution_decision(self, market_id: str) -> ResolutionDecision | None:
        return self._t.decisions.get(market_id)

    async def insert_resolution_decision(self, decision: ResolutionDecision) -> None:
        if decision.market_id in self._t.decisions:
            raise DuplicateRecordError("resolution decision", decision.market_id)
        self._t.decisions[decision.market_id] = decision

    # Payments

    async def get_payment(self, checkout_session_id: str) -> PaymentRecord | None:
        return self._t.payments.get(checkout_session_id)

    async def insert_payment(self, payment: PaymentRecord) -> None:
        if payment.checkout_session_id in self._t.payments:
            raise DuplicateRecordError("payment", payment.checkout_session_id)
        self._t.payments[payment.checkout_session_id] = payment

    # Appeals

    async def get_appeal(self, appeal_id: str) -> Appeal | None:
        return self._t.appeals.get(appeal_id)

    async def find_appeal(self, market_id: str, user_id: str) -> Appeal | None:
        return next(
            (
                a
                for a in self._t.appeals.values()
                if a.market_id == market_id and a.user_id == user_id
            ),
            None,
        )

    async def insert_appeal(self, appeal: Appeal) -> None:
        if await self.find_appeal(appeal.market_id, appeal.user_id):
            raise DuplicateRecordError("appeal", f"{appeal.market_id}/{appeal.user_id}")
        self._t.appeals[appeal.id] = appeal

    async def update_appeal(self, appeal: Appeal) -> None:
        self._t.appeals[appeal.id] = appeal

    async def list_appeals(
        self, user_id: str, *, status: AppealStatus | None = None
    ) -> list[Appeal]:
        appeals = [
            a
            for a in self._t.appeals.values()
            if a.user_id == user_id and (status is None or a.status == status)
        ]
        return sorted(appeals, key=lambda a: a.created_at, reverse=True)


class InMemoryLedgerStore:
    """Lock-serialized store; a unit's writes become visible only on clean exit."""

    unit_class = InMemoryLedgerUnit

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._tables = _Tables()

    @asynccontextmanager
    async def unit(self) -> AsyncIterator[InMemoryLedgerUnit]:
        async with self._lock:
            working = copy.deepcopy(self._tables)
            yield self.unit_class(working)
            self._tables = working
