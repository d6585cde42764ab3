"""SQLAlchemy-backed ledger store.

One unit is one database transaction. Balance debits that require funds are
conditional UPDATEs, so the check happens at write time inside the
transaction rather than on a value read earlier.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

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
    to_cents,
)
from prophet.storage.base import DuplicateRecordError
from prophet.storage.tables import (
    AppealRow,
    CreditTransactionRow,
    MarketRow,
    PaymentTransactionRow,
    PositionRow,
    ResolutionDecisionRow,
    UserRow,
)


def _opt_utc(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


def _user(row: UserRow) -> User:
    return User(id=row.id, email=row.email, balance=to_cents(row.balance), is_admin=row.is_admin)


def _market(row: MarketRow) -> Market:
    return Market(
        id=row.id,
        title=row.title,
        description=row.description,
        deadline=as_utc(row.deadline),
        arbitrator_type=ArbitratorType(row.arbitrator_type),
        arbitrator_email=row.arbitrator_email,
        minimum_stake=to_cents(row.minimum_stake),
        creator_id=row.creator_id,
        state=MarketState(row.state),
        outcome=Outcome(row.outcome) if row.outcome else None,
        pool_for=to_cents(row.pool_for),
        pool_against=to_cents(row.pool_against),
        created_at=as_utc(row.created_at),
        resolved_at=_opt_utc(row.resolved_at),
    )


def _position(row: PositionRow) -> Position:
    return Position(
        id=row.id,
        market_id=row.market_id,
        user_id=row.user_id,
        side=Outcome(row.side),
        amount=to_cents(row.amount),
        created_at=as_utc(row.created_at),
    )


def _transaction(row: CreditTransactionRow) -> CreditTransaction:
    return CreditTransaction(
        id=row.id,
        user_id=row.user_id,
        amount=to_cents(row.amount),
        transaction_type=row.transaction_type,
        description=row.description,
        market_id=row.market_id,
        position_id=row.position_id,
        created_at=as_utc(row.created_at),
    )


def _decision(row: ResolutionDecisionRow) -> ResolutionDecision:
    return ResolutionDecision(
        id=row.id,
        market_id=row.market_id,
        outcome=Outcome(row.outcome),
        arbitrator_id=row.arbitrator_id,
        reasoning=row.reasoning,
        total_payout=to_cents(row.total_payout),
        winners_count=row.winners_count,
        created_at=as_utc(row.created_at),
    )


def _payment(row: PaymentTransactionRow) -> PaymentRecord:
    return PaymentRecord(
        id=row.id,
        user_id=row.user_id,
        checkout_session_id=row.checkout_session_id,
        payment_intent_id=row.payment_intent_id,
        package_id=row.package_id,
        amount_paid=to_cents(row.amount_paid),
        currency=row.currency,
        credits_purchased=row.credits_purchased,
        created_at=as_utc(row.created_at),
    )


def _appeal(row: AppealRow) -> Appeal:
    return Appeal(
        id=row.id,
        market_id=row.market_id,
        user_id=row.user_id,
        reason=row.reason,
        status=AppealStatus(row.status),
        admin_notes=row.admin_notes,
        resolved_by=row.resolved_by,
        created_at=as_utc(row.created_at),
        resolved_at=_opt_utc(row.resolved_at),
    )


class SqlLedgerUnit:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _insert(self, row, record: str, key: str) -> None:
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateRecordError(record, key) from e

    # Users and balances

    async def get_user(self, user_id: str) -> User | None:
        row = await self.session.scalar(
            select(UserRow)
            .where(UserRow.id == user_id)
            .execution_options(populate_existing=True)
        )
        return _user(row) if row else None

    async def insert_user(self, user: User) -> None:
        await self._insert(
            UserRow(id=user.id, email=user.email, balance=user.balance, is_admin=user.is_admin),
            "user",
            user.id,
        )

    async def apply_balance_delta(
        self, user_id: str, delta: Decimal, *, require_funds: bool = False
    ) -> Decimal:
        stmt = update(UserRow).where(UserRow.id == user_id)
        if require_funds and delta < 0:
            stmt = stmt.where(UserRow.balance >= -delta)
        stmt = stmt.values(balance=UserRow.balance + delta).returning(UserRow.balance)

        result = await self.session.execute(stmt, execution_options={"synchronize_session": False})
        new_balance = result.scalar_one_or_none()
        if new_balance is None:
            exists = await self.session.scalar(select(UserRow.id).where(UserRow.id == user_id))
            if exists is None:
                raise UserNotFoundError(user_id)
            raise InsufficientBalanceError(user_id)
        return to_cents(new_balance)

    async def insert_credit_transaction(self, transaction: CreditTransaction) -> None:
        await self._insert(
            CreditTransactionRow(
                id=transaction.id,
                user_id=transaction.user_id,
                amount=transaction.amount,
                transaction_type=transaction.transaction_type.value,
                description=transaction.description,
                market_id=transaction.market_id,
                position_id=transaction.position_id,
                created_at=transaction.created_at,
            ),
            "credit transaction",
            transaction.id,
        )

    async def list_credit_transactions(
        self, *, user_id: str | None = None, market_id: str | None = None
    ) -> list[CreditTransaction]:
        stmt = select(CreditTransactionRow).order_by(CreditTransactionRow.created_at)
        if user_id is not None:
            stmt = stmt.where(CreditTransactionRow.user_id == user_id)
        if market_id is not None:
            stmt = stmt.where(CreditTransactionRow.market_id == market_id)
        result = await self.session.scalars(stmt)
        return [_transaction(row) for row in result.all()]

    # Markets and positions

    async def get_market(self, market_id: str, *, for_update: bool = False) -> Market | None:
        stmt = (
            select(MarketRow)
            .where(MarketRow.id == market_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            # SQLite has no row locks; its units start with BEGIN IMMEDIATE (see database.py)
            stmt = stmt.with_for_update()
        row = await self.session.scalar(stmt)
        return _market(row) if row else None

    async def insert_market(self, market: Market) -> None:
        await self._insert(
            MarketRow(
                id=market.id,
                title=market.title,
                description=market.description,
                deadline=market.deadline,
                arbitrator_type=market.arbitrator_type.value,
                arbitrator_email=market.arbitrator_email,
                minimum_stake=market.minimum_stake,
                creator_id=market.creator_id,
                state=market.state.value,
                outcome=market.outcome.value if market.outcome else None,
                resolved_at=market.resolved_at,
                pool_for=market.pool_for,
                pool_against=market.pool_against,
                pool_total=market.pool_total,
                created_at=market.created_at,
            ),
            "market",
            market.id,
        )

    async def list_markets(
        self,
        *,
        state: MarketState | None = None,
        arbitrator_type: ArbitratorType | None = None,
        deadline_before: datetime | None = None,
    ) -> list[Market]:
        stmt = select(MarketRow).order_by(MarketRow.deadline)
        if state is not None:
            stmt = stmt.where(MarketRow.state == state.value)
        if arbitrator_type is not None:
            stmt = stmt.where(MarketRow.arbitrator_type == arbitrator_type.value)
        result = await self.session.scalars(stmt)
        markets = [_market(row) for row in result.all()]
        if deadline_before is not None:
            # compared in Python: SQLite hands back naive timestamps
            markets = [m for m in markets if m.deadline <= deadline_before]
        return markets

    async def list_positions(self, market_id: str) -> list[Position]:
        result = await self.session.scalars(
            select(PositionRow)
            .where(PositionRow.market_id == market_id)
            .order_by(PositionRow.created_at, PositionRow.id)
        )
        return [_position(row) for row in result.all()]

    async def insert_position(self, position: Position) -> None:
        await self._insert(
            PositionRow(
                id=position.id,
                market_id=position.market_id,
                user_id=position.user_id,
                side=position.side.value,
                amount=position.amount,
                created_at=position.created_at,
            ),
            "position",
            position.id,
        )

    async def increment_market_pools(
        self, market_id: str, side: Outcome, amount: Decimal
    ) -> Market:
        column = MarketRow.pool_for if side == Outcome.YES else MarketRow.pool_against
        result = await self.session.execute(
            update(MarketRow)
            .where(MarketRow.id == market_id)
            .values({column: column + amount, MarketRow.pool_total: MarketRow.pool_total + amount})
            .returning(MarketRow.id),
            execution_options={"synchronize_session": False},
        )
        if result.scalar_one_or_none() is None:
            raise MarketNotFoundError(market_id)
        return await self.get_market(market_id)

    async def update_market_resolution(
        self,
        market_id: str,
        state: MarketState,
        outcome: Outcome | None,
        resolved_at: datetime,
    ) -> None:
        result = await self.session.execute(
            update(MarketRow)
            .where(MarketRow.id == market_id)
            .values(
                state=state.value,
                outcome=outcome.value if outcome else None,
                resolved_at=resolved_at,
            )
            .returning(MarketRow.id),
            execution_options={"synchronize_session": False},
        )
        if result.scalar_one_or_none() is None:
            raise MarketNotFoundError(market_id)

    # Decisions

    async def get_resolution_decision(self, market_id: str) -> ResolutionDecision | None:
        row = await self.session.scalar(
            select(ResolutionDecisionRow).where(ResolutionDecisionRow.market_id == market_id)
        )
        return _decision(row) if row else None

    async def insert_resolution_decision(self, decision: ResolutionDecision) -> None:
        await self._insert(
            ResolutionDecisionRow(
                id=decision.id,
                market_id=decision.market_id,
                outcome=decision.outcome.value,
                arbitrator_id=decision.arbitrator_id,
                reasoning=decision.reasoning,
                total_payout=decision.total_payout,
                winners_count=decision.winners_count,
                created_at=decision.created_at,
            ),
            "resolution decision",
            decision.market_id,
        )

    # Payments

    async def get_payment(self, checkout_session_id: str) -> PaymentRecord | None:
        row = await self.session.scalar(
            select(PaymentTransactionRow).where(
                PaymentTransactionRow.checkout_session_id == checkout_session_id
            )
        )
        return _payment(row) if row else None

    async def insert_payment(self, payment: PaymentRecord) -> None:
        await self._insert(
            PaymentTransactionRow(
                id=payment.id,
                user_id=payment.user_id,
                checkout_session_id=payment.checkout_session_id,
                payment_intent_id=payment.payment_intent_id,
                package_id=payment.package_id,
                amount_paid=payment.amount_paid,
                currency=payment.currency,
                credits_purchased=payment.credits_purchased,
                created_at=payment.created_at,
            ),
            "payment",
            payment.checkout_session_id,
        )

    # Appeals

    async def get_appeal(self, appeal_id: str) -> Appeal | None:
        row = await self.session.get(AppealRow, appeal_id)
        return _appeal(row) if row else None

    async def find_appeal(self, market_id: str, user_id: str) -> Appeal | None:
        row = await self.session.scalar(
            select(AppealRow).where(AppealRow.market_id == market_id, AppealRow.user_id == user_id)
        )
        return _appeal(row) if row else None

    async def insert_appeal(self, appeal: Appeal) -> None:
        await self._insert(
            AppealRow(
                id=appeal.id,
                market_id=appeal.market_id,
                user_id=appeal.user_id,
                reason=appeal.reason,
                status=appeal.status.value,
                admin_notes=appeal.admin_notes,
                resolved_by=appeal.resolved_by,
                created_at=appeal.created_at,
                resolved_at=appeal.resolved_at,
            ),
            "appeal",
            f"{appeal.market_id}/{appeal.user_id}",
        )

    async def update_appeal(self, appeal: Appeal) -> None:
        await self.session.execute(
            update(AppealRow)
            .where(AppealRow.id == appeal.id)
            .values(
                status=appeal.status.value,
                admin_notes=appeal.admin_notes,
                resolved_by=appeal.resolved_by,
                resolved_at=appeal.resolved_at,
            ),
            execution_options={"synchronize_session": False},
        )

    async def list_appeals(
        self, user_id: str, *, status: AppealStatus | None = None
    ) -> list[Appeal]:
        stmt = (
            select(AppealRow)
            .where(AppealRow.user_id == user_id)
            .order_by(AppealRow.created_at.desc())
        )
        if status is not None:
            stmt = stmt.where(AppealRow.status == status.value)
        result = await self.session.scalars(stmt)
        return [_appeal(row) for row in result.all()]


class SqlLedgerStore:
    """Ledger store over an async_sessionmaker; one unit per transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def unit(self) -> AsyncIterator[SqlLedgerUnit]:
        async with self.session_factory() as session:
            async with session.begin():
                yield SqlLedgerUnit(session)
