"""SQLAlchemy table definitions for the ledger."""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for every ledger table."""

    pass


def _money(**kwargs) -> Column:
    return Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"), **kwargs)


class UserRow(Base):
    """Spendable credit balance per user."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(320), nullable=True, index=True)
    balance = _money()
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="non_negative_balance"),
    )


class MarketRow(Base):
    """Binary market with its running pools."""

    __tablename__ = "markets"

    id = Column(String(36), primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=False)
    arbitrator_type = Column(String(16), nullable=False)
    arbitrator_email = Column(String(320), nullable=True)
    minimum_stake = Column(Numeric(15, 2), nullable=False)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Lifecycle
    state = Column(String(16), nullable=False, default="active")
    outcome = Column(String(3), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    # Pools
    pool_for = _money()
    pool_against = _money()
    pool_total = _money()

    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "arbitrator_type IN ('creator', 'friend', 'ai')",
            name="valid_arbitrator_type",
        ),
        CheckConstraint(
            "arbitrator_type != 'friend' OR arbitrator_email IS NOT NULL",
            name="friend_requires_email",
        ),
        CheckConstraint(
            "state IN ('active', 'cancelled', 'resolved')",
            name="valid_market_state",
        ),
        CheckConstraint(
            "(state = 'resolved') = (outcome IS NOT NULL)",
            name="outcome_iff_resolved",
        ),
        CheckConstraint(
            "minimum_stake >= 1 AND minimum_stake <= 1000000",
            name="minimum_stake_range",
        ),
        Index("idx_markets_state_deadline", "state", "deadline"),
    )


class PositionRow(Base):
    """A stake on one side of a market."""

    __tablename__ = "positions"

    id = Column(String(36), primary_key=True)
    market_id = Column(
        String(36), ForeignKey("markets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    side = Column(String(3), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("side IN ('yes', 'no')", name="valid_position_side"),
        CheckConstraint("amount > 0", name="positive_stake"),
    )


class CreditTransactionRow(Base):
    """Append-only audit record of every balance delta."""

    __tablename__ = "credit_transactions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    transaction_type = Column(String(32), nullable=False)
    description = Column(Text, nullable=False)
    market_id = Column(String(36), nullable=True, index=True)
    position_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "transaction_type IN ('purchase', 'bet', 'payout', 'refund', 'admin_adjustment')",
            name="valid_transaction_type",
        ),
    )


class ResolutionDecisionRow(Base):
    """One row per resolved market; the unique market_id is the idempotency guard."""

    __tablename__ = "resolution_decisions"

    id = Column(String(36), primary_key=True)
    market_id = Column(
        String(36),
        ForeignKey("markets.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    outcome = Column(String(3), nullable=False)
    arbitrator_id = Column(String(36), nullable=False)
    reasoning = Column(Text, nullable=True)
    total_payout = _money()
    winners_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("outcome IN ('yes', 'no')", name="valid_decision_outcome"),
    )


class PaymentTransactionRow(Base):
    """Completed credit purchase, keyed by the provider's checkout session."""

    __tablename__ = "payment_transactions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    checkout_session_id = Column(String(255), nullable=False, unique=True)
    payment_intent_id = Column(String(255), nullable=True)
    package_id = Column(String(64), nullable=True)
    amount_paid = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    credits_purchased = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class AppealRow(Base):
    """Participant appeal against a resolution."""

    __tablename__ = "appeals"

    id = Column(String(36), primary_key=True)
    market_id = Column(
        String(36), ForeignKey("markets.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    admin_notes = Column(Text, nullable=True)
    resolved_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("market_id", "user_id", name="one_appeal_per_participant"),
        CheckConstraint(
            "status IN ('pending', 'reviewing', 'approved', 'rejected')",
            name="valid_appeal_status",
        ),
    )
