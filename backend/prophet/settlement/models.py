"""Pydantic models for markets, stakes, ledger records and settlement results."""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field

CENT = Decimal("0.01")


def to_cents(value: Decimal | int | float | str) -> Decimal:
    """Quantize any money amount to cents."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def new_id() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on the way back; treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ArbitratorType(StrEnum):
    CREATOR = "creator"
    FRIEND = "friend"
    AI = "ai"


class MarketState(StrEnum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    RESOLVED = "resolved"


class Outcome(StrEnum):
    YES = "yes"
    NO = "no"

    @classmethod
    def from_bool(cls, value: bool) -> "Outcome":
        return cls.YES if value else cls.NO


class TransactionType(StrEnum):
    PURCHASE = "purchase"
    BET = "bet"
    PAYOUT = "payout"
    REFUND = "refund"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class AppealStatus(StrEnum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    APPROVED = "approved"
    REJECTED = "rejected"


class Principal(BaseModel):
    """Authenticated caller, supplied by the identity collaborator."""

    user_id: str
    email: str | None = None
    is_system_ai: bool = False
    is_admin: bool = False


class User(BaseModel):
    id: str
    email: str | None = None
    balance: Decimal = Decimal("0.00")
    is_admin: bool = False


class Market(BaseModel):
    """Binary proposition with a deadline and an arbitration mode."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str | None = None
    deadline: datetime
    arbitrator_type: ArbitratorType
    arbitrator_email: str | None = None
    minimum_stake: Decimal
    creator_id: str
    state: MarketState = MarketState.ACTIVE
    outcome: Outcome | None = None
    pool_for: Decimal = Decimal("0.00")
    pool_against: Decimal = Decimal("0.00")
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: datetime | None = None

    @property
    def pool_total(self) -> Decimal:
        return self.pool_for + self.pool_against

    @property
    def resolved(self) -> bool:
        """True once the market left ACTIVE, whether by resolution or cancellation."""
        return self.state is not MarketState.ACTIVE

    def deadline_passed(self, now: datetime) -> bool:
        return as_utc(self.deadline) <= now


class Position(BaseModel):
    """A user's stake on one side of a market. Never mutated after insert."""

    id: str = Field(default_factory=new_id)
    market_id: str
    user_id: str
    side: Outcome
    amount: Decimal
    created_at: datetime = Field(default_factory=utc_now)


class CreditTransaction(BaseModel):
    """Append-only audit record of a balance delta."""

    id: str = Field(default_factory=new_id)
    user_id: str
    amount: Decimal
    transaction_type: TransactionType
    description: str
    market_id: str | None = None
    position_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class ResolutionDecision(BaseModel):
    """Created exactly once per market when settlement commits."""

    id: str = Field(default_factory=new_id)
    market_id: str
    outcome: Outcome
    arbitrator_id: str
    reasoning: str | None = None
    total_payout: Decimal
    winners_count: int
    created_at: datetime = Field(default_factory=utc_now)


class PaymentRecord(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    checkout_session_id: str
    payment_intent_id: str | None = None
    package_id: str | None = None
    amount_paid: Decimal
    currency: str
    credits_purchased: int
    created_at: datetime = Field(default_factory=utc_now)


class Appeal(BaseModel):
    id: str = Field(default_factory=new_id)
    market_id: str
    user_id: str
    reason: str
    status: AppealStatus = AppealStatus.PENDING
    admin_notes: str | None = None
    resolved_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: datetime | None = None


# ============================================================================
# Inputs
# ============================================================================


class MarketDraft(BaseModel):
    """Raw market creation request, validated by the engine against config limits."""

    title: str
    description: str | None = None
    deadline: datetime
    arbitrator_type: ArbitratorType
    arbitrator_email: str | None = None
    minimum_stake: Decimal


class PaymentCompleted(BaseModel):
    """Verified 'checkout completed' event from the payments provider."""

    checkout_session_id: str
    payment_intent_id: str | None = None
    user_id: str
    package_id: str | None = None
    credits: int = Field(gt=0)
    amount_paid: Decimal
    currency: str = "usd"
    customer_email: str | None = None


# ============================================================================
# Results
# ============================================================================


class Payout(BaseModel):
    position_id: str
    user_id: str
    stake: Decimal
    amount: Decimal


class SettlementPlan(BaseModel):
    """Pure computation of who receives what for a given outcome."""

    outcome: Outcome
    total_pool: Decimal
    winning_pool: Decimal
    payouts: list[Payout]
    refund: bool = Field(
        default=False,
        description="True when nobody backed the winning side and every stake is returned",
    )

    @property
    def winners_count(self) -> int:
        return 0 if self.refund else len({p.user_id for p in self.payouts})

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payouts), Decimal("0.00"))


class ResolutionResult(BaseModel):
    decision_id: str
    market_id: str
    outcome: Outcome
    total_payout: Decimal
    winners_count: int
    refunded: bool = False


class StakeResult(BaseModel):
    stake_id: str
    market_id: str
    side: Outcome
    amount: Decimal
    new_balance: Decimal
    pool_for: Decimal
    pool_against: Decimal
    pool_total: Decimal


class RefundFailure(BaseModel):
    position_id: str
    user_id: str
    amount: Decimal
    error: str


class CancelResult(BaseModel):
    market_id: str
    refunded_count: int
    total_refunded: Decimal
    failed_refunds: list[RefundFailure] = Field(default_factory=list)


class BalanceAudit(BaseModel):
    user_id: str
    balance: Decimal
    ledger_total: Decimal
    transactions: int

    @property
    def consistent(self) -> bool:
        return self.balance == self.ledger_total
