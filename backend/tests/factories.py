"""Builders shared by the test modules."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from prophet.config import ArbitrationConfig, CreditPackage, PaymentsConfig
from prophet.settlement.engine import SettlementEngine
from prophet.settlement.models import (
    ArbitratorType,
    MarketDraft,
    PaymentCompleted,
    Principal,
    User,
)

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
SYSTEM_AI = Principal(user_id=ArbitrationConfig().system_user_id, is_system_ai=True)
WEBHOOK_SECRET = "whsec_test"

# one package per amount the tests fund with, at ten credits per unit of currency
PAYMENTS = PaymentsConfig(
    packages=[
        CreditPackage(id=f"credits_{n}", credits=n, price=Decimal(n) / 10)
        for n in (10, 50, 100, 500, 1000)
    ]
)


class FakeClock:
    """Manually advanced clock; each read moves forward one microsecond so ordering is stable."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(microseconds=1)
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


async def fund(
    engine: SettlementEngine, user_id: str, credits: int = 1000, email: str | None = None
) -> User:
    """Create a user and credit them through the purchase path."""
    user = await engine.ensure_user(user_id, email)
    await engine.record_payment(
        PaymentCompleted(
            checkout_session_id=f"cs_{user_id}_{credits}",
            user_id=user_id,
            package_id=f"credits_{credits}",
            credits=credits,
            amount_paid=Decimal(credits) / 10,
        )
    )
    return user


def draft(
    arbitrator_type: ArbitratorType = ArbitratorType.CREATOR,
    *,
    deadline: datetime | None = None,
    arbitrator_email: str | None = None,
    minimum_stake: Decimal = Decimal("1"),
    title: str = "Will the city marathon be held on schedule?",
    description: str | None = "Resolves YES if the race starts on the announced date.",
) -> MarketDraft:
    return MarketDraft(
        title=title,
        description=description,
        deadline=deadline or START + timedelta(days=7),
        arbitrator_type=arbitrator_type,
        arbitrator_email=arbitrator_email,
        minimum_stake=minimum_stake,
    )


class ScriptedReasoning:
    """Reasoning service stand-in: replays prepared turns in order and records every request."""

    def __init__(self, turns):
        self.turns = list(turns)
        self.calls: list[tuple[str, list, list]] = []

    async def converse(self, system_prompt, history, tools):
        self.calls.append((system_prompt, list(history), list(tools)))
        return self.turns.pop(0)
