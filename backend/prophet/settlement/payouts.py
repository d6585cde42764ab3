"""
Payout Calculator

Pure pari-mutuel redistribution of a market's pool.

Formulas:
- total_pool   = sum of every stake (both sides)
- winning_pool = sum of stakes on the winning side
- payout       = stake * total_pool / winning_pool, floored to the cent
- leftover cents (at most one per winner) go to the winners with the largest
  truncated fractions, ties broken by earliest stake
- no winning stakes: every stake is refunded in full

The plan always pays out exactly total_pool; verify_conservation() is the
last check before anything is written.
"""

from decimal import ROUND_DOWN, Decimal
from typing import Iterable

from prophet.errors import ConsistencyViolationError
from prophet.settlement.models import CENT, Outcome, Payout, Position, SettlementPlan

ZERO = Decimal("0.00")


def plan_settlement(positions: Iterable[Position], outcome: Outcome) -> SettlementPlan:
    """Compute every payout for a market resolved to `outcome`."""
    positions = list(positions)
    total_pool = sum((p.amount for p in positions), ZERO)
    winners = [p for p in positions if p.side == outcome]
    winning_pool = sum((p.amount for p in winners), ZERO)

    if not winners or winning_pool <= 0:
        refunds = [
            Payout(position_id=p.id, user_id=p.user_id, stake=p.amount, amount=p.amount)
            for p in positions
        ]
        return SettlementPlan(
            outcome=outcome,
            total_pool=total_pool,
            winning_pool=ZERO,
            payouts=refunds,
            refund=True,
        )

    floored: list[tuple[Position, Decimal, Decimal]] = []
    for position in winners:
        exact = position.amount * total_pool / winning_pool
        amount = exact.quantize(CENT, rounding=ROUND_DOWN)
        floored.append((position, amount, exact - amount))

    leftover_cents = int((total_pool - sum(a for _, a, _ in floored)) / CENT)
    ranked = sorted(
        range(len(floored)),
        key=lambda i: (-floored[i][2], floored[i][0].created_at, floored[i][0].id),
    )
    bonus = set(ranked[:leftover_cents])

    payouts = [
        Payout(
            position_id=position.id,
            user_id=position.user_id,
            stake=position.amount,
            amount=amount + (CENT if i in bonus else ZERO),
        )
        for i, (position, amount, _) in enumerate(floored)
    ]

    return SettlementPlan(
        outcome=outcome,
        total_pool=total_pool,
        winning_pool=winning_pool,
        payouts=payouts,
    )


def verify_conservation(plan: SettlementPlan, pool_total: Decimal | None = None) -> None:
    """Refuse to commit a plan that creates or destroys credits."""
    paid = plan.total_paid
    if paid != plan.total_pool:
        raise ConsistencyViolationError(
            f"payouts sum to {paid}, pool holds {plan.total_pool}"
        )
    if pool_total is not None and pool_total != plan.total_pool:
        raise ConsistencyViolationError(
            f"market pool_total {pool_total} does not match staked total {plan.total_pool}"
        )
    if any(p.amount < 0 for p in plan.payouts):
        raise ConsistencyViolationError("negative payout")
