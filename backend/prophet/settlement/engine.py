"""
Settlement Engine

Single funnel for every balance, pool and market-state mutation:
market creation, stakes, resolution payouts, cancellation refunds,
credit purchases and admin adjustments.

Each operation validates, then runs its writes inside one ledger unit so a
failure leaves no partial state. Cancellation refunds are the exception:
they run one unit per staker, best-effort, and failures are reported for
reconciliation via retry_refunds().
"""

import logging
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from prophet.config import PaymentsConfig, SettlementConfig
from prophet.errors import (
    AlreadyResolvedError,
    BetResolvedError,
    DeadlineNotPassedError,
    DeadlinePassedError,
    ForbiddenError,
    InvalidAmountError,
    MarketClosedError,
    MarketNotFoundError,
    NotCreatorError,
    UserNotFoundError,
    ValidationFailedError,
)
from prophet.settlement.authorization import authorize_arbitrator
from prophet.settlement.models import (
    ArbitratorType,
    BalanceAudit,
    CancelResult,
    CreditTransaction,
    Market,
    MarketDraft,
    MarketState,
    Outcome,
    PaymentCompleted,
    PaymentRecord,
    Position,
    Principal,
    RefundFailure,
    ResolutionDecision,
    ResolutionResult,
    StakeResult,
    TransactionType,
    User,
    as_utc,
    to_cents,
    utc_now,
)
from prophet.settlement.payouts import plan_settlement, verify_conservation
from prophet.storage.base import DuplicateRecordError, LedgerStore

logger = logging.getLogger(__name__)


class SettlementEngine:
    """Resolves markets and moves credits through the ledger store."""

    def __init__(
        self,
        store: LedgerStore,
        config: SettlementConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        payments: PaymentsConfig | None = None,
    ):
        self.store = store
        self.config = config or SettlementConfig()
        self.clock = clock
        self.payments = payments or PaymentsConfig()

    # ------------------------------------------------------------------
    # Markets
    # ------------------------------------------------------------------

    def _validate_draft(self, draft: MarketDraft, now: datetime) -> dict[str, str]:
        errors: dict[str, str] = {}
        title = draft.title.strip()
        if not title:
            errors["title"] = "Title is required"
        elif len(title) > self.config.title_max_length:
            errors["title"] = f"Title must be at most {self.config.title_max_length} characters"

        if draft.description and len(draft.description) > self.config.description_max_length:
            errors["description"] = (
                f"Description must be at most {self.config.description_max_length} characters"
            )

        if as_utc(draft.deadline) <= now:
            errors["deadline"] = "Deadline must be in the future"

        if draft.arbitrator_type is ArbitratorType.FRIEND:
            if not draft.arbitrator_email or "@" not in draft.arbitrator_email:
                errors["arbitrator_email"] = "Friend arbitration requires a valid arbitrator email"
        elif draft.arbitrator_email:
            errors["arbitrator_email"] = "Arbitrator email is only allowed for friend arbitration"

        if not self.config.min_stake <= draft.minimum_stake <= self.config.max_stake:
            errors["minimum_stake"] = (
                f"Minimum stake must be between {self.config.min_stake} and {self.config.max_stake}"
            )
        return errors

    async def create_market(self, draft: MarketDraft, principal: Principal) -> Market:
        """Create an active market with empty pools."""
        now = self.clock()
        errors = self._validate_draft(draft, now)
        if errors:
            raise ValidationFailedError("Invalid market", errors)

        market = Market(
            title=draft.title.strip(),
            description=draft.description.strip() if draft.description else None,
            deadline=as_utc(draft.deadline),
            arbitrator_type=draft.arbitrator_type,
            arbitrator_email=(
                draft.arbitrator_email.strip() if draft.arbitrator_email else None
            ),
            minimum_stake=to_cents(draft.minimum_stake),
            creator_id=principal.user_id,
            created_at=now,
        )
        async with self.store.unit() as unit:
            if await unit.get_user(principal.user_id) is None:
                raise UserNotFoundError(principal.user_id)
            await unit.insert_market(market)

        logger.info(
            f"Created market {market.id} '{market.title}' "
            f"({market.arbitrator_type}, deadline {market.deadline.isoformat()})"
        )
        return market

    async def get_market(self, market_id: str) -> Market:
        async with self.store.unit() as unit:
            market = await unit.get_market(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market

    async def list_markets(
        self,
        state: MarketState | None = None,
        arbitrator_type: ArbitratorType | None = None,
        deadline_before: datetime | None = None,
    ) -> list[Market]:
        async with self.store.unit() as unit:
            return await unit.list_markets(
                state=state, arbitrator_type=arbitrator_type, deadline_before=deadline_before
            )

    async def list_positions(self, market_id: str) -> list[Position]:
        async with self.store.unit() as unit:
            return await unit.list_positions(market_id)

    # ------------------------------------------------------------------
    # Stakes
    # ------------------------------------------------------------------

    async def place_stake(
        self, market_id: str, user_id: str, side: Outcome, amount: Decimal
    ) -> StakeResult:
        """Debit the user, record the position and grow the pool, atomically."""
        amount = to_cents(amount)
        if amount <= 0:
            raise InvalidAmountError("Stake amount must be positive")
        if amount > self.config.max_stake:
            raise InvalidAmountError(f"Stake amount cannot exceed {self.config.max_stake}")

        now = self.clock()
        async with self.store.unit() as unit:
            market = await unit.get_market(market_id, for_update=True)
            if market is None:
                raise MarketNotFoundError(market_id)
            if market.state is not MarketState.ACTIVE:
                raise MarketClosedError(market_id)
            if market.deadline_passed(now):
                raise DeadlinePassedError("Market deadline has passed")
            if amount < market.minimum_stake:
                raise InvalidAmountError(f"Minimum stake is {market.minimum_stake}")

            new_balance = await unit.apply_balance_delta(user_id, -amount, require_funds=True)
            position = Position(
                market_id=market_id, user_id=user_id, side=side, amount=amount, created_at=now
            )
            await unit.insert_position(position)
            market = await unit.increment_market_pools(market_id, side, amount)
            await unit.insert_credit_transaction(
                CreditTransaction(
                    user_id=user_id,
                    amount=-amount,
                    transaction_type=TransactionType.BET,
                    description=f"Bet placed on \"{market.title}\" - {side.value.upper()}",
                    market_id=market_id,
                    position_id=position.id,
                    created_at=now,
                )
            )

        logger.info(f"Stake {position.id}: {user_id} put {amount} on {side} in {market_id}")
        return StakeResult(
            stake_id=position.id,
            market_id=market_id,
            side=side,
            amount=amount,
            new_balance=new_balance,
            pool_for=market.pool_for,
            pool_against=market.pool_against,
            pool_total=market.pool_total,
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve_market(
        self,
        market_id: str,
        outcome: Outcome,
        principal: Principal,
        reasoning: str | None = None,
    ) -> ResolutionResult:
        """
        Settle a market for `outcome` and pay the winning side.

        Winners share the whole pool pro rata to their stakes. If nobody
        backed the outcome, every stake is refunded instead. Payouts, the
        market state change and the decision row commit together or not at
        all; the decision's unique market_id makes a second resolution fail.
        """
        now = self.clock()
        async with self.store.unit() as unit:
            market = await unit.get_market(market_id, for_update=True)
            if market is None:
                raise MarketNotFoundError(market_id)
            if await unit.get_resolution_decision(market_id) is not None:
                raise AlreadyResolvedError(market_id)
            if market.state is not MarketState.ACTIVE:
                raise AlreadyResolvedError(market_id, detail=market.state.value)
            if not market.deadline_passed(now):
                raise DeadlineNotPassedError()
            authorize_arbitrator(market, principal)

            positions = await unit.list_positions(market_id)
            plan = plan_settlement(positions, outcome)
            verify_conservation(plan, market.pool_total)

            tx_type = TransactionType.REFUND if plan.refund else TransactionType.PAYOUT
            for payout in plan.payouts:
                if payout.amount <= 0:
                    continue
                await unit.apply_balance_delta(payout.user_id, payout.amount)
                await unit.insert_credit_transaction(
                    CreditTransaction(
                        user_id=payout.user_id,
                        amount=payout.amount,
                        transaction_type=tx_type,
                        description=(
                            f"Refund: no winning stakes on \"{market.title}\""
                            if plan.refund
                            else f"Won bet: \"{market.title}\" - {outcome.value.upper()}"
                        ),
                        market_id=market_id,
                        position_id=payout.position_id,
                        created_at=now,
                    )
                )

            await unit.update_market_resolution(market_id, MarketState.RESOLVED, outcome, now)
            decision = ResolutionDecision(
                market_id=market_id,
                outcome=outcome,
                arbitrator_id=principal.user_id,
                reasoning=reasoning,
                total_payout=plan.total_paid,
                winners_count=plan.winners_count,
                created_at=now,
            )
            try:
                await unit.insert_resolution_decision(decision)
            except DuplicateRecordError as e:
                raise AlreadyResolvedError(market_id) from e

        logger.info(
            f"Resolved market {market_id} as {outcome}: paid {plan.total_paid} "
            f"to {plan.winners_count} winner(s)"
            + (" (no winning stakes, refunded)" if plan.refund else "")
        )
        return ResolutionResult(
            decision_id=decision.id,
            market_id=market_id,
            outcome=outcome,
            total_payout=plan.total_paid,
            winners_count=plan.winners_count,
            refunded=plan.refund,
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel_market(self, market_id: str, principal: Principal) -> CancelResult:
        """Cancel before the deadline and refund every stake, best-effort per staker."""
        now = self.clock()
        async with self.store.unit() as unit:
            market = await unit.get_market(market_id, for_update=True)
            if market is None:
                raise MarketNotFoundError(market_id)
            if market.creator_id != principal.user_id:
                raise NotCreatorError()
            if market.state is not MarketState.ACTIVE:
                raise BetResolvedError("Cannot cancel a resolved bet")
            if market.deadline_passed(now):
                raise DeadlinePassedError("Cannot cancel bet after deadline has passed")
            await unit.update_market_resolution(market_id, MarketState.CANCELLED, None, now)
            positions = await unit.list_positions(market_id)

        logger.info(f"Cancelled market {market_id}; refunding {len(positions)} stake(s)")
        return await self._refund_positions(market, positions, now)

    async def retry_refunds(self, market_id: str) -> CancelResult:
        """Refund every position of a cancelled market that has no refund record yet."""
        now = self.clock()
        async with self.store.unit() as unit:
            market = await unit.get_market(market_id)
            if market is None:
                raise MarketNotFoundError(market_id)
            if market.state is not MarketState.CANCELLED:
                raise BetResolvedError("Only cancelled bets can have refunds retried")
            positions = await unit.list_positions(market_id)
            transactions = await unit.list_credit_transactions(market_id=market_id)

        refunded = {
            tx.position_id
            for tx in transactions
            if tx.transaction_type is TransactionType.REFUND
        }
        pending = [p for p in positions if p.id not in refunded]
        logger.info(f"Retrying {len(pending)} refund(s) for cancelled market {market_id}")
        return await self._refund_positions(market, pending, now)

    async def _refund_positions(
        self, market: Market, positions: list[Position], now: datetime
    ) -> CancelResult:
        refunded_count = 0
        total_refunded = Decimal("0.00")
        failures: list[RefundFailure] = []

        for position in positions:
            try:
                async with self.store.unit() as unit:
                    await unit.apply_balance_delta(position.user_id, position.amount)
                    await unit.insert_credit_transaction(
                        CreditTransaction(
                            user_id=position.user_id,
                            amount=position.amount,
                            transaction_type=TransactionType.REFUND,
                            description=f"Refund for cancelled bet: \"{market.title}\"",
                            market_id=market.id,
                            position_id=position.id,
                            created_at=now,
                        )
                    )
            except Exception as e:
                logger.error(
                    f"Refund failed for position {position.id} "
                    f"(user {position.user_id}, {position.amount}) on market {market.id}: {e}"
                )
                failures.append(
                    RefundFailure(
                        position_id=position.id,
                        user_id=position.user_id,
                        amount=position.amount,
                        error=str(e),
                    )
                )
                continue
            refunded_count += 1
            total_refunded += position.amount

        if failures:
            logger.warning(
                f"Market {market.id}: {len(failures)} refund(s) need reconciliation"
            )
        return CancelResult(
            market_id=market.id,
            refunded_count=refunded_count,
            total_refunded=total_refunded,
            failed_refunds=failures,
        )

    # ------------------------------------------------------------------
    # Credits
    # ------------------------------------------------------------------

    def validate_payment(self, event: PaymentCompleted) -> None:
        """A payment must buy exactly one catalogue package at its listed price."""
        errors: dict[str, str] = {}
        package = self.payments.get_package(event.package_id) if event.package_id else None
        if package is None:
            errors["package_id"] = f"Unknown credit package: {event.package_id}"
        else:
            if event.credits != package.credits:
                errors["credits"] = f"Package {package.id} grants {package.credits} credits"
            if to_cents(event.amount_paid) != to_cents(package.price):
                errors["amount_paid"] = f"Package {package.id} costs {to_cents(package.price)}"
        if event.currency.lower() != self.payments.currency.lower():
            errors["currency"] = f"Payments are accepted in {self.payments.currency}"
        if errors:
            logger.warning(
                f"Rejected payment {event.checkout_session_id} for {event.user_id}: {errors}"
            )
            raise ValidationFailedError("Payment does not match a credit package", errors)

    async def record_payment(self, event: PaymentCompleted) -> PaymentRecord:
        """Credit a completed checkout. Replays of the same session are no-ops."""
        self.validate_payment(event)
        now = self.clock()
        async with self.store.unit() as unit:
            existing = await unit.get_payment(event.checkout_session_id)
            if existing is not None:
                logger.info(f"Payment {event.checkout_session_id} already recorded")
                return existing

            if await unit.get_user(event.user_id) is None:
                raise UserNotFoundError(event.user_id)

            record = PaymentRecord(
                user_id=event.user_id,
                checkout_session_id=event.checkout_session_id,
                payment_intent_id=event.payment_intent_id,
                package_id=event.package_id,
                amount_paid=to_cents(event.amount_paid),
                currency=event.currency,
                credits_purchased=event.credits,
                created_at=now,
            )
            await unit.insert_payment(record)
            credits = to_cents(event.credits)
            await unit.apply_balance_delta(event.user_id, credits)
            await unit.insert_credit_transaction(
                CreditTransaction(
                    user_id=event.user_id,
                    amount=credits,
                    transaction_type=TransactionType.PURCHASE,
                    description=(
                        f"Purchased {event.credits} credits"
                        + (f" ({event.package_id})" if event.package_id else "")
                    ),
                    created_at=now,
                )
            )

        logger.info(f"Credited {event.credits} purchased credits to {event.user_id}")
        return record

    async def adjust_balance(
        self, principal: Principal, user_id: str, amount: Decimal, reason: str | None = None
    ) -> Decimal:
        """Admin credit grant; returns the new balance."""
        if not principal.is_admin:
            raise ForbiddenError("Only admins can adjust balances")
        amount = to_cents(amount)
        if amount <= 0 or amount > self.config.max_admin_credit:
            raise InvalidAmountError(
                f"Amount must be between 0.01 and {self.config.max_admin_credit}"
            )

        now = self.clock()
        async with self.store.unit() as unit:
            new_balance = await unit.apply_balance_delta(user_id, amount)
            await unit.insert_credit_transaction(
                CreditTransaction(
                    user_id=user_id,
                    amount=amount,
                    transaction_type=TransactionType.ADMIN_ADJUSTMENT,
                    description=reason or f"Admin credit by {principal.user_id}",
                    created_at=now,
                )
            )

        logger.info(f"Admin {principal.user_id} credited {amount} to {user_id}")
        return new_balance

    async def ensure_user(self, user_id: str, email: str | None = None) -> User:
        """Return the user, creating a zero-balance account on first sight."""
        async with self.store.unit() as unit:
            user = await unit.get_user(user_id)
            if user is None:
                user = User(id=user_id, email=email)
                await unit.insert_user(user)
                logger.info(f"Created account for {user_id}")
        return user

    async def get_balance(self, user_id: str) -> Decimal:
        async with self.store.unit() as unit:
            user = await unit.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user.balance

    async def audit_balance(self, user_id: str) -> BalanceAudit:
        """Rebuild a balance from the transaction log and compare."""
        async with self.store.unit() as unit:
            user = await unit.get_user(user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            transactions = await unit.list_credit_transactions(user_id=user_id)

        audit = BalanceAudit(
            user_id=user_id,
            balance=user.balance,
            ledger_total=sum((tx.amount for tx in transactions), Decimal("0.00")),
            transactions=len(transactions),
        )
        if not audit.consistent:
            logger.error(
                f"Balance mismatch for {user_id}: stored {audit.balance}, "
                f"ledger {audit.ledger_total}"
            )
        return audit

