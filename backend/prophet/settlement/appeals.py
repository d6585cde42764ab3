"""Appeals against market resolutions.

Participants of a resolved market may file one appeal each; admins approve or
reject it. An approved appeal is a recorded decision only. Reversing payouts
is a manual admin action outside this service.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from prophet.errors import (
    AppealAlreadyResolvedError,
    AppealExistsError,
    AppealNotFoundError,
    BetNotResolvedError,
    ForbiddenError,
    MarketNotFoundError,
    NotParticipantError,
    ValidationFailedError,
)
from prophet.settlement.models import Appeal, AppealStatus, MarketState, Principal, utc_now
from prophet.storage.base import DuplicateRecordError, LedgerStore

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 10
OPEN_STATUSES = (AppealStatus.PENDING, AppealStatus.REVIEWING)


class AppealService:
    def __init__(self, store: LedgerStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    async def file_appeal(self, market_id: str, principal: Principal, reason: str) -> Appeal:
        reason = reason.strip()
        if len(reason) < MIN_TEXT_LENGTH:
            raise ValidationFailedError(
                "Invalid appeal",
                {"reason": f"Reason must be at least {MIN_TEXT_LENGTH} characters"},
            )

        async with self.store.unit() as unit:
            market = await unit.get_market(market_id)
            if market is None:
                raise MarketNotFoundError(market_id)
            if market.state is not MarketState.RESOLVED:
                raise BetNotResolvedError()

            positions = await unit.list_positions(market_id)
            if not any(p.user_id == principal.user_id for p in positions):
                raise NotParticipantError()

            if await unit.find_appeal(market_id, principal.user_id) is not None:
                raise AppealExistsError()

            appeal = Appeal(
                market_id=market_id,
                user_id=principal.user_id,
                reason=reason,
                created_at=self.clock(),
            )
            try:
                await unit.insert_appeal(appeal)
            except DuplicateRecordError as e:
                raise AppealExistsError() from e

        logger.info(f"Appeal {appeal.id} filed by {principal.user_id} on market {market_id}")
        return appeal

    async def review_appeal(
        self,
        appeal_id: str,
        principal: Principal,
        status: AppealStatus,
        admin_notes: str,
    ) -> Appeal:
        """Close an open appeal as approved or rejected. Admin only."""
        if not principal.is_admin:
            raise ForbiddenError("Only admins can resolve appeals")
        if status not in (AppealStatus.APPROVED, AppealStatus.REJECTED):
            raise ValidationFailedError(
                "Invalid appeal review", {"status": "Status must be approved or rejected"}
            )
        admin_notes = admin_notes.strip()
        if len(admin_notes) < MIN_TEXT_LENGTH:
            raise ValidationFailedError(
                "Invalid appeal review",
                {"admin_notes": f"Notes must be at least {MIN_TEXT_LENGTH} characters"},
            )

        async with self.store.unit() as unit:
            appeal = await unit.get_appeal(appeal_id)
            if appeal is None:
                raise AppealNotFoundError(appeal_id)
            if appeal.status not in OPEN_STATUSES:
                raise AppealAlreadyResolvedError()

            appeal = appeal.model_copy(
                update={
                    "status": status,
                    "admin_notes": admin_notes,
                    "resolved_by": principal.user_id,
                    "resolved_at": self.clock(),
                }
            )
            await unit.update_appeal(appeal)

        logger.info(f"Appeal {appeal_id} {status} by {principal.user_id}")
        return appeal

    async def get_appeal(self, appeal_id: str, principal: Principal) -> Appeal:
        async with self.store.unit() as unit:
            appeal = await unit.get_appeal(appeal_id)
        if appeal is None:
            raise AppealNotFoundError(appeal_id)
        if appeal.user_id != principal.user_id and not principal.is_admin:
            raise ForbiddenError("You do not have permission to view this appeal")
        return appeal

    async def list_appeals(
        self, principal: Principal, status: AppealStatus | None = None
    ) -> list[Appeal]:
        """The caller's appeals, newest first."""
        async with self.store.unit() as unit:
            return await unit.list_appeals(principal.user_id, status=status)
