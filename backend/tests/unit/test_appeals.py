"""Unit tests for the appeals workflow."""

from decimal import Decimal

import pytest

from factories import draft, fund
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
from prophet.settlement.models import AppealStatus, Outcome, Principal

CREATOR = Principal(user_id="creator")
ALICE = Principal(user_id="alice")
ADMIN = Principal(user_id="admin", is_admin=True)
REASON = "The race was postponed by a day, see the organiser's notice."


@pytest.fixture
async def resolved_market(engine, clock):
    await engine.ensure_user("creator")
    market = await engine.create_market(draft(), CREATOR)
    await fund(engine, "alice", 100)
    await engine.place_stake(market.id, "alice", Outcome.NO, Decimal("10"))
    clock.advance(days=8)
    await engine.resolve_market(market.id, Outcome.YES, CREATOR)
    return market


class TestFileAppeal:
    async def test_participant_files_pending_appeal(self, appeals, resolved_market) -> None:
        appeal = await appeals.file_appeal(resolved_market.id, ALICE, REASON)
        assert appeal.status is AppealStatus.PENDING
        assert appeal.user_id == "alice"
        assert await appeals.list_appeals(ALICE) == [appeal]

    async def test_one_appeal_per_user_and_market(self, appeals, resolved_market) -> None:
        await appeals.file_appeal(resolved_market.id, ALICE, REASON)
        with pytest.raises(AppealExistsError):
            await appeals.file_appeal(resolved_market.id, ALICE, REASON)

    async def test_non_participant(self, appeals, resolved_market) -> None:
        with pytest.raises(NotParticipantError):
            await appeals.file_appeal(resolved_market.id, CREATOR, REASON)

    async def test_short_reason(self, appeals, resolved_market) -> None:
        with pytest.raises(ValidationFailedError):
            await appeals.file_appeal(resolved_market.id, ALICE, "  wrong  ")

    async def test_unresolved_market(self, engine, appeals) -> None:
        await engine.ensure_user("creator")
        market = await engine.create_market(draft(), CREATOR)
        with pytest.raises(BetNotResolvedError):
            await appeals.file_appeal(market.id, ALICE, REASON)

    async def test_unknown_market(self, appeals) -> None:
        with pytest.raises(MarketNotFoundError):
            await appeals.file_appeal("missing", ALICE, REASON)


class TestReviewAppeal:
    async def test_admin_approves(self, appeals, resolved_market) -> None:
        appeal = await appeals.file_appeal(resolved_market.id, ALICE, REASON)
        reviewed = await appeals.review_appeal(
            appeal.id, ADMIN, AppealStatus.APPROVED, "Organiser notice confirms delay."
        )
        assert reviewed.status is AppealStatus.APPROVED
        assert reviewed.resolved_by == "admin"
        assert reviewed.resolved_at is not None

        with pytest.raises(AppealAlreadyResolvedError):
            await appeals.review_appeal(
                appeal.id, ADMIN, AppealStatus.REJECTED, "Changed my mind entirely."
            )

    async def test_approval_leaves_balances_alone(self, engine, appeals, resolved_market) -> None:
        appeal = await appeals.file_appeal(resolved_market.id, ALICE, REASON)
        await appeals.review_appeal(appeal.id, ADMIN, AppealStatus.APPROVED, "Valid complaint here.")
        assert await engine.get_balance("alice") == Decimal("90.00")

    async def test_requires_admin(self, appeals, resolved_market) -> None:
        appeal = await appeals.file_appeal(resolved_market.id, ALICE, REASON)
        with pytest.raises(ForbiddenError):
            await appeals.review_appeal(appeal.id, ALICE, AppealStatus.APPROVED, REASON)

    async def test_status_must_be_terminal(self, appeals, resolved_market) -> None:
        appeal = await appeals.file_appeal(resolved_market.id, ALICE, REASON)
        with pytest.raises(ValidationFailedError):
            await appeals.review_appeal(appeal.id, ADMIN, AppealStatus.REVIEWING, REASON)

    async def test_unknown_appeal(self, appeals) -> None:
        with pytest.raises(AppealNotFoundError):
            await appeals.review_appeal("missing", ADMIN, AppealStatus.REJECTED, REASON)


class TestGetAppeal:
    async def test_visible_to_owner_and_admin_only(self, appeals, resolved_market) -> None:
        appeal = await appeals.file_appeal(resolved_market.id, ALICE, REASON)
        assert (await appeals.get_appeal(appeal.id, ALICE)).id == appeal.id
        assert (await appeals.get_appeal(appeal.id, ADMIN)).id == appeal.id
        with pytest.raises(ForbiddenError):
            await appeals.get_appeal(appeal.id, CREATOR)

    async def test_list_filters_by_status(self, appeals, resolved_market) -> None:
        appeal = await appeals.file_appeal(resolved_market.id, ALICE, REASON)
        assert await appeals.list_appeals(ALICE, AppealStatus.APPROVED) == []
        assert [a.id for a in await appeals.list_appeals(ALICE, AppealStatus.PENDING)] == [
            appeal.id
        ]
