"""Request bodies for the HTTP API."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from prophet.settlement.models import AppealStatus, ArbitratorType, Outcome


class CreateMarketRequest(BaseModel):
    title: str
    description: str | None = None
    deadline: datetime
    arbitrator_type: ArbitratorType = ArbitratorType.CREATOR
    arbitrator_email: str | None = None
    minimum_stake: Decimal = Decimal("1")


class PlaceStakeRequest(BaseModel):
    side: Outcome
    amount: Decimal


class ResolveMarketRequest(BaseModel):
    outcome: Outcome
    reasoning: str | None = Field(default=None, max_length=5000)


class AdminCreditRequest(BaseModel):
    user_id: str
    amount: Decimal
    reason: str | None = None


class FileAppealRequest(BaseModel):
    market_id: str
    reason: str


class ReviewAppealRequest(BaseModel):
    status: AppealStatus
    admin_notes: str
