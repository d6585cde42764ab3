"""Arbitrator authorization by market arbitration mode."""

from prophet.errors import AIBetManualResolveError, UnauthorizedArbitratorError
from prophet.settlement.models import ArbitratorType, Market, Principal


def _same_email(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.strip().casefold() == b.strip().casefold()


def authorize_arbitrator(market: Market, principal: Principal) -> None:
    """Raise unless `principal` may resolve `market`.

    creator: the principal is the market creator.
    friend:  the principal's verified email is the designated arbitrator email.
    ai:      only the system AI principal; humans must go through arbitration.
    """
    if market.arbitrator_type is ArbitratorType.AI:
        if principal.is_system_ai:
            return
        raise AIBetManualResolveError()

    if principal.is_system_ai:
        raise UnauthorizedArbitratorError()

    if market.arbitrator_type is ArbitratorType.CREATOR:
        if principal.user_id == market.creator_id:
            return
    elif market.arbitrator_type is ArbitratorType.FRIEND:
        if _same_email(principal.email, market.arbitrator_email):
            return

    raise UnauthorizedArbitratorError()
