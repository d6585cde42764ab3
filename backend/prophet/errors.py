"""Domain error codes and exceptions.

Every rejected precondition raises a ProphetError subclass carrying a
machine-readable code, a human-readable message, an HTTP status for the API
layer, and an ErrorKind that tells callers how to recover:

  validation      bad input shape/range, never retried
  not_found       referenced record does not exist
  state_conflict  market/appeal is in the wrong state; re-check before retrying
  authorization   principal may not perform the operation
  security        prompt-injection marker detected; hard stop
  unresolvable    arbitrator could not establish the truth (business outcome)
  dependency      reasoning/search service failure; safe to retry later
  consistency     ledger invariant broken; commit aborted
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    AUTHORIZATION = "authorization"
    SECURITY = "security"
    UNRESOLVABLE = "unresolvable"
    DEPENDENCY = "dependency"
    CONSISTENCY = "consistency"


class ProphetError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 500,
        kind: ErrorKind = ErrorKind.STATE_CONFLICT,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.kind = kind
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message, "kind": self.kind.value}


# --- Validation ---

class ValidationFailedError(ProphetError):
    def __init__(self, message: str, fields: dict[str, str] | None = None) -> None:
        super().__init__("VALIDATION_ERROR", message, 400, ErrorKind.VALIDATION)
        self.fields = fields or {}


class InvalidAmountError(ProphetError):
    def __init__(self, message: str) -> None:
        super().__init__("INVALID_AMOUNT", message, 400, ErrorKind.VALIDATION)


# --- Not found ---

class MarketNotFoundError(ProphetError):
    def __init__(self, market_id: str) -> None:
        super().__init__("MARKET_NOT_FOUND", f"Market not found: {market_id}", 404, ErrorKind.NOT_FOUND)


class UserNotFoundError(ProphetError):
    def __init__(self, user_id: str) -> None:
        super().__init__("USER_NOT_FOUND", f"User not found: {user_id}", 404, ErrorKind.NOT_FOUND)


class AppealNotFoundError(ProphetError):
    def __init__(self, appeal_id: str) -> None:
        super().__init__("APPEAL_NOT_FOUND", f"Appeal not found: {appeal_id}", 404, ErrorKind.NOT_FOUND)


# --- State conflict ---

class AlreadyResolvedError(ProphetError):
    def __init__(self, market_id: str, detail: str = "already resolved") -> None:
        super().__init__("ALREADY_RESOLVED", f"Market {market_id} is {detail}", 409)


class BetResolvedError(ProphetError):
    def __init__(self, message: str = "Bet is already resolved") -> None:
        super().__init__("BET_RESOLVED", message, 400)


class DeadlineNotPassedError(ProphetError):
    def __init__(self) -> None:
        super().__init__("DEADLINE_NOT_PASSED", "Cannot resolve bet before deadline", 400)


class DeadlinePassedError(ProphetError):
    def __init__(self, message: str = "Market deadline has passed") -> None:
        super().__init__("DEADLINE_PASSED", message, 400)


class MarketClosedError(ProphetError):
    def __init__(self, market_id: str) -> None:
        super().__init__("MARKET_CLOSED", f"Market {market_id} is not accepting bets", 400)


class InsufficientBalanceError(ProphetError):
    def __init__(self, user_id: str) -> None:
        super().__init__("INSUFFICIENT_BALANCE", f"Insufficient balance for user {user_id}", 400)


class NotAIBetError(ProphetError):
    def __init__(self) -> None:
        super().__init__("NOT_AI_BET", "This bet is not set up for AI arbitration", 400)


class BetNotResolvedError(ProphetError):
    def __init__(self) -> None:
        super().__init__(
            "BET_NOT_RESOLVED", "Cannot appeal a bet that has not been resolved yet", 400
        )


class AppealExistsError(ProphetError):
    def __init__(self) -> None:
        super().__init__("APPEAL_EXISTS", "You have already submitted an appeal for this bet", 409)


class AppealAlreadyResolvedError(ProphetError):
    def __init__(self) -> None:
        super().__init__("APPEAL_ALREADY_RESOLVED", "Appeal has already been resolved", 400)


# --- Authorization ---

class UnauthorizedArbitratorError(ProphetError):
    def __init__(self) -> None:
        super().__init__(
            "UNAUTHORIZED_ARBITRATOR",
            "You are not authorized to resolve this bet",
            403,
            ErrorKind.AUTHORIZATION,
        )


class AIBetManualResolveError(ProphetError):
    def __init__(self) -> None:
        super().__init__(
            "AI_BET_MANUAL_RESOLVE",
            "AI bets must be resolved through the AI arbitrator system",
            403,
            ErrorKind.AUTHORIZATION,
        )


class NotCreatorError(ProphetError):
    def __init__(self) -> None:
        super().__init__(
            "NOT_CREATOR", "Only the bet creator can cancel this bet", 403, ErrorKind.AUTHORIZATION
        )


class NotParticipantError(ProphetError):
    def __init__(self) -> None:
        super().__init__(
            "NOT_PARTICIPANT",
            "You can only appeal bets you participated in",
            403,
            ErrorKind.AUTHORIZATION,
        )


class ForbiddenError(ProphetError):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__("FORBIDDEN", message, 403, ErrorKind.AUTHORIZATION)


# --- Security ---

class SecurityViolationError(ProphetError):
    def __init__(self, message: str = "Suspicious content detected in bet") -> None:
        super().__init__(
            "SECURITY_VIOLATION", f"Security violation: {message}", 400, ErrorKind.SECURITY
        )


# --- Arbitration outcomes ---

class UnresolvableError(ProphetError):
    def __init__(self, conclusion: str = "Insufficient evidence") -> None:
        super().__init__(
            "UNRESOLVABLE",
            f"Bet cannot be resolved: {conclusion}",
            422,
            ErrorKind.UNRESOLVABLE,
        )
        self.conclusion = conclusion


class ArbitrationUnavailableError(ProphetError):
    def __init__(self, detail: str = "AI arbitration system temporarily unavailable") -> None:
        super().__init__("AI_ERROR", detail, 503, ErrorKind.DEPENDENCY)


# --- Consistency ---

class ConsistencyViolationError(ProphetError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            "CONSISTENCY_VIOLATION",
            f"Ledger consistency violation: {detail}",
            500,
            ErrorKind.CONSISTENCY,
        )


# --- Authentication ---

class UnauthenticatedError(ProphetError):
    def __init__(self) -> None:
        super().__init__(
            "UNAUTHENTICATED", "Authentication required", 401, ErrorKind.AUTHORIZATION
        )
