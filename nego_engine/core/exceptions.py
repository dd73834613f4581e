"""Custom exceptions for the negotiation engine"""

from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.details.setdefault("code", type(self).__name__)
        super().__init__(self.message)


class NotFoundError(AppException):
    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message=message, status_code=404)


class ValidationError(AppException):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=422, details=details)


class AuthenticationError(AppException):
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message=message, status_code=401)


class AuthorizationError(AppException):
    def __init__(self, message: str = "Access denied", details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=403, details=details)


class ConflictError(AppException):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=409, details=details)


class GoneError(AppException):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=410, details=details)


class ExternalServiceError(AppException):
    def __init__(self, service: str, message: str):
        super().__init__(
            message=f"{service} error: {message}",
            status_code=502,
            details={"service": service},
        )


# ─── Projects ────────────────────────────────────────

class ProjectNotFound(NotFoundError):
    def __init__(self, project_id: str):
        super().__init__("Project", project_id)


class ProjectNotNegotiable(ValidationError):
    def __init__(self, project_id: str, reason: str):
        super().__init__(
            f"Project '{project_id}' cannot be negotiated: {reason}",
            details={"project_id": project_id},
        )


class SelfNegotiation(ValidationError):
    def __init__(self):
        super().__init__("Cannot negotiate on your own project")


# ─── Negotiation protocol ────────────────────────────

class NegotiationNotFound(NotFoundError):
    def __init__(self, negotiation_id: str):
        super().__init__("Negotiation", negotiation_id)


class DuplicateActiveNegotiation(ConflictError):
    def __init__(self, negotiation_id: str | None = None):
        super().__init__(
            "An active negotiation already exists for this project",
            details={"negotiation_id": negotiation_id},
        )


class NegotiationNotActive(ConflictError):
    def __init__(self, negotiation_id: str, status: str):
        super().__init__(
            f"Negotiation is {status}",
            details={"negotiation_id": negotiation_id, "status": status},
        )


class NegotiationExpired(GoneError):
    def __init__(self, negotiation_id: str):
        super().__init__(
            "Negotiation has expired; start a new one",
            details={"negotiation_id": negotiation_id},
        )


class NegotiationNotAccepted(ConflictError):
    def __init__(self, negotiation_id: str, status: str):
        super().__init__(
            "Discount codes are only issued for accepted negotiations",
            details={"negotiation_id": negotiation_id, "status": status},
        )


class ConcurrentModification(ConflictError):
    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} was modified concurrently; reload and retry",
            details={"resource": resource, "id": identifier},
        )


class InvalidSequence(ConflictError):
    def __init__(self, message: str, expected: int | None = None, actual: int | None = None):
        super().__init__(message, details={"expected": expected, "actual": actual})


class PriceOutOfBounds(ValidationError):
    def __init__(self, amount, floor_price, list_price):
        super().__init__(
            f"Offer must be between {floor_price} and {list_price}",
            details={
                "amount": str(amount),
                "floor_price": str(floor_price),
                "list_price": str(list_price),
            },
        )


class InvalidAmount(ValidationError):
    def __init__(self, amount):
        super().__init__(
            "Offer amount must be a finite number with at most two decimal places",
            details={"amount": str(amount)},
        )


class InvalidCounterOffer(ValidationError):
    def __init__(self, message: str, rule: str):
        super().__init__(message, details={"rule": rule})


class WrongProposer(AuthorizationError):
    def __init__(self, message: str):
        super().__init__(message)


class NotAParticipant(AuthorizationError):
    def __init__(self):
        super().__init__("You are not a party to this negotiation")


class RateLimitExceeded(AppException):
    def __init__(self, limit: int):
        super().__init__(
            "Rate limit exceeded. Please wait before sending another offer.",
            status_code=429,
            details={"limit_per_hour": limit},
        )


class AlreadyReported(ConflictError):
    def __init__(self):
        super().__init__("Already reported by you")


# ─── Discount codes ──────────────────────────────────

class CodeNotFound(NotFoundError):
    def __init__(self):
        super().__init__("Discount code")


class CodeExpired(GoneError):
    def __init__(self, code: str):
        super().__init__("Discount code has expired", details={"discount_code": code})


class CodeVoided(GoneError):
    def __init__(self, code: str):
        super().__init__("Discount code is no longer valid", details={"discount_code": code})


class CodeAlreadyRedeemed(ConflictError):
    def __init__(self, code: str):
        super().__init__("Discount code has already been used", details={"discount_code": code})


class ProjectMismatch(ValidationError):
    def __init__(self, code: str):
        super().__init__(
            "Discount code is not valid for this project",
            details={"discount_code": code},
        )
