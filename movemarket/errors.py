from __future__ import annotations


class MarketplaceError(Exception):
    """Base for every domain failure surfaced to API callers.

    Each subclass carries a stable machine-readable ``code`` and the HTTP
    status the API layer renders it with.
    """

    code = "MARKETPLACE_ERROR"
    status_code = 400

    def __init__(self, message: str = "", *, details: dict | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "status": int(self.status_code),
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(MarketplaceError):
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthorizationError(MarketplaceError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(MarketplaceError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(MarketplaceError):
    code = "CONFLICT"
    status_code = 409


class SignatureError(MarketplaceError):
    code = "SIGNATURE_INVALID"
    status_code = 400


class PaymentGatewayError(MarketplaceError):
    code = "PAYMENT_GATEWAY_ERROR"
    status_code = 502


class InvalidTransitionError(MarketplaceError):
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, current: str, target: str, message: str = ""):
        super().__init__(
            message or f"invalid_delivery_transition {current}->{target}",
            details={"from": current, "to": target},
        )
        self.current = current
        self.target = target
