"""
Error taxonomy for the charging and booking-payment flows.

All failures raised by services are `ChargingError` instances tagged with an
`ErrorKind`. Callers (exception handlers, tests) switch on `kind`, never on a
concrete exception subclass.
"""
import enum
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    EXTERNAL_API = "external_api"
    EXTERNAL_AUTH = "external_auth"
    INTERNAL = "internal"


DEFAULT_STATUS = {
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.EXTERNAL_API: 502,
    ErrorKind.EXTERNAL_AUTH: 502,
    ErrorKind.INTERNAL: 500,
}

# Returned to clients instead of the service message for kinds whose details
# may contain upstream payloads or internals.
GENERIC_MESSAGES = {
    ErrorKind.EXTERNAL_API: "The charger platform could not complete the request. Try again in a moment.",
    ErrorKind.EXTERNAL_AUTH: "The charger platform is temporarily unavailable. Try again in a moment.",
    ErrorKind.INTERNAL: "Something went wrong. Try again in a moment.",
}


class ChargingError(Exception):
    """Tagged error carrying everything needed to log it and answer the caller."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_hint: Optional[int] = None,
        cause: Optional[BaseException] = None,
        body: Any = None,
        context: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_hint = status_hint
        self.cause = cause
        self.body = body
        self.context = context

    @property
    def http_status(self) -> int:
        if self.kind == ErrorKind.EXTERNAL_API:
            if self.status_hint is None or self.status_hint >= 500 or self.status_hint < 400:
                return 502
            return self.status_hint
        return DEFAULT_STATUS[self.kind]

    @property
    def public_message(self) -> str:
        return GENERIC_MESSAGES.get(self.kind, self.message)

    def __repr__(self):
        return (
            f"ChargingError(kind={self.kind.value}, status_hint={self.status_hint}, "
            f"context={self.context!r}, message={self.message!r})"
        )

    @classmethod
    def unauthenticated(cls, message: str = "User is not authenticated.") -> "ChargingError":
        return cls(ErrorKind.AUTHENTICATION, message)

    @classmethod
    def forbidden(cls, message: str = "Action not allowed.") -> "ChargingError":
        return cls(ErrorKind.AUTHORIZATION, message)

    @classmethod
    def bad_request(cls, message: str) -> "ChargingError":
        return cls(ErrorKind.VALIDATION, message)

    @classmethod
    def not_found(cls, message: str) -> "ChargingError":
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def internal(cls, message: str, cause: Optional[BaseException] = None) -> "ChargingError":
        return cls(ErrorKind.INTERNAL, message, cause=cause)

    @classmethod
    def external(
        cls,
        status: Optional[int],
        body: Any,
        context: str,
        message: str = "Enode API error",
        cause: Optional[BaseException] = None,
    ) -> "ChargingError":
        return cls(
            ErrorKind.EXTERNAL_API,
            message,
            status_hint=status,
            cause=cause,
            body=body,
            context=context,
        )

    @classmethod
    def external_auth(
        cls,
        status: Optional[int],
        body: Any,
        message: str = "Enode OAuth token exchange failed",
        cause: Optional[BaseException] = None,
    ) -> "ChargingError":
        return cls(
            ErrorKind.EXTERNAL_AUTH,
            message,
            status_hint=status,
            cause=cause,
            body=body,
            context="enode-oauth",
        )
