"""
core/errors.py -- Error taxonomy shared by the auth core and the HTTP layer.

Every core failure is raised as a ServiceError carrying three things:
  kind   -- one of ErrorKind; the HTTP layer maps it to a status code
  phrase -- message catalog key (see core/messages.py), never rendered text
  args   -- interpolation arguments for the phrase

The core never builds user-visible strings. api/main.py renders the phrase in
the caller's locale inside the standard error envelope.

Layer rule: core/ is the kernel. No imports from api/, auth/, or orgs/.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    bad_credentials = "bad_credentials"
    conflict = "conflict"
    not_found = "not_found"
    invalid_token = "invalid_token"
    persistence_failure = "persistence_failure"
    unauthorized = "unauthorized"
    internal = "internal_error"


# "Not found" shares 409 with "conflict": login and logout failures are
# indistinguishable by status alone.
STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.bad_credentials: 400,
    ErrorKind.conflict: 409,
    ErrorKind.not_found: 409,
    ErrorKind.invalid_token: 401,
    ErrorKind.persistence_failure: 409,
    ErrorKind.unauthorized: 401,
    ErrorKind.internal: 500,
}


class ServiceError(Exception):
    """Base class for every failure the core reports to its callers."""

    kind: ErrorKind = ErrorKind.internal

    def __init__(self, phrase: str, **args: Any) -> None:
        super().__init__(phrase)
        self.phrase = phrase
        self.args_map: dict[str, Any] = args

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, phrase={self.phrase!r}, args={self.args_map!r})"


class BadCredentialsError(ServiceError):
    kind = ErrorKind.bad_credentials


class ConflictError(ServiceError):
    kind = ErrorKind.conflict


class NotFoundError(ServiceError):
    kind = ErrorKind.not_found


class InvalidTokenError(ServiceError):
    """Forged, expired, or malformed session token.

    All three causes share this one type and one phrase so callers cannot tell
    a forged token from an expired one by the error shape.
    """

    kind = ErrorKind.invalid_token

    def __init__(self, phrase: str = "Wrong authentication token", **args: Any) -> None:
        super().__init__(phrase, **args)


class PersistenceFailureError(ServiceError):
    kind = ErrorKind.persistence_failure


class UnauthorizedError(ServiceError):
    kind = ErrorKind.unauthorized

    def __init__(self, phrase: str = "You do not have enough permission to perform this action", **args: Any) -> None:
        super().__init__(phrase, **args)


class HashingError(ServiceError):
    """The password hashing primitive itself failed or exceeded its deadline."""

    kind = ErrorKind.internal

    def __init__(self, phrase: str = "Unable to process credentials", **args: Any) -> None:
        super().__init__(phrase, **args)
