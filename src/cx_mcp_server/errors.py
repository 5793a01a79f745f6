"""Error taxonomy shared by every component that talks to the backend.

Failures against the upstream service fall into three buckets:

  - ``CLIENT_ERROR``: the backend answered with a 4xx.
  - ``SERVER_ERROR``: the backend answered with a 5xx.
  - ``NETWORK_ERROR``: no usable answer at all (timeout, refused
    connection, anything unexpected).  These carry ``statusCode = 0``.

The authenticator and the user-account service never raise across their
public boundary; they return an ``ErrorInfo`` wrapped in a result envelope.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import Any


class ErrorType(str, enum.Enum):
    CLIENT_ERROR = "CLIENT_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


@dataclasses.dataclass(frozen=True)
class ErrorInfo:
    """Structured description of a failed backend interaction."""

    type: ErrorType
    status_code: int
    message: str
    details: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "statusCode": self.status_code,
            "message": self.message,
            "details": self.details,
        }


def classify_status(status_code: int) -> ErrorType:
    """Map an HTTP status code onto the client/server side of the taxonomy."""
    return ErrorType.SERVER_ERROR if status_code >= 500 else ErrorType.CLIENT_ERROR


def network_error(message: str, details: Any = None) -> ErrorInfo:
    return ErrorInfo(
        type=ErrorType.NETWORK_ERROR,
        status_code=0,
        message=message,
        details=details,
    )


class ConfigError(Exception):
    """Raised when required configuration is missing or malformed."""


class BackendRequestError(Exception):
    """Raised when a pass-through request to the backend fails."""
