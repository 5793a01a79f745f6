"""Session records held by the ``SessionManager``.

Two shapes exist:

  - ``SessionData`` is what callers put in and get back: the backend's own
    cookie (``cnx``), its advisory expiry hint and the account it belongs to.
    It is immutable; nothing outside the manager can change a live session.
  - ``SessionRecord`` wraps ``SessionData`` with the locally computed
    expiry.  Only the manager creates or refreshes records.

The backend's ``cnx_expires`` hint is carried along for transparency but is
never used to decide validity; local expiry is always ``created + TTL`` (or
``refreshed + TTL``).
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Any


@dataclasses.dataclass(frozen=True)
class SessionData:
    """Authentication state captured from the backend's login redirect.

    Attributes:
        cnx:          Backend session cookie value, passed through untouched.
        cnx_expires:  Expiry hint supplied by the backend (advisory only).
        account_uuid: Account the cookie authenticates as.
    """

    cnx: str
    cnx_expires: str
    account_uuid: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "cnx": self.cnx,
            "cnxExpires": self.cnx_expires,
            "accountUuid": self.account_uuid,
        }


@dataclasses.dataclass(frozen=True)
class SessionRecord:
    token: str
    data: SessionData
    created_at: datetime.datetime
    expires_at: datetime.datetime

    def is_expired(self, now: datetime.datetime) -> bool:
        return now >= self.expires_at

    def refreshed(self, now: datetime.datetime, ttl: datetime.timedelta) -> SessionRecord:
        return dataclasses.replace(self, expires_at=now + ttl)

    def __str__(self) -> str:
        return (
            f"SessionRecord(account={self.data.account_uuid}, "
            f"expires_at={self.expires_at.isoformat()})"
        )


@dataclasses.dataclass(frozen=True)
class ActiveSession:
    """Monitoring view of a live session; ``token`` is already redacted."""

    token: str
    account_uuid: str
    expires_at: datetime.datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "accountUuid": self.account_uuid,
            "expiresAt": self.expires_at.isoformat(),
        }
