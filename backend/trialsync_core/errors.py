"""Error taxonomy for the sync path."""

from __future__ import annotations

from typing import Any, List


class SyncError(RuntimeError):
    """Base class for every failure raised by trialsync_core."""


class ConfigurationError(SyncError):
    pass


class LicenseError(SyncError):
    """The show's license is not active; the operation does not proceed."""


class LocalRecordNotFound(SyncError, ValueError):
    pass


class LocalStoreError(SyncError):
    """A local write failed; rows written before the failure stay written."""


class RemoteError(SyncError):
    pass


class RemoteUnavailableError(RemoteError):
    """Transport-level failure talking to Supabase."""


class RemoteRequestError(RemoteError):
    """Supabase answered with a non-2xx status."""

    def __init__(self, method: str, url: str, status_code: int, body: str, detail: str | None = None) -> None:
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        self.detail = detail
        message = f"{method} {url} failed with {status_code}"
        if detail:
            message += f": {detail}"
        elif body:
            message += f": {body}"
        super().__init__(message)


class NoMatchingRowError(RemoteError):
    """A PATCH matched nothing on the remote side."""


class DecodeError(SyncError):
    """A remote payload did not match the expected shape."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class UnknownStatusError(DecodeError):
    pass


class ChoiceRequired(SyncError):
    """Raised by non-interactive choosers when an operator decision is needed."""

    def __init__(self, direction: str, scored: List[Any]) -> None:
        super().__init__(f"{len(scored)} scored entries need an operator decision before {direction}")
        self.direction = direction
        self.scored = scored
