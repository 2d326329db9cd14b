from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping

from .errors import ConfigurationError


DEFAULT_TIMEOUT = 10.0
DEFAULT_LOCAL_DATABASE_URL = "sqlite:///trialsync.db"


@dataclass(frozen=True)
class Collections:
    """Remote collection names, overridable per deployment."""

    shows: str = "shows"
    trials: str = "trials"
    classes: str = "classes"
    entries: str = "entries"


@dataclass(frozen=True)
class SupabaseSettings:
    """Connection details for the Supabase REST endpoint.

    Passed explicitly into every client constructor so nothing in the sync
    path reads the environment on its own.
    """

    url: str
    key: str
    schema: str = "public"
    timeout: float = DEFAULT_TIMEOUT
    collections: Collections = field(default_factory=Collections)
    unlock_class_procedure: str = "unlock_class_scores"
    unlock_trial_procedure: str = "unlock_trial_scores"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SupabaseSettings":
        env = os.environ if environ is None else environ

        url = (env.get("SUPABASE_URL") or "").strip()
        key = (
            env.get("SUPABASE_SERVICE_ROLE_KEY")
            or env.get("SUPABASE_SERVICE_KEY")
            or env.get("SUPABASE_ANON_KEY")
            or ""
        ).strip()
        if not url or not key:
            raise ConfigurationError("SUPABASE_URL and a Supabase API key are required")

        timeout_raw = env.get("SUPABASE_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
        except ValueError as exc:
            raise ConfigurationError(f"Invalid SUPABASE_TIMEOUT value: {timeout_raw!r}") from exc

        collections = Collections(
            shows=env.get("SUPABASE_SHOWS_TABLE", "shows"),
            trials=env.get("SUPABASE_TRIALS_TABLE", "trials"),
            classes=env.get("SUPABASE_CLASSES_TABLE", "classes"),
            entries=env.get("SUPABASE_ENTRIES_TABLE", "entries"),
        )

        return cls(
            url=url,
            key=key,
            schema=env.get("SUPABASE_SCHEMA", "public") or "public",
            timeout=timeout,
            collections=collections,
        )

    def endpoint(self, collection: str) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/{collection}"

    def rpc_endpoint(self, procedure: str) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/rpc/{procedure}"

    def headers(self, prefer: str | None = None, write: bool = False) -> Dict[str, str]:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Accept": "application/json",
        }
        if self.schema and self.schema != "public":
            headers["Accept-Profile"] = self.schema
            if write:
                headers["Content-Profile"] = self.schema
        if write:
            headers["Content-Type"] = "application/json"
        if prefer:
            headers["Prefer"] = prefer
        return headers


def local_database_url(environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    return env.get("LOCAL_DATABASE_URL") or DEFAULT_LOCAL_DATABASE_URL
