"""Scored-entry protection for both sync directions.

Before anything that could clobber a judge's results, the guard lists the
entries already scored on the receiving side and asks the operator whether
to cancel, keep those scores, or unlock and overwrite them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .errors import NoMatchingRowError, RemoteRequestError
from .local import LocalStore
from .mapper import IdentifierMapper
from .rest import RestClient
from .schemas import RemoteEntryResult, RemoteScoredEntry, decode_rows
from .status import Decision, Direction, Scope


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredEntry:
    armband: int
    dog_name: Optional[str]
    handler_name: Optional[str]
    class_id: Optional[int] = None
    entry_id: Optional[int] = None

    def label(self) -> str:
        names = " / ".join(part for part in (self.dog_name, self.handler_name) if part)
        return f"#{self.armband} {names}".strip()


Chooser = Callable[[Direction, List[ScoredEntry]], Decision]


@dataclass
class RemoteScope:
    """Remote ids covered by an upload, resolved fresh for each run."""

    scope: Scope
    show_id: int = 0
    trial_ids: List[int] | None = None
    class_ids: List[int] | None = None

    @property
    def is_uploaded(self) -> bool:
        return bool(self.class_ids)


@dataclass
class GuardOutcome:
    scored: List[ScoredEntry]
    decision: Optional[Decision] = None

    @property
    def cancelled(self) -> bool:
        return self.decision is Decision.CANCEL

    @property
    def include_scores(self) -> bool:
        # Nothing scored on the receiving side means nothing to protect.
        return self.decision is None or self.decision is Decision.OVERWRITE

    @property
    def unlock(self) -> bool:
        return self.decision is Decision.OVERWRITE


def ask(chooser: Optional[Chooser], direction: Direction, scored: List[ScoredEntry]) -> GuardOutcome:
    if not scored:
        return GuardOutcome(scored=[])
    if chooser is None:
        logger.info("%d scored entries found and no chooser supplied; keeping existing scores", len(scored))
        return GuardOutcome(scored=scored, decision=Decision.KEEP)
    decision = chooser(direction, scored)
    logger.info("Operator chose %s for %d scored entries (%s)", decision.value, len(scored), direction.value)
    return GuardOutcome(scored=scored, decision=decision)


class ScoredEntryGuard:
    def __init__(self, rest: RestClient, mapper: IdentifierMapper) -> None:
        self.rest = rest
        self.mapper = mapper
        self.settings = rest.settings

    # ------------------------------------------------------------------
    # Upload direction: what is already scored in Supabase

    def remote_scope(self, scope: Scope, license_key: str, local_trial_id: int | None, local_class_id: int | None) -> RemoteScope:
        if scope is Scope.CLASS:
            class_id = self.mapper.resolve_class_id(license_key, local_class_id)
            return RemoteScope(scope=scope, class_ids=[class_id] if class_id else [])
        if scope is Scope.TRIAL:
            trial_id = self.mapper.resolve_trial_id(license_key, local_trial_id)
            trial_ids = [trial_id] if trial_id else []
            return RemoteScope(scope=scope, trial_ids=trial_ids, class_ids=self.mapper.trial_class_ids(trial_ids))
        show_id = self.mapper.resolve_show_id(license_key)
        trial_ids = self.mapper.show_trial_ids(show_id)
        return RemoteScope(
            scope=scope,
            show_id=show_id,
            trial_ids=trial_ids,
            class_ids=self.mapper.trial_class_ids(trial_ids),
        )

    def remote_scored_entries(self, remote_class_ids: Iterable[int]) -> List[ScoredEntry]:
        class_ids = sorted({class_id for class_id in remote_class_ids if class_id})
        if not class_ids:
            return []
        payload = self.rest.select(
            self.settings.collections.entries,
            "class_id,armband_number,dog_call_name,handler_name",
            {"class_id": class_ids, "is_scored": True},
        )
        rows = decode_rows(RemoteScoredEntry, payload, "scored entries")
        rows.sort(key=lambda row: (row.class_id or 0, row.armband_number))
        return [
            ScoredEntry(
                armband=row.armband_number,
                dog_name=row.dog_call_name,
                handler_name=row.handler_name,
                class_id=row.class_id,
            )
            for row in rows
        ]

    def check_upload(self, remote: RemoteScope, chooser: Optional[Chooser]) -> GuardOutcome:
        return ask(chooser, Direction.UPLOAD, self.remote_scored_entries(remote.class_ids or []))

    # ------------------------------------------------------------------
    # Unlock

    def unlock(self, remote: RemoteScope) -> int:
        """Clear the scored flag for the scope so the next upload may overwrite it."""

        if remote.scope is Scope.CLASS:
            return sum(self._unlock_class(class_id) for class_id in remote.class_ids or [])
        return sum(self._unlock_trial(trial_id) for trial_id in remote.trial_ids or [])

    def _unlock_class(self, remote_class_id: int) -> int:
        try:
            count = self.rest.rpc_count(self.settings.unlock_class_procedure, {"p_class_id": remote_class_id})
        except RemoteRequestError as exc:
            if exc.status_code != 404:
                raise
            count = self._clear_scored_flags([remote_class_id])
        logger.info("Unlocked %d entries in remote class %s", count, remote_class_id)
        return count

    def _unlock_trial(self, remote_trial_id: int) -> int:
        try:
            count = self.rest.rpc_count(self.settings.unlock_trial_procedure, {"p_trial_id": remote_trial_id})
        except RemoteRequestError as exc:
            if exc.status_code != 404:
                raise
            count = self._clear_scored_flags(self.mapper.trial_class_ids([remote_trial_id]))
        logger.info("Unlocked %d entries in remote trial %s", count, remote_trial_id)
        return count

    def _clear_scored_flags(self, remote_class_ids: List[int]) -> int:
        # Used when the unlock procedure is not deployed on the project.
        if not remote_class_ids:
            return 0
        logger.info("Unlock procedure unavailable; clearing scored flags directly")
        try:
            rows = self.rest.patch(
                self.settings.collections.entries,
                {"class_id": sorted(remote_class_ids), "is_scored": True},
                {"is_scored": False},
            )
        except NoMatchingRowError:
            return 0
        return len(rows)

    # ------------------------------------------------------------------
    # Download direction: what is already scored locally

    @staticmethod
    def local_conflicts(local: LocalStore, remote_rows: Iterable[RemoteEntryResult]) -> List[ScoredEntry]:
        incoming: Dict[int, RemoteEntryResult] = {
            row.access_entry_id: row for row in remote_rows if row.is_scored and row.access_entry_id
        }
        scored_locally = local.scored_entries(incoming.keys())
        conflicts = [
            ScoredEntry(
                armband=entry.armband,
                dog_name=entry.dog_call_name,
                handler_name=entry.handler_name,
                class_id=entry.class_id,
                entry_id=entry.entry_id,
            )
            for entry in scored_locally.values()
        ]
        conflicts.sort(key=lambda item: item.armband)
        return conflicts

    def check_download(self, local: LocalStore, remote_rows: List[RemoteEntryResult], chooser: Optional[Chooser]) -> GuardOutcome:
        return ask(chooser, Direction.DOWNLOAD, self.local_conflicts(local, remote_rows))
