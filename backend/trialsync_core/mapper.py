from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from .rest import RestClient
from .schemas import RemoteClassRef, RemoteIdRow, decode_rows
from .settings import Collections


logger = logging.getLogger(__name__)


class IdentifierMapper:
    """Resolves local ids to remote surrogate ids through the license key.

    Nothing is cached: every call goes back to Supabase, and 0 means "not
    uploaded yet" rather than an error.
    """

    def __init__(self, rest: RestClient, collections: Collections | None = None) -> None:
        self.rest = rest
        self.collections = collections or rest.settings.collections

    def resolve_show_id(self, license_key: str | None) -> int:
        key = (license_key or "").strip()
        if not key:
            return 0
        payload = self.rest.select(self.collections.shows, "id", {"license_key": key})
        rows = decode_rows(RemoteIdRow, payload, "resolve show")
        return rows[0].id if rows else 0

    def resolve_trial_id(self, license_key: str | None, local_trial_id: int | None) -> int:
        if not local_trial_id:
            return 0
        show_id = self.resolve_show_id(license_key)
        if not show_id:
            return 0
        payload = self.rest.select(
            self.collections.trials,
            "id",
            {"show_id": show_id, "access_trial_id": local_trial_id},
        )
        rows = decode_rows(RemoteIdRow, payload, "resolve trial")
        return rows[0].id if rows else 0

    def show_trial_ids(self, remote_show_id: int) -> List[int]:
        if not remote_show_id:
            return []
        payload = self.rest.select(self.collections.trials, "id", {"show_id": remote_show_id})
        return [row.id for row in decode_rows(RemoteIdRow, payload, "trials for show")]

    def trial_class_ids(self, remote_trial_ids: Iterable[int]) -> List[int]:
        trial_ids = sorted({trial_id for trial_id in remote_trial_ids if trial_id})
        if not trial_ids:
            return []
        payload = self.rest.select(self.collections.classes, "id", {"trial_id": trial_ids})
        return [row.id for row in decode_rows(RemoteIdRow, payload, "classes for trial")]

    def resolve_class_id(self, license_key: str | None, local_class_id: int | None) -> int:
        if not local_class_id:
            return 0
        return self.resolve_class_ids(license_key, [local_class_id]).get(local_class_id, 0)

    def resolve_class_ids(self, license_key: str | None, local_class_ids: Iterable[int]) -> Dict[int, int]:
        """Map several local class ids in one classes query.

        Classes are matched on their back-reference and restricted to trials of
        the show owning ``license_key``; unresolved ids are simply absent.
        """

        class_ids = sorted({class_id for class_id in local_class_ids if class_id})
        if not class_ids:
            return {}
        show_id = self.resolve_show_id(license_key)
        if not show_id:
            return {}
        trial_ids = self.show_trial_ids(show_id)
        if not trial_ids:
            return {}
        payload = self.rest.select(
            self.collections.classes,
            "id,trial_id,access_class_id",
            {"trial_id": trial_ids, "access_class_id": class_ids},
        )
        mapping: Dict[int, int] = {}
        for row in decode_rows(RemoteClassRef, payload, "resolve classes"):
            if row.access_class_id is not None and row.access_class_id not in mapping:
                mapping[row.access_class_id] = row.id
        missing = [class_id for class_id in class_ids if class_id not in mapping]
        if missing:
            logger.info("Classes not yet uploaded: %s", missing)
        return mapping
