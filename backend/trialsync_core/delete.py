from __future__ import annotations

import logging

from .mapper import IdentifierMapper
from .rest import RestClient


logger = logging.getLogger(__name__)


class DeletePropagator:
    """Removes remote rows for records deleted locally.

    Parent ids are resolved first; when any of them resolves to 0 the record
    was never uploaded and no DELETE is sent.
    """

    def __init__(self, rest: RestClient, mapper: IdentifierMapper) -> None:
        self.rest = rest
        self.mapper = mapper
        self.collections = rest.settings.collections

    def delete_show(self, license_key: str) -> bool:
        show_id = self.mapper.resolve_show_id(license_key)
        if not show_id:
            logger.info("Show %s was never uploaded; nothing to delete", license_key)
            return False
        return self.rest.delete(self.collections.shows, {"id": show_id})

    def delete_trial(self, license_key: str, local_trial_id: int) -> bool:
        show_id = self.mapper.resolve_show_id(license_key)
        if not show_id:
            logger.info("Show %s was never uploaded; trial %s not deleted remotely", license_key, local_trial_id)
            return False
        return self.rest.delete(
            self.collections.trials,
            {"show_id": show_id, "access_trial_id": local_trial_id},
        )

    def delete_class(self, license_key: str, local_class_id: int) -> bool:
        show_id = self.mapper.resolve_show_id(license_key)
        trial_ids = self.mapper.show_trial_ids(show_id)
        if not trial_ids:
            logger.info("No remote trials for %s; class %s not deleted remotely", license_key, local_class_id)
            return False
        return self.rest.delete(
            self.collections.classes,
            {"trial_id": trial_ids, "access_class_id": local_class_id},
        )

    def delete_entry(self, license_key: str, local_class_id: int, local_entry_id: int) -> bool:
        class_id = self.mapper.resolve_class_id(license_key, local_class_id)
        if not class_id:
            logger.info("Class %s was never uploaded; entry %s not deleted remotely", local_class_id, local_entry_id)
            return False
        return self.rest.delete(
            self.collections.entries,
            {"class_id": class_id, "access_entry_id": local_entry_id},
        )
