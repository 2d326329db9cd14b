from __future__ import annotations

import logging

import httpx

from .delete import DeletePropagator
from .download import DownloadReconciler, DownloadReport, Recalculator
from .guard import Chooser, ScoredEntryGuard
from .local import LocalStore
from .mapper import IdentifierMapper
from .rest import RestClient
from .settings import SupabaseSettings
from .status import Scope
from .upload import ProgressSink, UploadOrchestrator, UploadReport, check_license


logger = logging.getLogger(__name__)


class SyncService:
    """Wires the local store, the Supabase client and the sync components together.

    Args:
        settings: Supabase connection details (read from the environment when omitted)
        local: Local trial database (``LOCAL_DATABASE_URL`` when omitted)
        transport: Optional httpx transport, used by tests to stand in for Supabase
        recalculate: Placement/score recalculation run after a download
        progress: Receives ``(scope_text, task_text)`` progress updates
    """

    def __init__(
        self,
        settings: SupabaseSettings | None = None,
        local: LocalStore | None = None,
        transport: httpx.BaseTransport | None = None,
        recalculate: Recalculator | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self.settings = settings or SupabaseSettings.from_env()
        self.local = local or LocalStore()
        self.rest = RestClient(self.settings, transport=transport)
        self.mapper = IdentifierMapper(self.rest)
        self.guard = ScoredEntryGuard(self.rest, self.mapper)
        self.uploader = UploadOrchestrator(self.local, self.rest, self.mapper, self.guard, progress=progress)
        self.downloader = DownloadReconciler(
            self.local,
            self.rest,
            self.mapper,
            self.guard,
            recalculate=recalculate,
            progress=progress,
        )
        self.deleter = DeletePropagator(self.rest, self.mapper)

    def upload(self, scope: Scope, local_id: int, chooser: Chooser | None = None) -> UploadReport:
        return self.uploader.upload(scope, local_id, chooser)

    def download(self, class_id: int, chooser: Chooser | None = None) -> DownloadReport:
        return self.downloader.download(class_id, chooser)

    # Deletes are propagated before the local row goes away, while the
    # license key can still be looked up from the owning show.

    def delete_show(self, show_id: int) -> bool:
        show = self.local.get_show(show_id)
        return self.deleter.delete_show(check_license(self.local, show))

    def delete_trial(self, trial_id: int) -> bool:
        show, trial, _ = self.local.scope_chain(Scope.TRIAL, trial_id)
        return self.deleter.delete_trial(check_license(self.local, show), trial.trial_id)

    def delete_class(self, class_id: int) -> bool:
        show, _, trial_class = self.local.scope_chain(Scope.CLASS, class_id)
        return self.deleter.delete_class(check_license(self.local, show), trial_class.class_id)

    def delete_entry(self, entry_id: int) -> bool:
        entry = self.local.get_entry(entry_id)
        show, _, _ = self.local.scope_chain(Scope.CLASS, entry.class_id)
        return self.deleter.delete_entry(check_license(self.local, show), entry.class_id, entry.entry_id)
