from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .encoder import class_record, entry_records, show_record, trial_record
from .errors import DecodeError, LicenseError, RemoteError
from .guard import Chooser, ScoredEntry, ScoredEntryGuard
from .local import LocalStore, Show, Trial, TrialClass
from .mapper import IdentifierMapper
from .rest import RestClient
from .status import Decision, LicenseStatus, Scope


logger = logging.getLogger(__name__)

ProgressSink = Callable[[str, str], None]

SHOW_CONFLICT = ("license_key",)
TRIAL_CONFLICT = ("show_id", "trial_number", "trial_date")
CLASS_CONFLICT = ("trial_id", "element", "level", "section")
ENTRY_CONFLICT = ("class_id", "armband_number")


def log_progress(scope_text: str, task_text: str) -> None:
    logger.info("[%s] %s", scope_text, task_text)


@dataclass
class StageResult:
    name: str
    status: str = "ok"
    count: int = 0
    message: str = ""

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def as_dict(self) -> Dict[str, object]:
        return {"name": self.name, "status": self.status, "count": self.count, "message": self.message}


@dataclass
class UploadReport:
    """What happened in each stage; earlier stages stay committed when a later one fails."""

    scope: Scope
    local_id: int
    scored: List[ScoredEntry] = field(default_factory=list)
    decision: Optional[Decision] = None
    unlocked: int = 0
    cancelled: bool = False
    stages: List[StageResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.cancelled and not any(stage.failed for stage in self.stages)

    @property
    def failures(self) -> List[StageResult]:
        return [stage for stage in self.stages if stage.failed]


def check_license(local: LocalStore, show: Show) -> str:
    """Return the license key, or raise LicenseError when the show may not sync."""

    license_key, status = local.license(show.show_id)
    if status is not LicenseStatus.ACTIVE:
        raise LicenseError(f"License for show '{show.show_name}' is not active ({status.value})")
    return license_key


class UploadOrchestrator:
    def __init__(
        self,
        local: LocalStore,
        rest: RestClient,
        mapper: IdentifierMapper,
        guard: ScoredEntryGuard,
        progress: ProgressSink | None = None,
    ) -> None:
        self.local = local
        self.rest = rest
        self.mapper = mapper
        self.guard = guard
        self.collections = rest.settings.collections
        self.progress = progress or log_progress

    def upload(self, scope: Scope, local_id: int, chooser: Chooser | None = None) -> UploadReport:
        show, trial, trial_class = self.local.scope_chain(scope, local_id)
        license_key = check_license(self.local, show)
        report = UploadReport(scope=scope, local_id=local_id)
        scope_text = f"{scope.value} {local_id}"

        self.progress(scope_text, "Checking for scored entries")
        remote = self.guard.remote_scope(
            scope,
            license_key,
            trial.trial_id if trial else None,
            trial_class.class_id if trial_class else None,
        )
        outcome = self.guard.check_upload(remote, chooser)
        report.scored = outcome.scored
        report.decision = outcome.decision
        if outcome.cancelled:
            logger.info("Upload of %s cancelled by operator", scope_text)
            report.cancelled = True
            return report

        if outcome.unlock:
            self.progress(scope_text, "Unlocking scored entries")
            report.unlocked = self.guard.unlock(remote)

        trials = [trial] if trial else self.local.trials_for_show(show.show_id)
        if trial_class:
            classes = [trial_class]
        else:
            classes = self.local.classes_for_trials([item.trial_id for item in trials])

        self.progress(scope_text, "Uploading show")
        report.stages.append(self._run("show", lambda: self.sync_show(show)))
        self.progress(scope_text, "Uploading trials")
        report.stages.append(self._run("trials", lambda: self.sync_trials(license_key, trials)))
        self.progress(scope_text, "Uploading classes")
        report.stages.append(self._run("classes", lambda: self.sync_classes(license_key, trials, classes)))
        self.progress(scope_text, "Uploading entries")
        report.stages.append(
            self._run("entries", lambda: self.sync_entries(license_key, classes, outcome.include_scores))
        )

        for failure in report.failures:
            logger.warning("Upload stage %s failed: %s", failure.name, failure.message)
        return report

    @staticmethod
    def _run(name: str, stage: Callable[[], StageResult]) -> StageResult:
        try:
            return stage()
        except (RemoteError, DecodeError, ValueError) as exc:
            return StageResult(name=name, status="failed", message=str(exc))

    # ------------------------------------------------------------------
    # Stages

    def sync_show(self, show: Show) -> StageResult:
        count = self.rest.upsert(self.collections.shows, [show_record(show)], SHOW_CONFLICT)
        return StageResult(name="show", count=count)

    def sync_trials(self, license_key: str, trials: Sequence[Trial]) -> StageResult:
        remote_show_id = self.mapper.resolve_show_id(license_key)
        if not remote_show_id:
            return StageResult(name="trials", status="skipped", message="Show has not been uploaded")
        records = [trial_record(trial, remote_show_id) for trial in trials]
        count = self.rest.upsert(self.collections.trials, records, TRIAL_CONFLICT)
        return StageResult(name="trials", count=count)

    def sync_classes(self, license_key: str, trials: Sequence[Trial], classes: Sequence[TrialClass]) -> StageResult:
        remote_trial_ids: Dict[int, int] = {}
        for trial in trials:
            remote_trial_id = self.mapper.resolve_trial_id(license_key, trial.trial_id)
            if remote_trial_id:
                remote_trial_ids[trial.trial_id] = remote_trial_id

        records = [
            class_record(trial_class, remote_trial_ids[trial_class.trial_id])
            for trial_class in classes
            if trial_class.trial_id in remote_trial_ids
        ]
        skipped = len(classes) - len(records)
        if not records:
            if not classes:
                return StageResult(name="classes", message="No classes to upload")
            return StageResult(name="classes", status="skipped", message="Trial has not been uploaded")
        count = self.rest.upsert(self.collections.classes, records, CLASS_CONFLICT)
        message = f"{skipped} classes skipped: trial not uploaded" if skipped else ""
        return StageResult(name="classes", count=count, message=message)

    def sync_entries(self, license_key: str, classes: Sequence[TrialClass], include_scores: bool) -> StageResult:
        entries = self.local.entries_for_classes([trial_class.class_id for trial_class in classes])
        if not entries:
            return StageResult(name="entries", message="No entries to upload")

        local_class_ids = sorted({entry.class_id for entry in entries})
        remote_class_ids = self.mapper.resolve_class_ids(license_key, local_class_ids)
        if not remote_class_ids:
            return StageResult(name="entries", status="skipped", message="Classes have not been uploaded")

        records = entry_records(entries, remote_class_ids, include_scores)
        count = self.rest.upsert(self.collections.entries, records, ENTRY_CONFLICT)
        dropped = len(entries) - len(records)
        message = f"{dropped} entries not uploaded (duplicate armband or class missing)" if dropped else ""
        if not include_scores:
            message = (message + "; " if message else "") + "remote scores kept"
        return StageResult(name="entries", count=count, message=message)
