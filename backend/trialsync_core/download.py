from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .encoder import format_seconds
from .errors import LocalRecordNotFound, LocalStoreError
from .guard import Chooser, ScoredEntry, ScoredEntryGuard
from .local import LocalStore
from .mapper import IdentifierMapper
from .rest import RestClient
from .schemas import RESULT_COLUMNS, TIME_LIMIT_COLUMNS, RemoteEntryResult, RemoteTimeLimits, decode_rows
from .status import Decision, ResultStatus, Scope
from .upload import ProgressSink, check_license, log_progress


logger = logging.getLogger(__name__)

Recalculator = Callable[[int], None]

_FLAG_COLUMNS = {
    ResultStatus.QUALIFIED: "qualified",
    ResultStatus.NQ: "nq",
    ResultStatus.EXCUSED: "excused",
    ResultStatus.ABSENT: "absent",
    ResultStatus.WITHDRAWN: "withdrawn",
}

_REASON_COLUMNS = {
    ResultStatus.NQ: "nq_reason",
    ResultStatus.EXCUSED: "excused_reason",
    ResultStatus.WITHDRAWN: "withdrawn_reason",
}


def skip_recalculation(class_id: int) -> None:
    logger.debug("No placement recalculation configured for class %s", class_id)


@dataclass
class DownloadReport:
    class_id: int
    remote_class_id: int = 0
    scored: List[ScoredEntry] = field(default_factory=list)
    decision: Optional[Decision] = None
    cancelled: bool = False
    time_limits_updated: bool = False
    written: List[int] = field(default_factory=list)
    protected: List[int] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    recalculated: bool = False
    message: str = ""


def time_limit_values(limits: RemoteTimeLimits) -> Dict[str, Optional[str]]:
    return {
        "time_limit": format_seconds(limits.time_limit_seconds),
        "time_limit2": format_seconds(limits.time_limit2_seconds),
        "time_limit3": format_seconds(limits.time_limit3_seconds),
    }


def result_values(row: RemoteEntryResult) -> Dict[str, Any]:
    """Local column values for one remote result; at most one flag is set."""

    status = row.result_status
    values: Dict[str, Any] = {column: status is flag for flag, column in _FLAG_COLUMNS.items()}
    for flag, column in _REASON_COLUMNS.items():
        values[column] = row.reason if status is flag else None
    values.update(
        {
            "search_time": format_seconds(row.search_time_seconds),
            "area1_time": format_seconds(row.area1_time_seconds),
            "area2_time": format_seconds(row.area2_time_seconds),
            "area3_time": format_seconds(row.area3_time_seconds),
            "fault_count": row.total_faults or 0,
            "correct_count": row.total_correct_finds or 0,
            "incorrect_count": row.total_incorrect_finds or 0,
        }
    )
    if status is not ResultStatus.QUALIFIED:
        values.update({"area1_ms": 0, "area2_ms": 0, "area3_ms": 0})
    return values


class DownloadReconciler:
    """Pulls judged results for one class back into the local store."""

    def __init__(
        self,
        local: LocalStore,
        rest: RestClient,
        mapper: IdentifierMapper,
        guard: ScoredEntryGuard,
        recalculate: Recalculator | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self.local = local
        self.rest = rest
        self.mapper = mapper
        self.guard = guard
        self.collections = rest.settings.collections
        self.recalculate = recalculate or skip_recalculation
        self.progress = progress or log_progress

    def download(self, class_id: int, chooser: Chooser | None = None) -> DownloadReport:
        show, _, _ = self.local.scope_chain(Scope.CLASS, class_id)
        license_key = check_license(self.local, show)
        report = DownloadReport(class_id=class_id)
        scope_text = f"Class {class_id}"

        report.remote_class_id = self.mapper.resolve_class_id(license_key, class_id)
        if not report.remote_class_id:
            report.message = "Class has not been uploaded"
            logger.info("Download skipped for class %s: not uploaded", class_id)
            return report

        self.progress(scope_text, "Fetching results")
        limits_rows = decode_rows(
            RemoteTimeLimits,
            self.rest.select(self.collections.classes, TIME_LIMIT_COLUMNS, {"id": report.remote_class_id}),
            "class time limits",
        )
        results = decode_rows(
            RemoteEntryResult,
            self.rest.select(self.collections.entries, RESULT_COLUMNS, {"class_id": report.remote_class_id}),
            "class results",
        )

        outcome = self.guard.check_download(self.local, results, chooser)
        report.scored = outcome.scored
        report.decision = outcome.decision
        if outcome.cancelled:
            logger.info("Download of %s cancelled by operator", scope_text)
            report.cancelled = True
            return report
        protected = set() if outcome.include_scores else {item.entry_id for item in outcome.scored}

        if limits_rows:
            self.local.update_class(class_id, time_limit_values(limits_rows[0]))
            report.time_limits_updated = True

        self.progress(scope_text, "Writing results")
        for row in results:
            if not row.is_scored:
                continue
            if not row.access_entry_id:
                report.skipped.append(f"armband {row.armband_number}: no local entry reference")
                continue
            if row.access_entry_id in protected:
                report.protected.append(row.access_entry_id)
                continue
            try:
                self.local.update_entry(row.access_entry_id, result_values(row))
            except LocalRecordNotFound:
                logger.warning("Remote entry %s refers to missing local entry %s", row.id, row.access_entry_id)
                report.skipped.append(f"armband {row.armband_number}: local entry {row.access_entry_id} missing")
                continue
            except LocalStoreError:
                logger.error(
                    "Download of %s aborted after %d rows written", scope_text, len(report.written)
                )
                raise
            report.written.append(row.access_entry_id)

        self.progress(scope_text, "Recalculating placements")
        self.recalculate(class_id)
        report.recalculated = True
        return report
