"""Local rows to wire records, and the time helpers shared with download.

Records are dicts of JSON-ready values: dates become ISO strings and
non-finite floats become None, so httpx can serialize a batch as it is.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .local import Entry, Show, Trial, TrialClass
from .status import RESULT_PRIORITY, ResultStatus


logger = logging.getLogger(__name__)

_ESCAPES = (
    ("\\", "\\\\"),
    ('"', '\\"'),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\t", "\\t"),
)

SCORE_FIELDS = (
    "result_status",
    "is_scored",
    "disqualification_reason",
    "excuse_reason",
    "withdrawal_reason",
    "search_time_seconds",
    "area1_time_seconds",
    "area2_time_seconds",
    "area3_time_seconds",
    "total_faults",
    "total_correct_finds",
    "total_incorrect_finds",
    "final_placement",
    "total_score",
)


def escape_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    # Escaped form of operator text for single-line log output.
    return "".join(ch if ord(ch) >= 0x20 else f"\\u{ord(ch):04x}" for ch in text)


def wire_value(value: Any) -> Any:
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def plain_record(record: Dict[str, Any]) -> Dict[str, Any]:
    return {key: wire_value(value) for key, value in record.items()}


# ----------------------------------------------------------------------
# Time and count helpers


def parse_seconds(value: Any) -> Optional[float]:
    """Accept ``"MM:SS"``, ``"MM:SS.hh"`` or bare seconds; blank is None."""

    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid time value: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    if ":" in text:
        minutes_text, _, seconds_text = text.partition(":")
        try:
            minutes = int(minutes_text) if minutes_text.strip() else 0
            seconds = float(seconds_text) if seconds_text.strip() else 0.0
        except ValueError as exc:
            raise ValueError(f"Invalid time value: {value!r}") from exc
        return minutes * 60 + seconds
    try:
        return float(text)
    except ValueError as exc:
        raise ValueError(f"Invalid time value: {value!r}") from exc


def format_seconds(value: Optional[float]) -> Optional[str]:
    """Seconds to ``MM:SS`` (or ``MM:SS.hh`` when fractional); 0/None is None."""

    if value is None:
        return None
    hundredths = int(round(float(value) * 100))
    if hundredths <= 0:
        return None
    minutes, remainder = divmod(hundredths, 6000)
    seconds, fraction = divmod(remainder, 100)
    if fraction:
        return f"{minutes:02d}:{seconds:02d}.{fraction:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def positive_seconds_or_null(value: Any) -> Optional[float]:
    seconds = parse_seconds(value)
    if seconds is None or seconds <= 0:
        return None
    return seconds


def positive_count_or_null(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        count = int(float(text))
    except ValueError as exc:
        raise ValueError(f"Invalid count value: {value!r}") from exc
    return count if count > 0 else None


# ----------------------------------------------------------------------
# Result state


def local_result(entry: Entry) -> Tuple[ResultStatus, Dict[str, Optional[str]]]:
    """Pick the winning result flag and its reason columns.

    All three reason keys are always present so a batch of mixed rows keeps
    one shape.
    """

    flags = {
        ResultStatus.QUALIFIED: entry.qualified,
        ResultStatus.NQ: entry.nq,
        ResultStatus.EXCUSED: entry.excused,
        ResultStatus.ABSENT: entry.absent,
        ResultStatus.WITHDRAWN: entry.withdrawn,
    }
    status = next((candidate for candidate in RESULT_PRIORITY if flags[candidate]), ResultStatus.PENDING)
    reasons: Dict[str, Optional[str]] = {
        "disqualification_reason": None,
        "excuse_reason": None,
        "withdrawal_reason": None,
    }
    if status is ResultStatus.NQ:
        reasons["disqualification_reason"] = entry.nq_reason or None
    elif status is ResultStatus.EXCUSED:
        reasons["excuse_reason"] = entry.excused_reason or None
    elif status is ResultStatus.WITHDRAWN:
        reasons["withdrawal_reason"] = entry.withdrawn_reason or None
    return status, reasons


# ----------------------------------------------------------------------
# Record builders


def show_record(show: Show) -> Dict[str, Any]:
    return plain_record({
        "license_key": (show.license_key or "").strip(),
        "access_show_id": show.show_id,
        "show_name": show.show_name,
        "club_name": show.club_name,
        "start_date": show.start_date,
        "end_date": show.end_date,
        "site_name": show.site_name,
        "site_address": show.site_address,
        "site_city": show.site_city,
        "site_state": show.site_state,
        "site_zip": show.site_zip,
        "secretary_name": show.secretary_name,
        "secretary_email": show.secretary_email,
        "secretary_phone": show.secretary_phone,
        "notes": show.notes,
    })


def trial_record(trial: Trial, remote_show_id: int) -> Dict[str, Any]:
    return plain_record({
        "show_id": remote_show_id,
        "access_trial_id": trial.trial_id,
        "trial_name": trial.trial_name,
        "trial_date": trial.trial_date,
        "trial_number": trial.trial_number,
        "trial_type": trial.trial_type,
    })


def class_record(trial_class: TrialClass, remote_trial_id: int) -> Dict[str, Any]:
    return plain_record({
        "trial_id": remote_trial_id,
        "access_class_id": trial_class.class_id,
        "element": trial_class.element,
        "level": trial_class.level,
        "section": trial_class.section or "",
        "judge_name": trial_class.judge_name,
        "class_order": trial_class.class_order,
        "time_limit_seconds": positive_seconds_or_null(trial_class.time_limit),
        "time_limit2_seconds": positive_seconds_or_null(trial_class.time_limit2),
        "time_limit3_seconds": positive_seconds_or_null(trial_class.time_limit3),
        "area_count": positive_count_or_null(trial_class.area_count),
    })


def entry_record(entry: Entry, remote_class_id: int, include_scores: bool) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "class_id": remote_class_id,
        "access_entry_id": entry.entry_id,
        "access_class_id": entry.class_id,
        "armband_number": entry.armband,
        "handler_name": entry.handler_name,
        "dog_call_name": entry.dog_call_name,
        "dog_breed": entry.breed,
        "exhibitor_order": entry.exhibitor_order,
    }
    if not include_scores:
        return plain_record(record)

    status, reasons = local_result(entry)
    record["result_status"] = status.value
    record["is_scored"] = status.is_scored
    record.update(reasons)
    record.update(
        {
            "search_time_seconds": parse_seconds(entry.search_time),
            "area1_time_seconds": parse_seconds(entry.area1_time),
            "area2_time_seconds": parse_seconds(entry.area2_time),
            "area3_time_seconds": parse_seconds(entry.area3_time),
            "total_faults": entry.fault_count or 0,
            "total_correct_finds": entry.correct_count or 0,
            "total_incorrect_finds": entry.incorrect_count or 0,
            "final_placement": entry.placement or None,
            "total_score": entry.total_score,
        }
    )
    return plain_record(record)


def entry_records(entries: Iterable[Entry], remote_class_ids: Dict[int, int], include_scores: bool) -> List[Dict[str, Any]]:
    """Build the entry batch, keeping the first-created row for each (class, armband).

    Output keeps the order of ``entries``; only the winner of a duplicate
    armband depends on creation order (lowest entry id).
    """

    entries = list(entries)
    keepers: Dict[Tuple[int, int], int] = {}
    for entry in sorted(entries, key=lambda item: item.entry_id or 0):
        remote_class_id = remote_class_ids.get(entry.class_id)
        if remote_class_id:
            keepers.setdefault((remote_class_id, entry.armband), entry.entry_id)

    records: List[Dict[str, Any]] = []
    for entry in entries:
        remote_class_id = remote_class_ids.get(entry.class_id)
        if not remote_class_id:
            continue
        if keepers[(remote_class_id, entry.armband)] != entry.entry_id:
            logger.warning(
                "Dropping entry %s (%s): armband %s already used in class %s",
                entry.entry_id,
                escape_text(entry.dog_call_name),
                entry.armband,
                entry.class_id,
            )
            continue
        records.append(entry_record(entry, remote_class_id, include_scores))
    return records
