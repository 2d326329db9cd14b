"""Typed decode step for every Supabase endpoint the sync path reads."""

from __future__ import annotations

from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator

from .errors import DecodeError
from .status import ResultStatus


ModelT = TypeVar("ModelT", bound=BaseModel)


class RemoteIdRow(BaseModel):
    id: int

    model_config = ConfigDict(extra="ignore")


class RemoteClassRef(BaseModel):
    id: int
    trial_id: Optional[int] = None
    access_class_id: Optional[int] = None

    model_config = ConfigDict(extra="ignore")


class RemoteTimeLimits(BaseModel):
    id: int
    time_limit_seconds: Optional[float] = None
    time_limit2_seconds: Optional[float] = None
    time_limit3_seconds: Optional[float] = None
    area_count: Optional[int] = None

    model_config = ConfigDict(extra="ignore")


class RemoteScoredEntry(BaseModel):
    class_id: Optional[int] = None
    armband_number: int
    dog_call_name: Optional[str] = None
    handler_name: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class RemoteEntryResult(BaseModel):
    id: int
    class_id: Optional[int] = None
    access_entry_id: Optional[int] = None
    armband_number: Optional[int] = None
    is_scored: bool = False
    result_status: ResultStatus = ResultStatus.PENDING
    disqualification_reason: Optional[str] = None
    excuse_reason: Optional[str] = None
    withdrawal_reason: Optional[str] = None
    search_time_seconds: Optional[float] = None
    area1_time_seconds: Optional[float] = None
    area2_time_seconds: Optional[float] = None
    area3_time_seconds: Optional[float] = None
    total_faults: Optional[int] = None
    total_correct_finds: Optional[int] = None
    total_incorrect_finds: Optional[int] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("result_status", mode="before")
    @classmethod
    def _status_from_wire(cls, value: Any) -> ResultStatus:
        if isinstance(value, ResultStatus):
            return value
        return ResultStatus.from_wire(value)

    @field_validator("is_scored", mode="before")
    @classmethod
    def _null_is_unscored(cls, value: Any) -> Any:
        return False if value is None else value

    @property
    def reason(self) -> Optional[str]:
        if self.result_status is ResultStatus.NQ:
            return self.disqualification_reason
        if self.result_status is ResultStatus.EXCUSED:
            return self.excuse_reason
        if self.result_status is ResultStatus.WITHDRAWN:
            return self.withdrawal_reason
        return self.disqualification_reason or self.excuse_reason or self.withdrawal_reason


RESULT_COLUMNS = ",".join(RemoteEntryResult.model_fields.keys())
TIME_LIMIT_COLUMNS = ",".join(RemoteTimeLimits.model_fields.keys())


def decode_rows(model: Type[ModelT], payload: Any, source: str) -> List[ModelT]:
    """Validate a PostgREST array response into typed rows.

    An empty array is a legitimate empty result. Anything that is not an array
    of matching objects raises DecodeError instead of collapsing to "no data".
    """

    if not isinstance(payload, list):
        raise DecodeError(f"{source}: expected a JSON array, got {type(payload).__name__}", payload=payload)
    try:
        return TypeAdapter(List[model]).validate_python(payload)
    except ValidationError as exc:
        raise DecodeError(f"{source}: unexpected row shape ({exc.error_count()} errors)", payload=payload) from exc


def decode_count(payload: Any, source: str) -> int:
    """Parse an RPC scalar response; PostgREST may wrap it in brackets."""

    value = payload
    if isinstance(value, list):
        if len(value) != 1:
            raise DecodeError(f"{source}: expected a single scalar, got {len(value)} items", payload=payload)
        value = value[0]
    if isinstance(value, dict) and len(value) == 1:
        value = next(iter(value.values()))
    if isinstance(value, bool) or value is None:
        raise DecodeError(f"{source}: expected an integer count", payload=payload)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"{source}: expected an integer count", payload=payload) from exc
