from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from trialsync_core import Decision, Direction, Scope, SyncService
from trialsync_core.download import DownloadReport
from trialsync_core.errors import (
    ChoiceRequired,
    ConfigurationError,
    DecodeError,
    LicenseError,
    LocalRecordNotFound,
    LocalStoreError,
    RemoteError,
)
from trialsync_core.guard import Chooser, ScoredEntry
from trialsync_core.upload import UploadReport

app = FastAPI(title="Trial Sync API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger(__name__)


class ScoredEntryModel(BaseModel):
    armband: int
    dog_name: Optional[str] = Field(default=None, alias="dogName")
    handler_name: Optional[str] = Field(default=None, alias="handlerName")

    model_config = ConfigDict(populate_by_name=True)


class StageModel(BaseModel):
    name: str
    status: str
    count: int
    message: str = ""


class UploadRequest(BaseModel):
    scope: str
    local_id: int = Field(alias="localId")
    decision: Optional[Decision] = None

    model_config = ConfigDict(populate_by_name=True)


class UploadResponse(BaseModel):
    scope: str
    local_id: int = Field(alias="localId")
    ok: bool
    cancelled: bool
    decision: Optional[Decision] = None
    unlocked: int = 0
    scored_entries: List[ScoredEntryModel] = Field(default_factory=list, alias="scoredEntries")
    stages: List[StageModel] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class DownloadRequest(BaseModel):
    class_id: int = Field(alias="classId")
    decision: Optional[Decision] = None

    model_config = ConfigDict(populate_by_name=True)


class DownloadResponse(BaseModel):
    class_id: int = Field(alias="classId")
    cancelled: bool
    decision: Optional[Decision] = None
    time_limits_updated: bool = Field(alias="timeLimitsUpdated")
    written: List[int]
    protected: List[int]
    skipped: List[str]
    message: str = ""

    model_config = ConfigDict(populate_by_name=True)


class DeleteResponse(BaseModel):
    deleted: bool


@lru_cache(maxsize=1)
def service() -> SyncService:
    return SyncService()


def decision_chooser(decision: Optional[Decision]) -> Chooser:
    """Answer the guard with the decision sent by the client, or ask for one."""

    def choose(direction: Direction, scored: List[ScoredEntry]) -> Decision:
        if decision is None:
            raise ChoiceRequired(direction.value, scored)
        return decision

    return choose


def _scored_models(scored: List[ScoredEntry]) -> List[ScoredEntryModel]:
    return [
        ScoredEntryModel(armband=item.armband, dogName=item.dog_name, handlerName=item.handler_name)
        for item in scored
    ]


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, ChoiceRequired):
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(exc),
                "direction": exc.direction,
                "choices": [choice.value for choice in Decision],
                "scoredEntries": [model.model_dump(by_alias=True) for model in _scored_models(exc.scored)],
            },
        ) from exc
    if isinstance(exc, LicenseError):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    if isinstance(exc, LocalRecordNotFound):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, (RemoteError, DecodeError)):
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if isinstance(exc, (LocalStoreError, ConfigurationError)):
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


def _upload_response(report: UploadReport) -> UploadResponse:
    return UploadResponse(
        scope=report.scope.value,
        localId=report.local_id,
        ok=report.ok,
        cancelled=report.cancelled,
        decision=report.decision,
        unlocked=report.unlocked,
        scoredEntries=_scored_models(report.scored),
        stages=[StageModel(**stage.as_dict()) for stage in report.stages],
    )


def _download_response(report: DownloadReport) -> DownloadResponse:
    return DownloadResponse(
        classId=report.class_id,
        cancelled=report.cancelled,
        decision=report.decision,
        timeLimitsUpdated=report.time_limits_updated,
        written=report.written,
        protected=report.protected,
        skipped=report.skipped,
        message=report.message,
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/upload", response_model=UploadResponse)
def upload(payload: UploadRequest):
    try:
        scope = Scope.parse(payload.scope)
        report = service().upload(scope, payload.local_id, decision_chooser(payload.decision))
    except (ValueError, RuntimeError) as exc:
        _raise_http(exc)
    return _upload_response(report)


@app.post("/download", response_model=DownloadResponse)
def download(payload: DownloadRequest):
    try:
        report = service().download(payload.class_id, decision_chooser(payload.decision))
    except (ValueError, RuntimeError) as exc:
        _raise_http(exc)
    return _download_response(report)


@app.delete("/remote/shows/{show_id}", response_model=DeleteResponse)
def delete_show(show_id: int):
    try:
        deleted = service().delete_show(show_id)
    except (ValueError, RuntimeError) as exc:
        _raise_http(exc)
    return DeleteResponse(deleted=deleted)


@app.delete("/remote/trials/{trial_id}", response_model=DeleteResponse)
def delete_trial(trial_id: int):
    try:
        deleted = service().delete_trial(trial_id)
    except (ValueError, RuntimeError) as exc:
        _raise_http(exc)
    return DeleteResponse(deleted=deleted)


@app.delete("/remote/classes/{class_id}", response_model=DeleteResponse)
def delete_class(class_id: int):
    try:
        deleted = service().delete_class(class_id)
    except (ValueError, RuntimeError) as exc:
        _raise_http(exc)
    return DeleteResponse(deleted=deleted)


@app.delete("/remote/entries/{entry_id}", response_model=DeleteResponse)
def delete_entry(entry_id: int):
    try:
        deleted = service().delete_entry(entry_id)
    except (ValueError, RuntimeError) as exc:
        _raise_http(exc)
    return DeleteResponse(deleted=deleted)
