"""Local authoritative store.

Mirrors the desktop trial database: shows own trials, trials own classes,
classes own entries. Remote ids are never stored here; the sync path
re-resolves them through the license key on every operation.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Boolean, Date, Float, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from .errors import LocalRecordNotFound, LocalStoreError
from .settings import local_database_url
from .status import LicenseStatus, Scope


logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Show(Base):
    __tablename__ = "shows"

    show_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    license_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    license_status: Mapped[str | None] = mapped_column(String(128), nullable=True)
    show_name: Mapped[str] = mapped_column(String(255), nullable=False)
    club_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    site_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    site_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    site_city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    site_state: Mapped[str | None] = mapped_column(String(64), nullable=True)
    site_zip: Mapped[str | None] = mapped_column(String(16), nullable=True)
    secretary_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    secretary_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    secretary_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    trials: Mapped[List["Trial"]] = relationship(back_populates="show", cascade="all, delete-orphan")


class Trial(Base):
    __tablename__ = "trials"

    trial_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    show_id: Mapped[int] = mapped_column(ForeignKey("shows.show_id"), nullable=False)
    trial_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    trial_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    trial_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    trial_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    show: Mapped[Show] = relationship(back_populates="trials")
    classes: Mapped[List["TrialClass"]] = relationship(back_populates="trial", cascade="all, delete-orphan")


class TrialClass(Base):
    __tablename__ = "classes"

    class_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trial_id: Mapped[int] = mapped_column(ForeignKey("trials.trial_id"), nullable=False)
    element: Mapped[str | None] = mapped_column(String(64), nullable=True)
    level: Mapped[str | None] = mapped_column(String(64), nullable=True)
    section: Mapped[str | None] = mapped_column(String(16), nullable=True)
    judge_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    class_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Text as typed by the secretary: "MM:SS", "MM:SS.hh" or bare seconds.
    time_limit: Mapped[str | None] = mapped_column(String(16), nullable=True)
    time_limit2: Mapped[str | None] = mapped_column(String(16), nullable=True)
    time_limit3: Mapped[str | None] = mapped_column(String(16), nullable=True)
    area_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    trial: Mapped[Trial] = relationship(back_populates="classes")
    entries: Mapped[List["Entry"]] = relationship(back_populates="trial_class", cascade="all, delete-orphan")


class Entry(Base):
    __tablename__ = "entries"

    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.class_id"), nullable=False)
    armband: Mapped[int] = mapped_column(Integer, nullable=False)
    handler_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    dog_call_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    breed: Mapped[str | None] = mapped_column(String(128), nullable=True)
    exhibitor_order: Mapped[int | None] = mapped_column(Integer, nullable=True)

    qualified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    nq: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    excused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    absent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    withdrawn: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    nq_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    excused_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    withdrawn_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    search_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    area1_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    area2_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    area3_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    area1_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    area2_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    area3_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    fault_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    correct_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    incorrect_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    placement: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    trial_class: Mapped[TrialClass] = relationship(back_populates="entries")

    @property
    def has_result(self) -> bool:
        return any((self.qualified, self.nq, self.excused, self.absent, self.withdrawn))


class LocalStore:
    """Request/response access to the local trial database.

    Every write opens its own session and commits immediately; there is no
    transaction spanning several statements.
    """

    def __init__(self, url: str | None = None, engine: Engine | None = None, create: bool = False) -> None:
        self.engine = engine or create_engine(url or local_database_url())
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )
        if create:
            self.create_schema()

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads

    def get_show(self, show_id: int) -> Show:
        return self._get(Show, show_id, "Show")

    def get_trial(self, trial_id: int) -> Trial:
        return self._get(Trial, trial_id, "Trial")

    def get_class(self, class_id: int) -> TrialClass:
        return self._get(TrialClass, class_id, "Class")

    def get_entry(self, entry_id: int) -> Entry:
        return self._get(Entry, entry_id, "Entry")

    def _get(self, model: Any, key: int, label: str) -> Any:
        with self.SessionLocal() as session:
            record = session.get(model, key)
        if record is None:
            raise LocalRecordNotFound(f"{label} {key} not found")
        return record

    def scope_chain(self, scope: Scope, local_id: int) -> Tuple[Show, Optional[Trial], Optional[TrialClass]]:
        """Walk up from the selected record to its owning show."""

        if scope is Scope.CLASS:
            trial_class = self.get_class(local_id)
            trial = self.get_trial(trial_class.trial_id)
            return self.get_show(trial.show_id), trial, trial_class
        if scope is Scope.TRIAL:
            trial = self.get_trial(local_id)
            return self.get_show(trial.show_id), trial, None
        return self.get_show(local_id), None, None

    def trials_for_show(self, show_id: int) -> List[Trial]:
        with self.SessionLocal() as session:
            stmt = select(Trial).where(Trial.show_id == show_id).order_by(Trial.trial_date, Trial.trial_number, Trial.trial_id)
            return list(session.scalars(stmt))

    def classes_for_trials(self, trial_ids: Sequence[int]) -> List[TrialClass]:
        if not trial_ids:
            return []
        with self.SessionLocal() as session:
            stmt = (
                select(TrialClass)
                .where(TrialClass.trial_id.in_(list(trial_ids)))
                .order_by(TrialClass.trial_id, TrialClass.class_order, TrialClass.class_id)
            )
            return list(session.scalars(stmt))

    def entries_for_classes(self, class_ids: Sequence[int]) -> List[Entry]:
        if not class_ids:
            return []
        with self.SessionLocal() as session:
            stmt = (
                select(Entry)
                .where(Entry.class_id.in_(list(class_ids)))
                .order_by(Entry.class_id, Entry.exhibitor_order.is_(None), Entry.exhibitor_order, Entry.entry_id)
            )
            return list(session.scalars(stmt))

    def license(self, show_id: int) -> Tuple[str, LicenseStatus]:
        show = self.get_show(show_id)
        return (show.license_key or "").strip(), LicenseStatus.from_text(show.license_key, show.license_status)

    def scored_entries(self, entry_ids: Iterable[int]) -> Dict[int, Entry]:
        ids = list(entry_ids)
        if not ids:
            return {}
        with self.SessionLocal() as session:
            rows = session.scalars(select(Entry).where(Entry.entry_id.in_(ids)))
            return {row.entry_id: row for row in rows if row.has_result}

    # ------------------------------------------------------------------
    # Writes

    def add_all(self, records: Iterable[Base]) -> List[Base]:
        items = list(records)
        with self.SessionLocal() as session:
            session.add_all(items)
            session.commit()
        return items

    def update_class(self, class_id: int, values: Dict[str, Any]) -> None:
        self._update(TrialClass, class_id, values, "Class")

    def update_entry(self, entry_id: int, values: Dict[str, Any]) -> None:
        self._update(Entry, entry_id, values, "Entry")

    def _update(self, model: Any, key: int, values: Dict[str, Any], label: str) -> None:
        try:
            with self.SessionLocal() as session:
                record = session.get(model, key)
                if record is None:
                    raise LocalRecordNotFound(f"{label} {key} not found")
                for column, value in values.items():
                    setattr(record, column, value)
                session.commit()
        except SQLAlchemyError as exc:
            raise LocalStoreError(f"Failed to update {label.lower()} {key}: {exc}") from exc
