from __future__ import annotations

import datetime as dt
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from trialsync_core import Entry, LocalStore, Show, SupabaseSettings, SyncService, Trial, TrialClass


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _matches(row: Dict[str, Any], column: str, operator: str) -> bool:
    op, _, argument = operator.partition(".")
    actual = _text(row.get(column))
    if op == "eq":
        return actual == argument
    if op == "in":
        return actual in set(argument.strip("()").split(","))
    raise AssertionError(f"Unsupported filter operator {operator}")


class FakeSupabase:
    """Enough of PostgREST to exercise the sync path end to end."""

    defaults = {
        "entries": {"is_scored": False, "result_status": "pending"},
    }

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {"shows": [], "trials": [], "classes": [], "entries": []}
        self.requests: List[httpx.Request] = []
        self.failures: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.unlock_available = True
        self._next_id = 1000

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def fail(self, method: str, table: str, status: int = 400, body: Any = None) -> None:
        self.failures[(method, table)] = (status, body or {"message": f"{table} rejected"})

    def calls(self) -> List[Tuple[str, str]]:
        return [(request.method, request.url.path.split("/rest/v1/", 1)[1]) for request in self.requests]

    def bodies(self, method: str, table: str) -> List[Any]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.method == method and request.url.path.endswith(f"/rest/v1/{table}")
        ]

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        return json.loads(json.dumps(self.tables))

    # ------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        name = request.url.path.split("/rest/v1/", 1)[1]
        if name.startswith("rpc/"):
            return self._rpc(name[len("rpc/"):], json.loads(request.content or b"{}"))

        failure = self.failures.get((request.method, name))
        if failure:
            status, body = failure
            return httpx.Response(status, json=body)

        params = list(request.url.params.multi_items())
        filters = [(key, value) for key, value in params if key not in ("select", "on_conflict")]
        rows = [row for row in self.tables[name] if all(_matches(row, key, value) for key, value in filters)]

        if request.method == "GET":
            select = dict(params).get("select", "*")
            if select == "*":
                return httpx.Response(200, json=rows)
            columns = select.split(",")
            return httpx.Response(200, json=[{column: row.get(column) for column in columns} for row in rows])

        if request.method == "POST":
            conflict = dict(params)["on_conflict"].split(",")
            for record in json.loads(request.content):
                self._upsert(name, record, conflict)
            return httpx.Response(201)

        if request.method == "PATCH":
            values = json.loads(request.content)
            for row in rows:
                row.update(values)
            return httpx.Response(200, json=rows)

        if request.method == "DELETE":
            self.tables[name] = [row for row in self.tables[name] if row not in rows]
            return httpx.Response(204)

        return httpx.Response(405)

    def _upsert(self, table: str, record: Dict[str, Any], conflict: List[str]) -> None:
        for row in self.tables[table]:
            if all(_text(row.get(column)) == _text(record.get(column)) for column in conflict):
                row.update(record)
                return
        self._next_id += 1
        row = dict(self.defaults.get(table, {}))
        row.update(record)
        row["id"] = self._next_id
        self.tables[table].append(row)

    def _rpc(self, procedure: str, args: Dict[str, Any]) -> httpx.Response:
        if not self.unlock_available:
            return httpx.Response(404, json={"message": f"Could not find the function {procedure}"})
        if procedure == "unlock_class_scores":
            class_ids = {args["p_class_id"]}
        elif procedure == "unlock_trial_scores":
            class_ids = {row["id"] for row in self.tables["classes"] if row.get("trial_id") == args["p_trial_id"]}
        else:
            return httpx.Response(404, json={"message": "unknown procedure"})
        count = 0
        for row in self.tables["entries"]:
            if row.get("class_id") in class_ids and row.get("is_scored"):
                row["is_scored"] = False
                count += 1
        return httpx.Response(200, json=[count])

    # Helpers for scenarios where a judge scores on the mobile side.

    def remote_entry(self, access_entry_id: int) -> Dict[str, Any]:
        for row in self.tables["entries"]:
            if row.get("access_entry_id") == access_entry_id:
                return row
        raise KeyError(access_entry_id)

    def remote_class(self, access_class_id: int) -> Dict[str, Any]:
        for row in self.tables["classes"]:
            if row.get("access_class_id") == access_class_id:
                return row
        raise KeyError(access_class_id)

    def judge(self, access_entry_id: int, status: str, **fields: Any) -> None:
        row = self.remote_entry(access_entry_id)
        row.update({"result_status": status, "is_scored": status != "pending"})
        row.update(fields)


@dataclass
class Seeded:
    show_id: int
    trial_id: int
    class_id: int
    other_class_id: int
    rex: int
    bella: int
    max: int
    duplicate: int
    other_rex: int


class Recorder:
    def __init__(self) -> None:
        self.calls: List[int] = []

    def __call__(self, class_id: int) -> None:
        self.calls.append(class_id)


@pytest.fixture
def settings() -> SupabaseSettings:
    return SupabaseSettings(url="https://example.supabase.co", key="test-key")


@pytest.fixture
def fake() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def local(tmp_path) -> LocalStore:
    return LocalStore(url=f"sqlite:///{tmp_path / 'trial.db'}", create=True)


def seed_store(local: LocalStore, license_status: Optional[str] = "Active and Valid") -> Seeded:
    (show,) = local.add_all([
        Show(
            license_key="LIC-1",
            license_status=license_status,
            show_name="Spring Scent Trial",
            club_name="Nose Work Club",
            start_date=dt.date(2025, 4, 5),
            end_date=dt.date(2025, 4, 6),
            notes='Bring "crates"\nand water',
        )
    ])
    (trial,) = local.add_all([
        Trial(show_id=show.show_id, trial_name="Trial 1", trial_date=dt.date(2025, 4, 5), trial_number=1, trial_type="Regular")
    ])
    interior, exterior = local.add_all([
        TrialClass(
            trial_id=trial.trial_id,
            element="Interior",
            level="Novice",
            section="A",
            judge_name="Pat Judge",
            class_order=1,
            time_limit="01:30",
            time_limit2=None,
            time_limit3="0",
            area_count=2,
        ),
        TrialClass(
            trial_id=trial.trial_id,
            element="Exterior",
            level="Novice",
            section="A",
            judge_name="Lee Judge",
            class_order=2,
            time_limit="3:00",
            area_count=1,
        ),
    ])
    rex, bella, max_, duplicate, other_rex = local.add_all([
        Entry(class_id=interior.class_id, armband=101, handler_name="Ann", dog_call_name="Rex", breed="Beagle",
              exhibitor_order=1, qualified=True, search_time="00:45.50", area1_ms=45500),
        Entry(class_id=interior.class_id, armband=102, handler_name="Bob", dog_call_name="Bella", breed="Boxer",
              exhibitor_order=2),
        Entry(class_id=interior.class_id, armband=103, handler_name="Cy", dog_call_name="Max", breed="Collie",
              exhibitor_order=3, nq=True, nq_reason="False alert", fault_count=1),
        Entry(class_id=interior.class_id, armband=101, handler_name="Dee", dog_call_name="Copy", breed="Pug",
              exhibitor_order=4),
        Entry(class_id=exterior.class_id, armband=101, handler_name="Ann", dog_call_name="Rex", breed="Beagle",
              exhibitor_order=1),
    ])
    return Seeded(
        show_id=show.show_id,
        trial_id=trial.trial_id,
        class_id=interior.class_id,
        other_class_id=exterior.class_id,
        rex=rex.entry_id,
        bella=bella.entry_id,
        max=max_.entry_id,
        duplicate=duplicate.entry_id,
        other_rex=other_rex.entry_id,
    )


@pytest.fixture
def seeded(local: LocalStore) -> Seeded:
    return seed_store(local)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def service(settings: SupabaseSettings, local: LocalStore, fake: FakeSupabase, recorder: Recorder) -> SyncService:
    return SyncService(settings=settings, local=local, transport=fake.transport(), recalculate=recorder)
