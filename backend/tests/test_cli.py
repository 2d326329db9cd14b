from scripts import trial_sync
from trialsync_core import Decision, Direction, SyncService
from trialsync_core.guard import ScoredEntry

from conftest import seed_store


def test_upload_then_keep_from_command_line(service, fake, seeded, capsys) -> None:
    assert trial_sync.main(["upload", "class", str(seeded.class_id)], service=service) == 0
    assert trial_sync.main(["--decision", "keep", "upload", "class", str(seeded.class_id)], service=service) == 0

    out = capsys.readouterr().out
    assert f"Class {seeded.class_id}: uploaded" in out
    assert "remote scores kept" in out


def test_failed_stage_exits_nonzero(service, fake, seeded, capsys) -> None:
    fake.fail("POST", "entries", status=409, body={"message": "duplicate key value"})

    assert trial_sync.main(["upload", "show", str(seeded.show_id)], service=service) == 1
    assert "entries: failed" in capsys.readouterr().out


def test_license_error_exits_nonzero(settings, local, fake, capsys) -> None:
    seeded = seed_store(local, license_status="Expired")
    service = SyncService(settings=settings, local=local, transport=fake.transport())

    assert trial_sync.main(["download", str(seeded.class_id)], service=service) == 1
    assert "License check failed" in capsys.readouterr().err


def test_delete_reports_nothing_to_delete(service, seeded, capsys) -> None:
    assert trial_sync.main(["delete", "trial", str(seeded.trial_id)], service=service) == 0
    assert "nothing to delete remotely" in capsys.readouterr().out


def test_prompt_chooser_retries_until_valid(capsys) -> None:
    answers = iter(["maybe", "", "Overwrite"])
    choose = trial_sync.prompt_chooser(read=lambda prompt: next(answers))

    decision = choose(Direction.DOWNLOAD, [ScoredEntry(armband=101, dog_name="Rex", handler_name="Ann")])

    assert decision is Decision.OVERWRITE
    out = capsys.readouterr().out
    assert "1 entries are already scored in the local database" in out
    assert "#101 Rex / Ann" in out


def test_prompt_chooser_cancels_on_closed_stdin(capsys) -> None:
    def closed(prompt: str) -> str:
        raise EOFError

    choose = trial_sync.prompt_chooser(read=closed)

    assert choose(Direction.UPLOAD, [ScoredEntry(armband=101, dog_name="Rex", handler_name="Ann")]) is Decision.CANCEL
