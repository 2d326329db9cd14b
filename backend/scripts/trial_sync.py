"""CLI for uploading, downloading and deleting trial data against Supabase."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, List, Optional, Sequence

from trialsync_core import Decision, Direction, Scope, SyncService
from trialsync_core.errors import LicenseError, SyncError
from trialsync_core.guard import ScoredEntry
from trialsync_core.upload import UploadReport


_PROMPTS = {
    Direction.UPLOAD: "[c]ancel, [k]eep Supabase scores and upload anyway, [o]verwrite Supabase scores? ",
    Direction.DOWNLOAD: "[c]ancel, [k]eep local scores, [o]verwrite local scores? ",
}
_ANSWERS = {"c": Decision.CANCEL, "k": Decision.KEEP, "o": Decision.OVERWRITE}


def prompt_chooser(read: Callable[[str], str] = input) -> Callable[[Direction, List[ScoredEntry]], Decision]:
    def choose(direction: Direction, scored: List[ScoredEntry]) -> Decision:
        side = "Supabase" if direction is Direction.UPLOAD else "the local database"
        print(f"{len(scored)} entries are already scored in {side}:")
        for item in scored:
            print(f"  {item.label()}")
        while True:
            try:
                answer = read(_PROMPTS[direction]).strip().lower()[:1]
            except EOFError:
                print()
                return Decision.CANCEL
            if answer in _ANSWERS:
                return _ANSWERS[answer]

    return choose


def fixed_chooser(decision: Decision) -> Callable[[Direction, List[ScoredEntry]], Decision]:
    return lambda direction, scored: decision


def _format_upload(report: UploadReport) -> str:
    if report.cancelled:
        return f"{report.scope.value} {report.local_id}: upload cancelled"
    lines = [f"{report.scope.value} {report.local_id}: {'uploaded' if report.ok else 'upload incomplete'}"]
    if report.unlocked:
        lines.append(f"  unlocked {report.unlocked} scored entries")
    for stage in report.stages:
        line = f"  {stage.name}: {stage.status} ({stage.count})"
        if stage.message:
            line += f" - {stage.message}"
        lines.append(line)
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--decision", choices=[choice.value for choice in Decision], default=None,
                        help="answer scored-entry prompts without asking")
    parser.add_argument("-v", "--verbose", action="store_true")
    commands = parser.add_subparsers(dest="command", required=True)

    upload = commands.add_parser("upload", help="upload a show, trial or class")
    upload.add_argument("scope", choices=[scope.value.lower() for scope in Scope])
    upload.add_argument("local_id", type=int)

    download = commands.add_parser("download", help="download results for a class")
    download.add_argument("class_id", type=int)

    delete = commands.add_parser("delete", help="delete the remote copy of a local record")
    delete.add_argument("kind", choices=["show", "trial", "class", "entry"])
    delete.add_argument("local_id", type=int)
    return parser


def main(argv: Optional[Sequence[str]] = None, service: SyncService | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    chooser = fixed_chooser(Decision(args.decision)) if args.decision else prompt_chooser()

    try:
        sync = service or SyncService()
        if args.command == "upload":
            report = sync.upload(Scope.parse(args.scope), args.local_id, chooser)
            print(_format_upload(report))
            return 0 if report.ok or report.cancelled else 1

        if args.command == "download":
            result = sync.download(args.class_id, chooser)
            if result.cancelled:
                print(f"Class {args.class_id}: download cancelled")
                return 0
            print(
                f"Class {args.class_id}: {len(result.written)} results written, "
                f"{len(result.protected)} local scores kept, {len(result.skipped)} skipped"
            )
            for item in result.skipped:
                print(f"  - {item}")
            if result.message:
                print(f"  {result.message}")
            return 0

        deleters = {
            "show": sync.delete_show,
            "trial": sync.delete_trial,
            "class": sync.delete_class,
            "entry": sync.delete_entry,
        }
        deleted = deleters[args.kind](args.local_id)
        print(f"{args.kind} {args.local_id}: {'deleted remotely' if deleted else 'nothing to delete remotely'}")
        return 0
    except LicenseError as exc:
        print(f"License check failed: {exc}", file=sys.stderr)
        return 1
    except SyncError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
