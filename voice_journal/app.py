"""CLI entrypoint: voice and text journal."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from .config import Settings, load_environment
from .errors import JournalError
from .grouping import format_duration, format_entry_time
from .journal import Journal
from .models import EntryKind
from .store import EntryStore
from .transcription import GeminiTranscriber

logger = logging.getLogger("voice-journal")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Capture voice and text notes in a local journal.")
    parser.add_argument("--db", type=str, default=None, help="Path to the journal database")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level")
    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="Add a text entry")
    add.add_argument("text", nargs="+", help="Entry text")

    record = commands.add_parser("record", help="Record a voice entry (Enter stops, Ctrl-C cancels)")
    record.add_argument("--duration", type=float, default=None, help="Stop automatically after N seconds")
    record.add_argument("--sample-rate", type=int, default=16_000, help="Audio sample rate")

    commands.add_parser("list", help="List entries grouped by day")

    delete = commands.add_parser("delete", help="Delete an entry")
    delete.add_argument("entry_id")

    export = commands.add_parser("export-audio", help="Write an entry's audio to a file")
    export.add_argument("entry_id")
    export.add_argument("output", type=str)
    return parser.parse_args(argv)


def build_journal(settings: Settings, db_path: Optional[str] = None, device=None) -> Journal:
    store = EntryStore.from_path(db_path or settings.db_path)
    return Journal(store, GeminiTranscriber.from_settings(settings), device=device)


def open_microphone(sample_rate: int):
    # Imported lazily: sounddevice needs the PortAudio system library.
    from .microphone import AudioCaptureConfig, SoundDeviceMicrophone

    return SoundDeviceMicrophone(AudioCaptureConfig(sample_rate=sample_rate))


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    load_environment()
    settings = Settings.from_env()

    device = None
    if args.command == "record":
        try:
            device = open_microphone(args.sample_rate)
        except OSError as exc:
            logger.error("Audio input is not available: %s", exc)
            return 1

    journal = None
    try:
        journal = build_journal(settings, args.db, device=device)
        journal.load()
        return COMMANDS[args.command](journal, args)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2
    except JournalError as exc:
        logger.error("%s failed: %s", args.command, exc.message)
        return 1
    finally:
        if journal is not None:
            journal.store.close()


def cmd_add(journal: Journal, args: argparse.Namespace) -> int:
    entry = journal.add_text(" ".join(args.text))
    print(f"Saved {entry.id}")
    return 0


def cmd_record(journal: Journal, args: argparse.Namespace) -> int:
    def show_elapsed(seconds: int) -> None:
        print(f"\rRecording {format_duration(seconds)}", end="", flush=True)

    journal.start_recording(on_tick=show_elapsed)
    try:
        if args.duration:
            time.sleep(args.duration)
        else:
            input("Recording... press Enter to stop.\n")
    except (KeyboardInterrupt, EOFError):
        journal.cancel_recording()
        print("\nRecording cancelled.")
        return 130

    print("\nTranscribing...")
    entry = journal.finish_recording()
    if entry is None:
        print("Recording cancelled.")
        return 130
    print(f"Saved {entry.id}: {entry.content or '(no speech detected)'}")
    return 0


def cmd_list(journal: Journal, args: argparse.Namespace) -> int:
    groups = journal.grouped()
    if not groups:
        print("Empty journal.")
        return 0
    for key, entries in groups:
        print(f"== {key} ==")
        for entry in entries:
            marker = "[voice]" if entry.kind is EntryKind.AUDIO else "[text] "
            content = entry.content or "(no speech detected)"
            print(f"  {format_entry_time(entry):>8}  {marker} {content}  ({entry.id})")
    return 0


def cmd_delete(journal: Journal, args: argparse.Namespace) -> int:
    journal.delete(args.entry_id)
    print(f"Deleted {args.entry_id}")
    return 0


def cmd_export_audio(journal: Journal, args: argparse.Namespace) -> int:
    entry = journal.store.get(args.entry_id)
    if entry.attachment is None:
        print(f"Entry {entry.id} has no audio.", file=sys.stderr)
        return 1
    path = Path(args.output).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(entry.attachment.data)
    print(f"Wrote {len(entry.attachment.data)} bytes ({entry.attachment.mime_type}) to {path}")
    return 0


COMMANDS = {
    "add": cmd_add,
    "record": cmd_record,
    "list": cmd_list,
    "delete": cmd_delete,
    "export-audio": cmd_export_audio,
}


if __name__ == "__main__":
    sys.exit(main())
