from __future__ import annotations

from cronmanager.services.cron_parsing import CrontabDocument, Line, LineKind, parse
from cronmanager.services.errors import EntryIndexError, ScheduleValidationError
from cronmanager.services.schedule import is_valid_schedule


def validate_entry(schedule: str, command: str) -> None:
    if not is_valid_schedule(schedule):
        raise ScheduleValidationError(
            f'invalid cron expression {schedule!r}; expected 5-7 fields (e.g. "*/10 * * * *")'
        )
    if not (command or "").strip():
        raise ScheduleValidationError("command must not be empty")


def append_entry(document: CrontabDocument, schedule: str, command: str) -> CrontabDocument:
    """
    Hängt einen neuen Eintrag ans Ende an.

    Bestehende Zeilen (inkl. Kommentare und Leerzeilen) bleiben unverändert
    und in ihrer Reihenfolge erhalten.
    """
    validate_entry(schedule, command)

    new_line = Line(
        kind=LineKind.ENTRY,
        text=f"{schedule.strip()} {command.strip()}",
        original_index=len(document),
    )
    return CrontabDocument(lines=document.lines + (new_line,))


def remove_entry_at(document: CrontabDocument, index: int) -> CrontabDocument:
    # adressiert die aktuelle Zeilenliste, nicht original_index
    if index < 0 or index >= len(document):
        raise EntryIndexError(f"line index {index} out of range (document has {len(document)} lines)")
    return CrontabDocument(lines=document.lines[:index] + document.lines[index + 1:])


def replace_content(raw_text: str) -> CrontabDocument:
    """Bulk-Edit: kompletter neuer Inhalt aus dem Editor."""
    return parse(raw_text)
