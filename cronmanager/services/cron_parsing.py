from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Tuple


class LineKind(str, Enum):
    ENTRY = "entry"
    COMMENT = "comment"
    BLANK = "blank"


@dataclass(frozen=True)
class Line:
    kind: LineKind
    text: str
    original_index: int


@dataclass(frozen=True)
class CrontabDocument:
    """
    Geordnete, unveränderliche Sicht auf eine Crontab.

    Mutationen (siehe crontab_edit) liefern immer ein neues Dokument,
    das Original bleibt unangetastet.
    """

    lines: Tuple[Line, ...] = ()

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[Line]:
        return iter(self.lines)

    def __getitem__(self, index: int) -> Line:
        return self.lines[index]

    def entries(self) -> List[Line]:
        return [line for line in self.lines if line.kind is LineKind.ENTRY]


EMPTY_DOCUMENT = CrontabDocument()


def classify_line(text: str) -> LineKind:
    s = text.strip()
    if not s:
        return LineKind.BLANK
    if s.startswith("#"):
        return LineKind.COMMENT
    return LineKind.ENTRY


def parse(raw_text: str) -> CrontabDocument:
    """
    Zerlegt den Inhalt von `crontab -l` in typisierte Zeilen.

    - CRLF wird zu LF normalisiert (bewusst verlustbehaftet)
    - ein abschließendes \\n beendet die letzte Zeile, erzeugt aber keine Leerzeile
    - schlägt nie fehl; "" ergibt ein leeres Dokument
    """
    if not raw_text:
        return EMPTY_DOCUMENT

    text = raw_text.replace("\r\n", "\n")
    if text.endswith("\n"):
        text = text[:-1]

    lines = tuple(
        Line(kind=classify_line(chunk), text=chunk, original_index=idx)
        for idx, chunk in enumerate(text.split("\n"))
    )
    return CrontabDocument(lines=lines)


def serialize(document: CrontabDocument) -> str:
    # leeres Dokument -> leere Crontab-Datei
    if not document.lines:
        return ""
    return "\n".join(line.text for line in document.lines) + "\n"


def describe_line(line: Line) -> str:
    """Kurzbeschreibung für Logs und Bestätigungsdialoge."""
    if line.kind is LineKind.ENTRY:
        return f"entry #{line.original_index}: {line.text.strip()}"
    if line.kind is LineKind.COMMENT:
        return f"comment #{line.original_index}"
    if line.kind is LineKind.BLANK:
        return f"blank #{line.original_index}"
    raise ValueError(f"unknown line kind: {line.kind!r}")
