from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum


logger = logging.getLogger(__name__)

SUMMARY_MARKER = 'PDF_SUMMARY::'

HEADING_PREFIX = '### '
BULLET_PREFIXES = ('- ', '* ')


class LineKind(str, Enum):
    blank = 'blank'
    heading = 'heading'
    bullet = 'bullet'
    text = 'text'


class UnitKind(str, Enum):
    paragraph = 'paragraph'
    heading = 'heading'
    bullet = 'bullet'


@dataclass(frozen=True)
class SummaryUnit:
    kind: UnitKind
    text: str


def extract_summary_payload(response: str | None, marker: str = SUMMARY_MARKER) -> str | None:
    """Return the summary document carried by a model response.

    A response carries a summary when it starts with ``marker`` (leading
    whitespace is tolerated). The marker is removed and the remainder trimmed.
    Returns ``None`` for ordinary conversational replies.
    """
    text = str(response or '').lstrip()
    if not marker or not text.startswith(marker):
        return None
    return text[len(marker):].strip()


def classify_line(raw: str) -> tuple[LineKind, str]:
    stripped = str(raw or '').strip()
    if not stripped:
        return LineKind.blank, ''
    # A bare '###' or '-' still counts as an (empty) heading or bullet.
    probe = stripped + ' '
    if probe.startswith(HEADING_PREFIX):
        return LineKind.heading, probe[len(HEADING_PREFIX):].strip()
    for prefix in BULLET_PREFIXES:
        if probe.startswith(prefix):
            return LineKind.bullet, probe[len(prefix):].strip()
    return LineKind.text, stripped


def parse_summary_document(document: str | None) -> list[SummaryUnit]:
    """Split a summary document into layout units, in document order.

    Plain lines seen before the first heading or bullet form the single
    summary paragraph. Plain lines anywhere else are dropped.
    """
    units: list[SummaryUnit] = []
    paragraph_lines: list[str] = []
    paragraph_open = True

    def close_paragraph() -> None:
        if paragraph_lines:
            units.append(SummaryUnit(UnitKind.paragraph, ' '.join(paragraph_lines)))
            paragraph_lines.clear()

    for raw in str(document or '').splitlines():
        kind, payload = classify_line(raw)

        if kind == LineKind.blank:
            continue

        if kind == LineKind.text:
            if paragraph_open:
                paragraph_lines.append(payload)
            else:
                logger.debug('Dropping plain line outside the summary paragraph: %.60s', payload)
            continue

        if paragraph_open:
            close_paragraph()
            paragraph_open = False

        if not payload:
            continue
        if kind == LineKind.heading:
            units.append(SummaryUnit(UnitKind.heading, payload))
        else:
            units.append(SummaryUnit(UnitKind.bullet, payload))

    if paragraph_open:
        close_paragraph()
    return units
