from __future__ import annotations

import logging
import textwrap
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase import pdfmetrics

from bridgecare.report.summary_document import SummaryUnit, UnitKind


logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4

# Narrow glyph width as a share of the font size, used when measurement fails.
_FALLBACK_GLYPH_WIDTH_RATIO = 0.6
_FIT_EPSILON = 1e-6


@dataclass(frozen=True)
class LayoutConfig:
    """Layout constants for the consultation summary PDF.

    Lengths are PDF points. Spacing values ending in ``_spacing``,
    ``_clearance`` or ``_lines`` are multiples of ``line_height``.
    """

    title: str = 'BridgeCare - Consultation Summary'
    filename: str = 'bridgecare-consultation-summary.pdf'
    page_width: float = PAGE_WIDTH
    page_height: float = PAGE_HEIGHT
    margin: float = 15 * mm
    line_height: float = 7 * mm
    font_name: str = 'Helvetica'
    bold_font_name: str = 'Helvetica-Bold'
    title_font_size: float = 18
    heading_font_size: float = 14
    body_font_size: float = 10
    text_leading_factor: float = 1.15
    accent_color: str = '#60a5fa'
    text_color: str = '#000000'
    divider_color: str = '#cccccc'
    divider_thickness: float = 0.2 * mm
    divider_gap: float = 2 * mm
    bullet_indent: float = 5 * mm
    bullet_glyph: str = '•  '
    block_spacing: float = 0.5
    bullet_spacing: float = 0.3
    paragraph_spacing: float = 1.0
    heading_clearance: float = 2.0
    title_clearance: float = 3.0
    fallback_height_lines: float = 3.0

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin

    @property
    def top_margin(self) -> float:
        return self.margin

    @property
    def bottom_boundary(self) -> float:
        return self.page_height - self.margin

    def leading(self, font_size: float) -> float:
        return font_size * self.text_leading_factor


class BlockKind(str, Enum):
    title = 'title'
    paragraph = 'paragraph'
    heading = 'heading'
    bullet = 'bullet'


@dataclass(frozen=True)
class LayoutBlock:
    kind: BlockKind
    text: str
    lines: tuple[str, ...]
    x: float
    # Top edge, measured down from the top of the page.
    y: float
    width: float
    height: float
    font_name: str
    font_size: float
    leading: float
    spacing_after: float
    color: str
    align: str = 'left'
    divider_y: float | None = None
    continued: bool = False

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass
class LayoutPage:
    number: int
    blocks: list[LayoutBlock] = field(default_factory=list)


@dataclass
class PageSequence:
    config: LayoutConfig
    pages: list[LayoutPage]
    measurement_failures: int = 0

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def blocks(self, kind: BlockKind | None = None) -> list[LayoutBlock]:
        rows: list[LayoutBlock] = []
        for page in self.pages:
            for block in page.blocks:
                if kind is None or block.kind == kind:
                    rows.append(block)
        return rows


class TextMeasurer(Protocol):
    def wrap(self, text: str, *, font_name: str, font_size: float, max_width: float) -> list[str]:
        ...


class ReportlabTextMeasurer:
    """Wraps text with reportlab font metrics.

    ``simpleSplit`` only breaks at spaces, so any line still wider than the
    column (CJK runs, URLs, drug codes) is broken again between characters.
    """

    def wrap(self, text: str, *, font_name: str, font_size: float, max_width: float) -> list[str]:
        def fits(line: str) -> bool:
            return pdfmetrics.stringWidth(line, font_name, font_size) <= max_width

        lines = simpleSplit(text, font_name, font_size, max_width)
        return [piece for line in lines for piece in _break_wide_line(line, fits)]


def _break_wide_line(line: str, fits: Callable[[str], bool]) -> list[str]:
    if fits(line):
        return [line]
    pieces: list[str] = []
    current = ''
    for char in line:
        if not current and pieces and char.isspace():
            continue
        candidate = current + char
        if current and not fits(candidate):
            pieces.append(current.rstrip())
            current = '' if char.isspace() else char
            continue
        current = candidate
    if current:
        pieces.append(current)
    return pieces or ['']


def _estimated_width(text: str, font_size: float) -> float:
    wide = sum(1 for char in text if unicodedata.east_asian_width(char) in ('W', 'F'))
    return font_size * (wide + (len(text) - wide) * _FALLBACK_GLYPH_WIDTH_RATIO)


def _fallback_wrap(text: str, *, font_size: float, max_width: float) -> list[str]:
    width_chars = max(1, int(max_width / max(1.0, font_size * _FALLBACK_GLYPH_WIDTH_RATIO)))
    lines = textwrap.wrap(text, width=width_chars, break_long_words=True) or ['']

    def fits(line: str) -> bool:
        return _estimated_width(line, font_size) <= max_width

    return [piece for line in lines for piece in _break_wide_line(line, fits)]


class LayoutPass:
    """One run of the layout cursor over a list of summary units."""

    def __init__(self, config: LayoutConfig, measurer: TextMeasurer):
        self.config = config
        self.measurer = measurer
        self.pages: list[LayoutPage] = [LayoutPage(number=1)]
        self.cursor = config.top_margin
        self.measurement_failures = 0

    @property
    def page(self) -> LayoutPage:
        return self.pages[-1]

    def run(self, units: list[SummaryUnit]) -> PageSequence:
        cfg = self.config
        self.place_title()
        for unit in units:
            if unit.kind == UnitKind.heading:
                self.place_heading(unit.text)
            elif unit.kind == UnitKind.bullet:
                self.place_text(
                    BlockKind.bullet,
                    cfg.bullet_glyph + unit.text,
                    x=cfg.margin + cfg.bullet_indent,
                    width=cfg.content_width - cfg.bullet_indent,
                    spacing=cfg.bullet_spacing,
                )
            else:
                self.place_text(
                    BlockKind.paragraph,
                    unit.text,
                    x=cfg.margin,
                    width=cfg.content_width,
                    spacing=cfg.paragraph_spacing,
                )
        return PageSequence(
            config=cfg,
            pages=self.pages,
            measurement_failures=self.measurement_failures,
        )

    def new_page(self) -> None:
        self.pages.append(LayoutPage(number=len(self.pages) + 1))
        self.cursor = self.config.top_margin

    def ensure_room(self, estimate: float) -> None:
        if self.cursor + estimate <= self.config.bottom_boundary:
            return
        if not self.page.blocks:
            return
        if estimate > self.config.bottom_boundary - self.config.top_margin:
            # Taller than a full page: split from the current position instead.
            return
        self.new_page()

    def draw(self, block: LayoutBlock) -> None:
        self.page.blocks.append(block)
        self.cursor = block.bottom + block.spacing_after

    def wrap(self, text: str, *, font_name: str, font_size: float, max_width: float) -> tuple[list[str], bool]:
        try:
            lines = self.measurer.wrap(text, font_name=font_name, font_size=font_size, max_width=max_width)
        except Exception as exc:
            self.measurement_failures += 1
            logger.warning('Text measurement failed, using fallback height estimate: %s', exc)
            return _fallback_wrap(text, font_size=font_size, max_width=max_width), False
        return list(lines) or [''], True

    def place_title(self) -> None:
        cfg = self.config
        leading = cfg.leading(cfg.title_font_size)
        self.draw(
            LayoutBlock(
                kind=BlockKind.title,
                text=cfg.title,
                lines=(cfg.title,),
                x=cfg.page_width / 2,
                y=self.cursor,
                width=cfg.content_width,
                height=leading,
                font_name=cfg.bold_font_name,
                font_size=cfg.title_font_size,
                leading=leading,
                spacing_after=cfg.title_clearance * cfg.line_height,
                color=cfg.accent_color,
                align='center',
            )
        )

    def place_heading(self, text: str) -> None:
        cfg = self.config
        size = cfg.heading_font_size
        leading = cfg.leading(size)
        lines, _ = self.wrap(text, font_name=cfg.bold_font_name, font_size=size, max_width=cfg.content_width)
        clearance = cfg.heading_clearance * cfg.line_height
        height = len(lines) * leading

        allowance = cfg.line_height * 1.5 + cfg.divider_gap + clearance
        estimate = max(allowance, clearance + height + cfg.divider_gap)
        self.ensure_room(estimate + cfg.block_spacing * cfg.line_height)

        y = self.cursor + clearance
        self.draw(
            LayoutBlock(
                kind=BlockKind.heading,
                text=text,
                lines=tuple(lines),
                x=cfg.margin,
                y=y,
                width=cfg.content_width,
                height=height,
                font_name=cfg.bold_font_name,
                font_size=size,
                leading=leading,
                spacing_after=cfg.line_height,
                color=cfg.text_color,
                divider_y=y + height,
            )
        )

    def place_text(self, kind: BlockKind, text: str, *, x: float, width: float, spacing: float) -> None:
        cfg = self.config
        size = cfg.body_font_size
        leading = cfg.leading(size)
        lines, measured = self.wrap(text, font_name=cfg.font_name, font_size=size, max_width=width)
        height = len(lines) * leading
        estimate = height if measured else max(cfg.fallback_height_lines * cfg.line_height, height)
        self.ensure_room(estimate + cfg.block_spacing * cfg.line_height)

        remaining = lines
        continued = False
        while remaining:
            available = cfg.bottom_boundary - self.cursor
            capacity = int((available + _FIT_EPSILON) // leading)
            if capacity < 1 and self.page.blocks:
                self.new_page()
                continue
            capacity = max(1, capacity)
            chunk, remaining = remaining[:capacity], remaining[capacity:]
            if remaining:
                logger.info('Splitting %s block across pages after %d lines', kind.value, len(chunk))
            self.draw(
                LayoutBlock(
                    kind=kind,
                    text=text,
                    lines=tuple(chunk),
                    x=x,
                    y=self.cursor,
                    width=width,
                    height=len(chunk) * leading,
                    font_name=cfg.font_name,
                    font_size=size,
                    leading=leading,
                    spacing_after=0.0 if remaining else spacing * cfg.line_height,
                    color=cfg.text_color,
                    continued=continued,
                )
            )
            if remaining:
                self.new_page()
                continued = True
