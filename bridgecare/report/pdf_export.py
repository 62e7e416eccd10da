from __future__ import annotations

import io
import logging
from dataclasses import replace

from reportlab.lib import colors
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.pdfgen import canvas as pdf_canvas

from bridgecare.report.layout import LayoutBlock, LayoutConfig, PageSequence


logger = logging.getLogger(__name__)

FONT_CJK_NAME = 'STSong-Light'
PDF_AUTHOR = 'BridgeCare'
PDF_SUBJECT = 'Consultation summary'


def _contains_cjk(text: str) -> bool:
    for ch in text:
        if '\u4e00' <= ch <= '\u9fff':
            return True
    return False


def pick_fonts(document: str, config: LayoutConfig) -> LayoutConfig:
    """Switch to a CID font when the document needs CJK glyphs."""
    if not _contains_cjk(document or ''):
        return config
    try:
        pdfmetrics.registerFont(UnicodeCIDFont(FONT_CJK_NAME))
    except Exception as exc:
        logger.warning('Failed to register CJK font %s: %s', FONT_CJK_NAME, exc)
        return config
    return replace(config, font_name=FONT_CJK_NAME, bold_font_name=FONT_CJK_NAME)


def _safe_canvas_font(canvas, font_name: str, size: float) -> None:
    candidates = [
        str(font_name or '').strip(),
        FONT_CJK_NAME,
        'Helvetica',
    ]
    for candidate in candidates:
        if not candidate:
            continue
        try:
            canvas.setFont(candidate, size)
            return
        except Exception:
            continue


def _draw_block(canvas, block: LayoutBlock, config: LayoutConfig) -> None:
    canvas.setFillColor(colors.HexColor(block.color))
    _safe_canvas_font(canvas, block.font_name, block.font_size)
    for index, line in enumerate(block.lines):
        baseline = config.page_height - (block.y + block.font_size + index * block.leading)
        if block.align == 'center':
            canvas.drawCentredString(block.x, baseline, line)
        else:
            canvas.drawString(block.x, baseline, line)

    if block.divider_y is not None:
        divider_y = config.page_height - block.divider_y
        canvas.setStrokeColor(colors.HexColor(config.divider_color))
        canvas.setLineWidth(config.divider_thickness)
        canvas.line(config.margin, divider_y, config.margin + config.content_width, divider_y)


def emit_pdf(sequence: PageSequence) -> bytes:
    config = sequence.config
    buffer = io.BytesIO()
    canvas = pdf_canvas.Canvas(buffer, pagesize=(config.page_width, config.page_height))
    canvas.setTitle(config.title)
    canvas.setAuthor(PDF_AUTHOR)
    canvas.setSubject(PDF_SUBJECT)

    for page in sequence.pages:
        for block in page.blocks:
            _draw_block(canvas, block, config)
        canvas.showPage()

    canvas.save()
    return buffer.getvalue()
