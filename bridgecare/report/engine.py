from __future__ import annotations

import logging
from dataclasses import dataclass

from bridgecare.report.layout import (
    LayoutConfig,
    LayoutPass,
    PageSequence,
    ReportlabTextMeasurer,
    TextMeasurer,
)
from bridgecare.report.pdf_export import emit_pdf, pick_fonts
from bridgecare.report.summary_document import parse_summary_document


logger = logging.getLogger(__name__)

RENDER_FAILED_MESSAGE = 'Could not generate the consultation summary PDF.'


@dataclass
class SummaryRenderResult:
    ok: bool
    filename: str
    pdf_bytes: bytes | None = None
    page_count: int = 0
    measurement_failures: int = 0
    error: str | None = None
    detail: str | None = None


class ReportLayoutEngine:
    """Turns a consultation summary document into a paginated PDF.

    The engine holds configuration only. Each ``layout`` or ``render`` call
    owns its own cursor and pages, so one instance can serve every caller.
    """

    def __init__(self, config: LayoutConfig | None = None, measurer: TextMeasurer | None = None):
        self.config = config or LayoutConfig()
        self.measurer = measurer or ReportlabTextMeasurer()

    def layout(self, document: str) -> PageSequence:
        config = pick_fonts(document, self.config)
        units = parse_summary_document(document)
        return LayoutPass(config, self.measurer).run(units)

    def render(self, document: str) -> SummaryRenderResult:
        try:
            sequence = self.layout(document)
            pdf_bytes = emit_pdf(sequence)
        except Exception as exc:
            logger.exception('Summary PDF rendering failed')
            return SummaryRenderResult(
                ok=False,
                filename=self.config.filename,
                error=RENDER_FAILED_MESSAGE,
                detail=f'{type(exc).__name__}: {exc}',
            )

        if sequence.measurement_failures:
            logger.warning(
                'Summary PDF rendered with %d fallback height estimates',
                sequence.measurement_failures,
            )
        logger.info('Rendered summary PDF: %d pages, %d bytes', sequence.page_count, len(pdf_bytes))
        return SummaryRenderResult(
            ok=True,
            filename=sequence.config.filename,
            pdf_bytes=pdf_bytes,
            page_count=sequence.page_count,
            measurement_failures=sequence.measurement_failures,
        )
