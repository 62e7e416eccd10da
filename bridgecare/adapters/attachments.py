from __future__ import annotations

import logging
from io import BytesIO

from pypdf import PdfReader

from bridgecare.types import Attachment


logger = logging.getLogger(__name__)


class AttachmentError(ValueError):
    pass


def _looks_like_pdf(name: str, data: bytes) -> bool:
    return name.lower().endswith('.pdf') or data[:5] == b'%PDF-'


def _pdf_text(data: bytes) -> str:
    reader = PdfReader(BytesIO(data))
    lines: list[str] = []
    for index, page in enumerate(reader.pages, start=1):
        text = (page.extract_text() or '').strip()
        lines.append(f'## Page {index}')
        lines.append('')
        lines.append(text)
        lines.append('')
    return '\n'.join(lines).strip()


def read_attachment(name: str, data: bytes, *, max_bytes: int) -> Attachment:
    """Extract the text of one uploaded file for the consultation prompt.

    Files that cannot be decoded are kept as a placeholder line so the
    model still learns a document was attached.
    """
    filename = str(name or '').strip() or 'attachment'
    if len(data) > max_bytes:
        raise AttachmentError(f'Attachment too large: {filename} ({len(data)} bytes, max {max_bytes} bytes)')

    try:
        if _looks_like_pdf(filename, data):
            text = _pdf_text(data)
        else:
            text = data.decode('utf-8', errors='replace')
    except Exception as exc:
        logger.warning('Failed to read attachment %s: %s', filename, exc)
        text = f'[Error reading file: {filename}]'
    return Attachment(name=filename, text=text)


def compose_message_with_attachments(text: str, attachments: list[Attachment]) -> str:
    content = text
    if attachments:
        content += '\n\nAttached Documents:\n'
        for index, attachment in enumerate(attachments, start=1):
            content += f'\n--- Document {index} ---\n{attachment.text}\n'
    return content
