from __future__ import annotations

from io import BytesIO

import pytest
from reportlab.pdfgen import canvas

from bridgecare.adapters.attachments import AttachmentError, compose_message_with_attachments, read_attachment
from bridgecare.types import Attachment


def _pdf_with_text(text: str) -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer)
    pdf.drawString(72, 720, text)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def test_text_attachment_is_decoded():
    attachment = read_attachment('notes.txt', 'Blood pressure 120/80'.encode('utf-8'), max_bytes=1024)

    assert attachment == Attachment(name='notes.txt', text='Blood pressure 120/80')


def test_pdf_attachment_text_is_extracted_per_page():
    attachment = read_attachment('labs.pdf', _pdf_with_text('Cholesterol 180 mg/dL'), max_bytes=1_000_000)

    assert attachment.text.startswith('## Page 1')
    assert 'Cholesterol 180 mg/dL' in attachment.text


def test_unreadable_pdf_becomes_placeholder():
    attachment = read_attachment('scan.pdf', b'not really a pdf', max_bytes=1024)

    assert attachment.text == '[Error reading file: scan.pdf]'


def test_oversized_attachment_is_rejected():
    with pytest.raises(AttachmentError):
        read_attachment('big.txt', b'x' * 11, max_bytes=10)


def test_compose_message_lists_documents_in_order():
    content = compose_message_with_attachments(
        'See attached',
        [Attachment(name='a.txt', text='first'), Attachment(name='b.txt', text='second')],
    )

    assert content == (
        'See attached\n\nAttached Documents:\n'
        '\n--- Document 1 ---\nfirst\n'
        '\n--- Document 2 ---\nsecond\n'
    )
    assert compose_message_with_attachments('plain', []) == 'plain'
