from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

from bridgecare.adapters.attachments import compose_message_with_attachments
from bridgecare.adapters.llm import ChatServiceError
from bridgecare.prompts.consultation_prompt import (
    SUMMARY_READY_REPLY,
    build_summary_task_instruction,
    build_text_system_prompt,
)
from bridgecare.report.engine import ReportLayoutEngine, SummaryRenderResult
from bridgecare.report.summary_document import SUMMARY_MARKER, extract_summary_payload
from bridgecare.types import Attachment, ChatMessage, ChatRole, ConsultationReply


logger = logging.getLogger(__name__)

CONNECTION_APOLOGY = (
    "I'm sorry, I'm having trouble connecting to my knowledge base right now. "
    'Please try again in a moment, or describe your symptoms in more detail.'
)
PDF_ERROR_REPLY = 'Sorry, there was an error generating the PDF.'
ATTACHMENT_ONLY_CONTENT = "I've attached some documents."


class ChatClient(Protocol):
    async def complete(self, messages: Iterable[ChatMessage | dict[str, Any]]) -> str:
        ...


class ConsultationError(Exception):
    pass


class ConsultationInputError(ConsultationError, ValueError):
    pass


class NoSummaryError(ConsultationError):
    pass


class SummaryFormatError(ConsultationError, ValueError):
    pass


async def request_summary(client: ChatClient, conversation: list[ChatMessage], *, marker: str = SUMMARY_MARKER) -> str:
    """Ask the model to turn a finished conversation into a summary document.

    Raises ``SummaryFormatError`` when the reply does not carry the marker;
    collaborator failures surface as ``ChatServiceError``.
    """
    messages = [
        *conversation,
        ChatMessage(role=ChatRole.user, content=build_summary_task_instruction(marker)),
    ]
    reply = await client.complete(messages)
    summary = extract_summary_payload(reply, marker)
    if summary is None:
        logger.warning('Summary response is missing the %s marker', marker)
        raise SummaryFormatError('Backend did not return the expected PDF summary format.')
    if not summary:
        raise SummaryFormatError('Backend returned an empty PDF summary.')
    return summary


class TextConsultation:
    """Chat-style consultation state for one user.

    ``history`` is what the model sees (attachments inlined); ``display`` is
    what the user sees.
    """

    def __init__(self, client: ChatClient, *, marker: str = SUMMARY_MARKER, system_prompt: str | None = None):
        self.client = client
        self.marker = marker
        system = ChatMessage(role=ChatRole.system, content=system_prompt or build_text_system_prompt(marker))
        self.history: list[ChatMessage] = [system]
        self.display: list[ChatMessage] = []
        self.pending_summary: str | None = None

    @property
    def summary_ready(self) -> bool:
        return bool(self.pending_summary)

    def transcript(self) -> list[ChatMessage]:
        return list(self.display)

    async def send(self, text: str | None, attachments: list[Attachment] | None = None) -> ConsultationReply:
        typed = str(text or '').strip()
        files = list(attachments or [])
        if not typed and not files:
            raise ConsultationInputError('A message or at least one attachment is required.')

        self.pending_summary = None
        names = [item.name for item in files]
        content = typed or ATTACHMENT_ONLY_CONTENT
        self.display.append(ChatMessage(role=ChatRole.user, content=content, attachments=names))
        self.history.append(
            ChatMessage(
                role=ChatRole.user,
                content=compose_message_with_attachments(content, files),
                attachments=names,
            )
        )

        try:
            reply = await self.client.complete(self.history)
        except ChatServiceError as exc:
            logger.warning('Text consultation turn failed: %s', exc.message)
            self.display.append(ChatMessage(role=ChatRole.assistant, content=CONNECTION_APOLOGY))
            return ConsultationReply(content=CONNECTION_APOLOGY, error=exc.message, status_code=exc.status)

        summary = extract_summary_payload(reply, self.marker)
        if summary is not None:
            if summary:
                self.pending_summary = summary
                reply = SUMMARY_READY_REPLY
            else:
                logger.warning('Summary reply carried the %s marker with no content', self.marker)
                reply = PDF_ERROR_REPLY

        message = ChatMessage(role=ChatRole.assistant, content=reply)
        self.history.append(message)
        self.display.append(message)
        return ConsultationReply(content=reply, summary_ready=self.summary_ready)

    def download_summary_pdf(self, engine: ReportLayoutEngine) -> SummaryRenderResult:
        if not self.pending_summary:
            raise NoSummaryError('No consultation summary is ready for download.')

        result = engine.render(self.pending_summary)
        if result.ok:
            self.pending_summary = None
        else:
            self.display.append(ChatMessage(role=ChatRole.assistant, content=PDF_ERROR_REPLY))
        return result
