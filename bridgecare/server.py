"""
BridgeCare HTTP server
======================
Flask service wrapping the consultation flows and the summary PDF engine.

Endpoints:
  - GET  /
  - GET  /health
  - POST /api/openai
  - POST /api/summary/pdf
  - POST /api/text/sessions
  - GET  /api/text/sessions/<session_id>
  - POST /api/text/sessions/<session_id>/messages
  - GET  /api/text/sessions/<session_id>/summary.pdf
  - POST /api/voice/sessions
  - GET  /api/voice/sessions/<session_id>
  - POST /api/voice/sessions/<session_id>/start
  - POST /api/voice/sessions/<session_id>/end
  - POST /api/voice/sessions/<session_id>/mute
  - POST /api/voice/sessions/<session_id>/events
  - GET  /api/voice/sessions/<session_id>/summary.pdf
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from io import BytesIO
from typing import Any

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
from pydantic import ValidationError

from bridgecare.adapters.attachments import AttachmentError, read_attachment
from bridgecare.adapters.llm import FALLBACK_REPLY, ChatServiceError, build_chat_client
from bridgecare.config import Settings, get_settings
from bridgecare.consultation import (
    ChatClient,
    ConsultationInputError,
    NoSummaryError,
    TextConsultation,
    request_summary,
)
from bridgecare.report.engine import ReportLayoutEngine, SummaryRenderResult
from bridgecare.report.summary_document import extract_summary_payload
from bridgecare.state import SessionEntry, SessionLimitReached, SessionNotFound, SessionRegistry
from bridgecare.types import ChatRequest, TextSessionSnapshot, VoiceSessionSnapshot
from bridgecare.voice import InvalidVoiceTransition, VoiceSession, build_assistant_config


logger = logging.getLogger(__name__)

SERVICE_VERSION = '0.1.0'
UNEXPECTED_ERROR = 'An unexpected internal server error occurred.'
UNEXPECTED_REPLY = "I'm sorry, something went wrong. Please try again or contact support if the issue persists."
INVALID_JSON = 'Invalid request format. Expected JSON body.'


def _json_object() -> dict[str, Any] | None:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else None


def _text_snapshot(entry: SessionEntry[TextConsultation]) -> dict[str, Any]:
    consultation = entry.value
    return TextSessionSnapshot(
        session_id=entry.session_id,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        messages=consultation.transcript(),
        summary_ready=consultation.summary_ready,
    ).model_dump(mode='json')


def _voice_snapshot(entry: SessionEntry[VoiceSession]) -> dict[str, Any]:
    return VoiceSessionSnapshot(
        session_id=entry.session_id,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        **entry.value.describe(),
    ).model_dump(mode='json')


def _pdf_response(result: SummaryRenderResult):
    if not result.ok or result.pdf_bytes is None:
        return jsonify({'error': result.error, 'detail': result.detail}), 500
    return send_file(
        BytesIO(result.pdf_bytes),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=result.filename,
    )


def _messages_error(messages: Any) -> str | None:
    if not messages:
        return 'Invalid messages format: Missing' if messages is None else 'Invalid messages format: Empty'
    if not isinstance(messages, list):
        return 'Invalid messages format: Not an array'
    if not all(isinstance(item, dict) and 'role' in item and 'content' in item for item in messages):
        return 'Invalid message structure in array'
    return None


def create_app(
    settings: Settings | None = None,
    *,
    chat_client: ChatClient | None = None,
    engine: ReportLayoutEngine | None = None,
) -> Flask:
    settings = settings or get_settings()
    chat_client = chat_client or build_chat_client(settings)
    engine = engine or ReportLayoutEngine(settings.layout_config())
    marker = settings.summary_marker

    text_sessions: SessionRegistry[TextConsultation] = SessionRegistry(
        lambda: TextConsultation(chat_client, marker=marker),
        ttl_seconds=settings.session_ttl_seconds,
        max_sessions=settings.max_sessions,
    )
    voice_sessions: SessionRegistry[VoiceSession] = SessionRegistry(
        lambda: VoiceSession(partial(request_summary, chat_client, marker=marker)),
        ttl_seconds=settings.session_ttl_seconds,
        max_sessions=settings.max_sessions,
    )

    app = Flask(__name__)
    CORS(app)
    app.extensions['bridgecare'] = {
        'settings': settings,
        'chat_client': chat_client,
        'engine': engine,
        'text_sessions': text_sessions,
        'voice_sessions': voice_sessions,
    }

    @app.errorhandler(SessionNotFound)
    def session_not_found(exc: SessionNotFound):
        return jsonify({'error': 'Session not found', 'session_id': exc.session_id}), 404

    @app.errorhandler(SessionLimitReached)
    def session_limit(exc: SessionLimitReached):
        return jsonify({'error': str(exc)}), 429

    @app.errorhandler(InvalidVoiceTransition)
    def invalid_transition(exc: InvalidVoiceTransition):
        return jsonify({'error': str(exc), 'phase': exc.state.phase}), 409

    # ------------------------------------------------------------------- #
    # Service
    # ------------------------------------------------------------------- #

    @app.route('/', methods=['GET'])
    def index():
        return jsonify(
            {
                'service': settings.app_name,
                'version': SERVICE_VERSION,
                'status': 'running',
                'endpoints': {
                    'POST /api/openai': 'Chat completion passthrough',
                    'POST /api/summary/pdf': 'Render a summary document as PDF',
                    'POST /api/text/sessions': 'Start a text consultation',
                    'POST /api/voice/sessions': 'Start a voice consultation',
                    'GET /health': 'Health check',
                    'GET /': 'This page',
                },
            }
        )

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify(
            {
                'status': 'healthy',
                'chat_configured': bool(getattr(chat_client, 'configured', True)),
                'voice_configured': bool(settings.voice_api_key),
                'sessions': {
                    'text': len(text_sessions),
                    'voice': len(voice_sessions),
                    'ttl_seconds': settings.session_ttl_seconds,
                    'max': settings.max_sessions,
                },
            }
        )

    @app.route('/api/openai', methods=['POST'])
    def openai_passthrough():
        body = _json_object()
        if body is None:
            return jsonify({'error': INVALID_JSON}), 400

        problem = _messages_error(body.get('messages'))
        if problem:
            return jsonify({'error': problem}), 400
        try:
            chat_request = ChatRequest.model_validate({'messages': body['messages']})
        except ValidationError:
            return jsonify({'error': 'Invalid message structure in array'}), 400

        try:
            content = asyncio.run(chat_client.complete(chat_request.messages))
        except ChatServiceError as exc:
            return jsonify({'error': exc.message, 'message': {'content': FALLBACK_REPLY}}), exc.status
        except Exception:
            logger.exception('Unexpected error in /api/openai')
            return jsonify({'error': UNEXPECTED_ERROR, 'message': {'content': UNEXPECTED_REPLY}}), 500
        return jsonify({'message': {'content': content}})

    @app.route('/api/summary/pdf', methods=['POST'])
    def summary_pdf():
        body = _json_object()
        if body is None:
            return jsonify({'error': INVALID_JSON}), 400
        raw = str(body.get('content') or '')
        document = extract_summary_payload(raw, marker)
        if document is None:
            document = raw.strip()
        if not document:
            return jsonify({'error': 'Missing required parameter: content'}), 400
        return _pdf_response(engine.render(document))

    # ------------------------------------------------------------------- #
    # Text consultation
    # ------------------------------------------------------------------- #

    @app.route('/api/text/sessions', methods=['POST'])
    def text_session_create():
        entry = text_sessions.create()
        logger.info('Created text session %s', entry.session_id)
        return jsonify({'session': _text_snapshot(entry)}), 201

    @app.route('/api/text/sessions/<session_id>', methods=['GET'])
    def text_session_get(session_id: str):
        return jsonify({'session': _text_snapshot(text_sessions.get(session_id))})

    @app.route('/api/text/sessions/<session_id>/messages', methods=['POST'])
    def text_session_message(session_id: str):
        if request.files or request.form:
            content = request.form.get('content')
            uploads = request.files.getlist('files')
        else:
            body = _json_object()
            if body is None:
                return jsonify({'error': INVALID_JSON}), 400
            content = body.get('content')
            uploads = []

        try:
            attachments = [
                read_attachment(upload.filename or 'attachment', upload.read(), max_bytes=settings.max_attachment_bytes)
                for upload in uploads
            ]
        except AttachmentError as exc:
            return jsonify({'error': str(exc)}), 413

        with text_sessions.use(session_id) as entry:
            try:
                reply = asyncio.run(entry.value.send(content, attachments))
            except ConsultationInputError as exc:
                return jsonify({'error': str(exc)}), 400
        return jsonify({'reply': reply.model_dump(mode='json'), 'session': _text_snapshot(entry)})

    @app.route('/api/text/sessions/<session_id>/summary.pdf', methods=['GET'])
    def text_session_pdf(session_id: str):
        with text_sessions.use(session_id) as entry:
            try:
                result = entry.value.download_summary_pdf(engine)
            except NoSummaryError as exc:
                return jsonify({'error': str(exc)}), 404
        return _pdf_response(result)

    # ------------------------------------------------------------------- #
    # Voice consultation
    # ------------------------------------------------------------------- #

    @app.route('/api/voice/sessions', methods=['POST'])
    def voice_session_create():
        entry = voice_sessions.create()
        logger.info('Created voice session %s', entry.session_id)
        return jsonify({'session': _voice_snapshot(entry), 'assistant': build_assistant_config(settings)}), 201

    @app.route('/api/voice/sessions/<session_id>', methods=['GET'])
    def voice_session_get(session_id: str):
        return jsonify({'session': _voice_snapshot(voice_sessions.get(session_id))})

    @app.route('/api/voice/sessions/<session_id>/start', methods=['POST'])
    def voice_session_start(session_id: str):
        with voice_sessions.use(session_id) as entry:
            entry.value.start_call()
        return jsonify({'session': _voice_snapshot(entry)})

    @app.route('/api/voice/sessions/<session_id>/end', methods=['POST'])
    def voice_session_end(session_id: str):
        with voice_sessions.use(session_id) as entry:
            entry.value.end_call()
        return jsonify({'session': _voice_snapshot(entry)})

    @app.route('/api/voice/sessions/<session_id>/mute', methods=['POST'])
    def voice_session_mute(session_id: str):
        with voice_sessions.use(session_id) as entry:
            entry.value.toggle_mute()
        return jsonify({'session': _voice_snapshot(entry)})

    @app.route('/api/voice/sessions/<session_id>/events', methods=['POST'])
    def voice_session_event(session_id: str):
        body = _json_object()
        if body is None:
            return jsonify({'error': INVALID_JSON}), 400
        event = str(body.get('type') or '').strip()
        if not event:
            return jsonify({'error': 'Missing required parameter: type'}), 400

        with voice_sessions.use(session_id) as entry:
            outcome = asyncio.run(entry.value.handle_event(event, body.get('payload')))
        return jsonify(
            {
                'handled': outcome.handled,
                'say': outcome.say,
                'error': outcome.error,
                'session': _voice_snapshot(entry),
            }
        )

    @app.route('/api/voice/sessions/<session_id>/summary.pdf', methods=['GET'])
    def voice_session_pdf(session_id: str):
        with voice_sessions.use(session_id) as entry:
            result = entry.value.download_summary_pdf(engine)
        return _pdf_response(result)

    return app
