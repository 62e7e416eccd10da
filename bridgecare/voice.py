from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from bridgecare.adapters.llm import ChatServiceError
from bridgecare.config import Settings
from bridgecare.consultation import SummaryFormatError
from bridgecare.prompts.consultation_prompt import (
    SUMMARY_FAILED_SAY,
    SUMMARY_FUNCTION_NAME,
    SUMMARY_READY_SAY,
    VOICE_FIRST_MESSAGE,
    build_voice_system_prompt,
    summary_function_declaration,
)
from bridgecare.report.engine import ReportLayoutEngine, SummaryRenderResult
from bridgecare.types import ChatMessage, ChatRole


logger = logging.getLogger(__name__)

GENERIC_CALL_ERROR = 'An error occurred during the call.'

_ROLE_ALIASES = {
    'user': ChatRole.user,
    'assistant': ChatRole.assistant,
    'bot': ChatRole.assistant,
    'system': ChatRole.system,
}


class ActiveMode(str, Enum):
    listening = 'listening'
    speaking = 'speaking'
    muted = 'muted'


@dataclass(frozen=True)
class Idle:
    phase = 'idle'


@dataclass(frozen=True)
class Connecting:
    phase = 'connecting'


@dataclass(frozen=True)
class Active:
    mode: ActiveMode = ActiveMode.listening
    phase = 'active'


@dataclass(frozen=True)
class Ending:
    phase = 'ending'


@dataclass(frozen=True)
class SummaryPending:
    call_live: bool = True
    phase = 'summary_pending'


@dataclass(frozen=True)
class SummaryReady:
    summary: str
    call_live: bool = True
    phase = 'summary_ready'


@dataclass(frozen=True)
class Failed:
    reason: str
    phase = 'error'


VoiceState = Union[Idle, Connecting, Active, Ending, SummaryPending, SummaryReady, Failed]


class InvalidVoiceTransition(RuntimeError):
    def __init__(self, action: str, state: VoiceState):
        super().__init__(f'Cannot {action} while the voice session is {state.phase}')
        self.action = action
        self.state = state


# --------------------------------------------------------------------------- #
# Function-call payload decoding
# --------------------------------------------------------------------------- #


class _FunctionCall(BaseModel):
    model_config = ConfigDict(extra='ignore')

    name: str
    arguments: dict[str, Any] | str | None = None


class _ConversationItem(BaseModel):
    model_config = ConfigDict(extra='ignore')

    role: str | None = None
    content: str | None = None


class _FunctionCallPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    function_call: _FunctionCall = Field(validation_alias=AliasChoices('functionCall', 'function_call'))
    messages: list[_ConversationItem] | None = None
    conversation_history: list[_ConversationItem] | None = Field(
        default=None,
        validation_alias=AliasChoices('conversationHistory', 'conversation_history'),
    )


@dataclass(frozen=True)
class ValidFunctionCall:
    name: str
    conversation: list[ChatMessage]
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MalformedPayload:
    reason: str


def _decode_arguments(raw: dict[str, Any] | str | None) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _conversation_messages(items: list[_ConversationItem]) -> list[ChatMessage]:
    rows: list[ChatMessage] = []
    for item in items:
        role = _ROLE_ALIASES.get((item.role or 'user').strip().lower())
        content = str(item.content or '').strip()
        if role is None or not content:
            continue
        rows.append(ChatMessage(role=role, content=content))
    return rows


def decode_function_call(
    payload: Any,
    *,
    expected_name: str = SUMMARY_FUNCTION_NAME,
) -> ValidFunctionCall | MalformedPayload:
    """Validate a voice SDK ``function-call`` payload before acting on it."""
    try:
        parsed = _FunctionCallPayload.model_validate(payload)
    except ValidationError as exc:
        return MalformedPayload(reason=f'invalid function-call payload ({exc.error_count()} errors)')

    name = parsed.function_call.name
    if name != expected_name:
        return MalformedPayload(reason=f'unexpected function name: {name}')

    history = parsed.messages or parsed.conversation_history or []
    conversation = _conversation_messages(history)
    if not conversation:
        return MalformedPayload(reason='conversation history missing or empty')

    return ValidFunctionCall(
        name=name,
        conversation=conversation,
        arguments=_decode_arguments(parsed.function_call.arguments),
    )


def describe_voice_error(error: Any) -> str:
    if isinstance(error, dict):
        for key in ('errorMsg', 'message'):
            value = error.get(key)
            if isinstance(value, str) and value.strip():
                return f'Error: {value.strip()}'
        return GENERIC_CALL_ERROR
    if isinstance(error, BaseException):
        return f'Error: {error}'
    if isinstance(error, str) and error.strip():
        return f'Error: {error.strip()}'
    return GENERIC_CALL_ERROR


def status_message(state: VoiceState) -> str:
    if isinstance(state, Idle):
        return 'Ready'
    if isinstance(state, Connecting):
        return 'Wait while we start the call...'
    if isinstance(state, Active):
        if state.mode == ActiveMode.speaking:
            return 'Assistant speaking'
        if state.mode == ActiveMode.muted:
            return 'Microphone Muted'
        return 'Listening'
    if isinstance(state, Ending):
        return 'Ending call...'
    if isinstance(state, SummaryPending):
        return 'Generating PDF summary...'
    if isinstance(state, SummaryReady):
        return 'PDF summary ready for download.'
    return state.reason


# --------------------------------------------------------------------------- #
# Session
# --------------------------------------------------------------------------- #


@dataclass
class VoiceEventOutcome:
    handled: bool
    state: VoiceState
    say: str | None = None
    error: str | None = None


SummaryRequester = Callable[[list[ChatMessage]], Awaitable[str]]


class VoiceSession:
    """Voice consultation lifecycle with a single state value.

    User actions from a state that does not allow them raise
    ``InvalidVoiceTransition``. SDK events that do not apply to the current
    state are ignored.
    """

    def __init__(self, requester: SummaryRequester):
        self.requester = requester
        self.state: VoiceState = Idle()

    def _set(self, state: VoiceState) -> VoiceState:
        if state != self.state:
            logger.info('Voice session %s -> %s', self.state.phase, state.phase)
        self.state = state
        return state

    def _ignored(self, event: str) -> VoiceEventOutcome:
        logger.debug('Ignoring voice event %s in state %s', event, self.state.phase)
        return VoiceEventOutcome(handled=False, state=self.state)

    def describe(self) -> dict[str, Any]:
        state = self.state
        return {
            'phase': state.phase,
            'mode': state.mode.value if isinstance(state, Active) else None,
            'call_live': isinstance(state, (Connecting, Active, Ending))
            or (isinstance(state, (SummaryPending, SummaryReady)) and state.call_live),
            'summary_ready': isinstance(state, SummaryReady),
            'status': status_message(state),
            'reason': state.reason if isinstance(state, Failed) else None,
        }

    # User actions

    def start_call(self) -> VoiceState:
        if not isinstance(self.state, (Idle, Failed)):
            raise InvalidVoiceTransition('start a call', self.state)
        return self._set(Connecting())

    def end_call(self) -> VoiceState:
        state = self.state
        if isinstance(state, (Connecting, Active)):
            return self._set(Ending())
        if isinstance(state, (SummaryPending, SummaryReady)) and state.call_live:
            # The summary outlives the call; call-end flips call_live.
            return state
        raise InvalidVoiceTransition('end the call', state)

    def toggle_mute(self) -> VoiceState:
        state = self.state
        if not isinstance(state, Active):
            raise InvalidVoiceTransition('toggle mute', state)
        if state.mode == ActiveMode.muted:
            return self._set(Active(ActiveMode.listening))
        return self._set(Active(ActiveMode.muted))

    def download_summary_pdf(self, engine: ReportLayoutEngine) -> SummaryRenderResult:
        state = self.state
        if not isinstance(state, SummaryReady):
            raise InvalidVoiceTransition('download the summary', state)

        result = engine.render(state.summary)
        if result.ok:
            self._set(Active(ActiveMode.listening) if state.call_live else Idle())
        return result

    # SDK events

    async def handle_event(self, name: str, payload: Any = None) -> VoiceEventOutcome:
        if name == 'call-start':
            return self._on_call_start()
        if name == 'call-end':
            return self._on_call_end()
        if name == 'speech-start':
            return self._on_speech_start()
        if name == 'speech-end':
            return self._on_speech_end()
        if name == 'error':
            return self._on_error(payload)
        if name == 'function-call':
            return await self._on_function_call(payload)
        return self._ignored(name)

    def _on_call_start(self) -> VoiceEventOutcome:
        if not isinstance(self.state, (Idle, Connecting)):
            return self._ignored('call-start')
        return VoiceEventOutcome(handled=True, state=self._set(Active(ActiveMode.listening)))

    def _on_call_end(self) -> VoiceEventOutcome:
        state = self.state
        if isinstance(state, (Connecting, Active, Ending)):
            return VoiceEventOutcome(handled=True, state=self._set(Idle()))
        if isinstance(state, SummaryPending) and state.call_live:
            return VoiceEventOutcome(handled=True, state=self._set(SummaryPending(call_live=False)))
        if isinstance(state, SummaryReady) and state.call_live:
            return VoiceEventOutcome(handled=True, state=self._set(SummaryReady(state.summary, call_live=False)))
        return self._ignored('call-end')

    def _on_speech_start(self) -> VoiceEventOutcome:
        state = self.state
        if not isinstance(state, Active) or state.mode == ActiveMode.muted:
            return self._ignored('speech-start')
        return VoiceEventOutcome(handled=True, state=self._set(Active(ActiveMode.speaking)))

    def _on_speech_end(self) -> VoiceEventOutcome:
        state = self.state
        if not isinstance(state, Active) or state.mode != ActiveMode.speaking:
            return self._ignored('speech-end')
        return VoiceEventOutcome(handled=True, state=self._set(Active(ActiveMode.listening)))

    def _on_error(self, payload: Any) -> VoiceEventOutcome:
        reason = describe_voice_error(payload)
        logger.warning('Voice call error: %s', reason)
        state = self.state
        if isinstance(state, SummaryReady):
            return VoiceEventOutcome(
                handled=True,
                state=self._set(SummaryReady(state.summary, call_live=False)),
                error=reason,
            )
        return VoiceEventOutcome(handled=True, state=self._set(Failed(reason)), error=reason)

    async def _on_function_call(self, payload: Any) -> VoiceEventOutcome:
        decoded = decode_function_call(payload)
        if isinstance(decoded, MalformedPayload):
            logger.warning('Rejected function-call payload: %s', decoded.reason)
            return VoiceEventOutcome(handled=False, state=self.state, error=decoded.reason)
        if not isinstance(self.state, Active):
            return self._ignored('function-call')

        self._set(SummaryPending(call_live=True))
        try:
            summary = await self.requester(decoded.conversation)
        except (ChatServiceError, SummaryFormatError) as exc:
            message = exc.message if isinstance(exc, ChatServiceError) else str(exc)
            logger.warning('Voice summary request failed: %s', message)
            call_live = self._call_live_after_request()
            fallback = Active(ActiveMode.listening) if call_live else Failed(f'Error preparing PDF: {message}')
            return VoiceEventOutcome(handled=True, state=self._set(fallback), say=SUMMARY_FAILED_SAY, error=message)

        ready = SummaryReady(summary, call_live=self._call_live_after_request())
        return VoiceEventOutcome(handled=True, state=self._set(ready), say=SUMMARY_READY_SAY)

    def _call_live_after_request(self) -> bool:
        state = self.state
        return isinstance(state, SummaryPending) and state.call_live


def build_assistant_config(settings: Settings) -> dict[str, Any]:
    """Start payload for the voice assistant SDK."""
    return {
        'model': {
            'provider': settings.voice_model_provider,
            'model': settings.chat_model,
            'messages': [{'role': 'system', 'content': build_voice_system_prompt()}],
            'functions': [summary_function_declaration()],
        },
        'voice': {
            'provider': settings.voice_provider,
            'voiceId': settings.voice_id,
        },
        'firstMessage': VOICE_FIRST_MESSAGE,
    }
