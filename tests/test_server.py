from __future__ import annotations

from io import BytesIO

from fakes import FakeChatClient
from summary_samples import HEADACHE_SUMMARY

from bridgecare.adapters.llm import FALLBACK_REPLY, ChatServiceError
from bridgecare.config import Settings
from bridgecare.prompts.consultation_prompt import SUMMARY_READY_REPLY, SUMMARY_READY_SAY
from bridgecare.server import create_app

FUNCTION_CALL = {
    'functionCall': {'name': 'requestPdfSummary'},
    'messages': [
        {'role': 'assistant', 'content': 'How can I help?'},
        {'role': 'user', 'content': 'I have a headache. Yes, send the PDF.'},
    ],
}


def test_index_and_health(client):
    index = client.get('/')
    health = client.get('/health')

    assert index.status_code == 200
    assert index.get_json()['status'] == 'running'
    assert health.status_code == 200
    assert health.get_json()['sessions']['text'] == 0


def test_openai_route_validates_messages(client):
    not_json = client.post('/api/openai', data='hello', content_type='text/plain')
    missing = client.post('/api/openai', json={})
    empty = client.post('/api/openai', json={'messages': []})
    not_list = client.post('/api/openai', json={'messages': 'hi'})
    shape = client.post('/api/openai', json={'messages': [{'role': 'user'}]})

    assert not_json.status_code == 400
    assert not_json.get_json()['error'] == 'Invalid request format. Expected JSON body.'
    assert missing.get_json()['error'] == 'Invalid messages format: Missing'
    assert empty.get_json()['error'] == 'Invalid messages format: Empty'
    assert not_list.get_json()['error'] == 'Invalid messages format: Not an array'
    assert shape.status_code == 400
    assert shape.get_json()['error'] == 'Invalid message structure in array'


def test_openai_route_returns_completion(client, fake_chat):
    fake_chat.queue('Can you describe the pain?')

    response = client.post('/api/openai', json={'messages': [{'role': 'user', 'content': 'My head hurts'}]})

    assert response.status_code == 200
    assert response.get_json() == {'message': {'content': 'Can you describe the pain?'}}
    assert fake_chat.calls[0][0].content == 'My head hurts'


def test_openai_route_maps_service_errors(client, fake_chat):
    fake_chat.queue(ChatServiceError(429, 'AI Service Error: Rate limit exceeded.'))

    response = client.post('/api/openai', json={'messages': [{'role': 'user', 'content': 'hi'}]})

    assert response.status_code == 429
    body = response.get_json()
    assert body['error'] == 'AI Service Error: Rate limit exceeded.'
    assert body['message']['content'] == FALLBACK_REPLY


def test_summary_pdf_route(client):
    response = client.post('/api/summary/pdf', json={'content': HEADACHE_SUMMARY})

    assert response.status_code == 200
    assert response.mimetype == 'application/pdf'
    assert response.data.startswith(b'%PDF')
    assert 'bridgecare-consultation-summary.pdf' in response.headers['Content-Disposition']

    assert client.post('/api/summary/pdf', json={'content': 'PDF_SUMMARY::   '}).status_code == 400


def test_text_consultation_flow(client, fake_chat):
    fake_chat.queue('Any fever?', HEADACHE_SUMMARY)

    created = client.post('/api/text/sessions')
    assert created.status_code == 201
    session_id = created.get_json()['session']['session_id']

    first = client.post(f'/api/text/sessions/{session_id}/messages', json={'content': 'I have a headache'})
    assert first.status_code == 200
    assert first.get_json()['reply']['content'] == 'Any fever?'

    second = client.post(f'/api/text/sessions/{session_id}/messages', json={'content': 'No. Yes to the PDF.'})
    body = second.get_json()
    assert body['reply']['content'] == SUMMARY_READY_REPLY
    assert body['session']['summary_ready'] is True
    assert len(body['session']['messages']) == 4

    pdf = client.get(f'/api/text/sessions/{session_id}/summary.pdf')
    assert pdf.status_code == 200
    assert pdf.data.startswith(b'%PDF')

    again = client.get(f'/api/text/sessions/{session_id}/summary.pdf')
    assert again.status_code == 404
    assert client.get(f'/api/text/sessions/{session_id}').get_json()['session']['summary_ready'] is False


def test_text_message_with_uploaded_files(client, fake_chat):
    session_id = client.post('/api/text/sessions').get_json()['session']['session_id']

    response = client.post(
        f'/api/text/sessions/{session_id}/messages',
        data={'content': 'My lab results', 'files': (BytesIO(b'Vitamin D 18 ng/mL'), 'labs.txt')},
        content_type='multipart/form-data',
    )

    assert response.status_code == 200
    sent = fake_chat.calls[0][-1].content
    assert 'Attached Documents:' in sent
    assert 'Vitamin D 18 ng/mL' in sent
    messages = response.get_json()['session']['messages']
    assert messages[0]['content'] == 'My lab results'
    assert messages[0]['attachments'] == ['labs.txt']


def test_text_message_errors(client, tmp_path):
    session_id = client.post('/api/text/sessions').get_json()['session']['session_id']

    empty = client.post(f'/api/text/sessions/{session_id}/messages', json={'content': '  '})
    unknown = client.post('/api/text/sessions/nope/messages', json={'content': 'hi'})

    assert empty.status_code == 400
    assert unknown.status_code == 404
    assert unknown.get_json()['session_id'] == 'nope'

    small = create_app(
        Settings(data_dir=tmp_path / 'small', max_attachment_bytes=4),
        chat_client=FakeChatClient(),
    ).test_client()
    small_id = small.post('/api/text/sessions').get_json()['session']['session_id']
    too_big = small.post(
        f'/api/text/sessions/{small_id}/messages',
        data={'content': 'x', 'files': (BytesIO(b'0123456789'), 'big.txt')},
        content_type='multipart/form-data',
    )
    assert too_big.status_code == 413


def test_session_limit_returns_429(tmp_path):
    limited = create_app(Settings(data_dir=tmp_path / 'limited', max_sessions=1), chat_client=FakeChatClient())
    client = limited.test_client()

    assert client.post('/api/text/sessions').status_code == 201
    assert client.post('/api/text/sessions').status_code == 429


def test_voice_consultation_flow(client, fake_chat):
    fake_chat.queue(HEADACHE_SUMMARY)

    created = client.post('/api/voice/sessions')
    assert created.status_code == 201
    body = created.get_json()
    assert body['assistant']['model']['functions'][0]['name'] == 'requestPdfSummary'
    session_id = body['session']['session_id']
    assert body['session']['phase'] == 'idle'

    assert client.post(f'/api/voice/sessions/{session_id}/start').get_json()['session']['phase'] == 'connecting'
    started = client.post(f'/api/voice/sessions/{session_id}/events', json={'type': 'call-start'})
    assert started.get_json()['session']['mode'] == 'listening'

    summary = client.post(
        f'/api/voice/sessions/{session_id}/events',
        json={'type': 'function-call', 'payload': FUNCTION_CALL},
    )
    result = summary.get_json()
    assert result['handled'] is True
    assert result['say'] == SUMMARY_READY_SAY
    assert result['session']['phase'] == 'summary_ready'
    assert fake_chat.calls[0][-1].content.startswith('SYSTEM_TASK:')

    pdf = client.get(f'/api/voice/sessions/{session_id}/summary.pdf')
    assert pdf.status_code == 200
    assert pdf.data.startswith(b'%PDF')
    assert client.get(f'/api/voice/sessions/{session_id}').get_json()['session']['phase'] == 'active'


def test_voice_invalid_actions(client):
    session_id = client.post('/api/voice/sessions').get_json()['session']['session_id']

    mute = client.post(f'/api/voice/sessions/{session_id}/mute')
    no_type = client.post(f'/api/voice/sessions/{session_id}/events', json={'payload': {}})
    no_summary = client.get(f'/api/voice/sessions/{session_id}/summary.pdf')

    assert mute.status_code == 409
    assert mute.get_json()['phase'] == 'idle'
    assert no_type.status_code == 400
    assert no_summary.status_code == 409


def test_routes_reject_non_object_json(client):
    text_id = client.post('/api/text/sessions').get_json()['session']['session_id']
    voice_id = client.post('/api/voice/sessions').get_json()['session']['session_id']

    responses = [
        client.post('/api/summary/pdf', json=['x']),
        client.post(f'/api/text/sessions/{text_id}/messages', json=['hi']),
        client.post(f'/api/voice/sessions/{voice_id}/events', json='call-start'),
        client.post(f'/api/voice/sessions/{voice_id}/events', json=[1]),
    ]

    for response in responses:
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid request format. Expected JSON body.'
    assert client.get(f'/api/voice/sessions/{voice_id}').get_json()['session']['phase'] == 'idle'
