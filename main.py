from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from bridgecare.adapters.attachments import AttachmentError, read_attachment
from bridgecare.adapters.llm import build_chat_client
from bridgecare.config import get_settings
from bridgecare.consultation import NoSummaryError, TextConsultation
from bridgecare.report.engine import ReportLayoutEngine, SummaryRenderResult
from bridgecare.report.summary_document import extract_summary_payload
from bridgecare.storage import export_path, write_bytes_atomic
from bridgecare.types import Attachment


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _render_response(result: SummaryRenderResult, output: Path | None) -> dict:
    payload: dict = {
        'status': 'ok' if result.ok else 'error',
        'page_count': result.page_count,
        'measurement_failures': result.measurement_failures,
    }
    if output is not None:
        payload['output_path'] = str(output)
    if not result.ok:
        payload['message'] = result.error
        payload['detail'] = result.detail
    return payload


def _save_pdf(result: SummaryRenderResult, output: str | None) -> Path | None:
    if not result.ok or result.pdf_bytes is None:
        return None
    path = Path(output).expanduser().resolve() if output else export_path(result.filename, stamped=True)
    write_bytes_atomic(path, result.pdf_bytes)
    return path


def cmd_render(args: argparse.Namespace) -> int:
    settings = get_settings()
    input_path = Path(args.input).expanduser().resolve()
    if not input_path.exists() or not input_path.is_file():
        _print_json({'status': 'error', 'message': f'Summary document not found: {input_path}'})
        return 2

    raw = input_path.read_text(encoding='utf-8')
    document = extract_summary_payload(raw, settings.summary_marker)
    if document is None:
        document = raw

    engine = ReportLayoutEngine(settings.layout_config())
    result = engine.render(document)
    output = _save_pdf(result, args.output)
    _print_json(_render_response(result, output))
    return 0 if result.ok else 1


def _attach(path_text: str, pending: list[Attachment], max_bytes: int) -> None:
    path = Path(path_text).expanduser()
    if not path.is_file():
        print(f'[attach] not a file: {path}')
        return
    try:
        pending.append(read_attachment(path.name, path.read_bytes(), max_bytes=max_bytes))
    except AttachmentError as exc:
        print(f'[attach] {exc}')
        return
    print(f'[attach] queued {path.name} ({len(pending)} pending)')


def cmd_chat(args: argparse.Namespace) -> int:
    settings = get_settings()
    consultation = TextConsultation(build_chat_client(settings), marker=settings.summary_marker)
    engine = ReportLayoutEngine(settings.layout_config())
    pending: list[Attachment] = []

    print('BridgeCare text consultation. Commands: /attach PATH, /pdf, /quit')
    while True:
        try:
            line = input('you> ').strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return 0

        if not line:
            continue
        if line in ('/quit', '/exit'):
            return 0
        if line.startswith('/attach '):
            _attach(line[len('/attach '):].strip(), pending, settings.max_attachment_bytes)
            continue
        if line == '/pdf':
            try:
                result = consultation.download_summary_pdf(engine)
            except NoSummaryError as exc:
                print(f'[pdf] {exc}')
                continue
            output = _save_pdf(result, args.output)
            _print_json(_render_response(result, output))
            continue

        reply = asyncio.run(consultation.send(line, pending))
        pending = []
        print(f'bridgecare> {reply.content}')
        if reply.error:
            logging.getLogger(__name__).warning('Chat error (%s): %s', reply.status_code, reply.error)
        if reply.summary_ready:
            print('[pdf] summary ready, type /pdf to save it')


def cmd_serve(args: argparse.Namespace) -> int:
    from bridgecare.server import create_app

    settings = get_settings()
    host = args.host or settings.server_host
    port = int(args.port or settings.server_port)
    logger = logging.getLogger('bridgecare.server')
    logger.info('Starting BridgeCare server on http://%s:%s', host, port)
    create_app(settings).run(host=host, port=port, debug=False, threaded=True)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='BridgeCare consultation backend CLI')
    sub = parser.add_subparsers(dest='command', required=True)

    render = sub.add_parser('render', help='Render a summary document to PDF')
    render.add_argument('--input', required=True, help='Path to the summary text (marker optional)')
    render.add_argument('--output', required=False, help='PDF output path')
    render.set_defaults(func=cmd_render)

    chat = sub.add_parser('chat', help='Interactive text consultation')
    chat.add_argument('--output', required=False, help='PDF output path for /pdf')
    chat.set_defaults(func=cmd_chat)

    serve = sub.add_parser('serve', help='Run the HTTP server')
    serve.add_argument('--host', required=False)
    serve.add_argument('--port', type=int, required=False)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    return int(args.func(args))


if __name__ == '__main__':
    raise SystemExit(main())
