from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from .config import get_settings


def exports_root() -> Path:
    root = get_settings().data_dir / 'exports'
    root.mkdir(parents=True, exist_ok=True)
    return root


def export_path(filename: str, *, stamped: bool = False) -> Path:
    name = Path(filename).name or 'summary.pdf'
    if stamped:
        stamp = datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')
        path = Path(name)
        name = f'{path.stem}-{stamp}{path.suffix}'
    return exports_root() / name


def write_bytes_atomic(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + '.tmp')
    tmp.write_bytes(content)
    tmp.replace(path)
