"""Upload storage helpers."""

from __future__ import annotations

import shutil
import uuid
from datetime import date
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import quote

UPLOADS_URL_PREFIX = "/uploads"


def upload_destination(
    uploads_dir: str | Path, filename: str, today: Optional[date] = None
) -> Path:
    """Return ``<uploads_dir>/<YYYY-MM-DD>/<uuid>_<filename>``."""
    day = (today or date.today()).isoformat()
    safe_name = Path(filename).name or "upload"
    return Path(uploads_dir) / day / f"{uuid.uuid4()}_{safe_name}"


def store_upload(source: BinaryIO, destination: Path) -> Path:
    """Copy ``source`` to ``destination``, creating directories as needed."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    source.seek(0)
    with open(destination, "wb") as dst:
        shutil.copyfileobj(source, dst)
    return destination


def upload_url(base_url: str, uploads_dir: str | Path, file_path: str) -> str:
    """Public URL under which a stored upload is served."""
    path = Path(file_path)
    try:
        relative = path.relative_to(Path(uploads_dir))
    except ValueError:
        relative = Path(path.name)
    quoted = "/".join(quote(part) for part in relative.parts)
    return f"{base_url.rstrip('/')}{UPLOADS_URL_PREFIX}/{quoted}"
