import os
import tempfile
from typing import Optional

from flask import current_app

from ..constants import CERT_PUBLIC_PREFIX, TEMPLATE_PUBLIC_PREFIX


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data, mode: str = "wb") -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path)
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, mode) as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def upload_root() -> str:
    return current_app.config["UPLOAD_ROOT"]


def certificates_dir(root: str | None = None) -> str:
    return os.path.join(root or upload_root(), "certificates")


def templates_dir(root: str | None = None) -> str:
    return os.path.join(root or upload_root(), "templates")


def certificate_filename(event_id: int, registration_id: int) -> str:
    return f"event_{event_id}_reg_{registration_id}.pdf"


def certificate_public_path(filename: str) -> str:
    return f"{CERT_PUBLIC_PREFIX}/{filename}"


def template_public_path(filename: str) -> str:
    return f"{TEMPLATE_PUBLIC_PREFIX}/{filename}"


def _safe_join(root: str, candidate: str | None) -> Optional[str]:
    raw = (candidate or "").strip()
    if not raw:
        return None
    root_real = os.path.realpath(root)
    resolved = os.path.realpath(os.path.join(root_real, raw))
    if resolved == root_real or resolved.startswith(f"{root_real}{os.sep}"):
        return resolved
    return None


def resolve_public_path(public_path: str | None, root: str | None = None) -> Optional[str]:
    """Map a recorded ``/uploads/...`` path to a file under the upload root.

    Returns ``None`` when the path escapes the upload root.
    """
    raw = (public_path or "").strip()
    if not raw:
        return None
    base = root or upload_root()
    if raw.startswith("/uploads/"):
        raw = raw[len("/uploads/"):]
    return _safe_join(base, raw.lstrip("/"))
