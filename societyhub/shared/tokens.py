import re
import secrets

from ..constants import VERIFY_PATH

TOKEN_BYTES = 16
_TOKEN_RE = re.compile(r"[0-9a-f]{32}")


def generate_verification_token() -> str:
    """Return a fresh 128-bit token as 32 lowercase hex characters."""
    return secrets.token_hex(TOKEN_BYTES)


def is_well_formed_token(token: str | None) -> bool:
    return bool(token) and _TOKEN_RE.fullmatch(token) is not None


def build_verification_url(base_url: str, token: str) -> str:
    clean_base = (base_url or "").rstrip("/")
    return f"{clean_base}{VERIFY_PATH}/{token}"
