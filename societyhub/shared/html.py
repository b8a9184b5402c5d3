from __future__ import annotations

import re
from typing import Any, Mapping


def _placeholder_pattern(keys) -> re.Pattern[str]:
    # Longest keys first so alternation never settles on a shorter prefix.
    ordered = sorted((re.escape(key) for key in keys), key=len, reverse=True)
    return re.compile(r"\{\{\s*(" + "|".join(ordered) + r")\s*\}\}")


def render_placeholders(html: Any, values: Mapping[str, Any]) -> Any:
    """Replace ``{{ key }}`` markers in ``html`` with the mapped values.

    ``None`` renders as an empty string. Markers for keys that are not in
    ``values`` are left untouched, and replacement text is never scanned
    again, so ``{{ name }}`` inside a value survives verbatim.
    """
    if not html or not isinstance(html, str):
        return html
    keys = [key for key in values if key]
    if not keys:
        return html

    def _replace(match: re.Match[str]) -> str:
        value = values[match.group(1)]
        return "" if value is None else str(value)

    return _placeholder_pattern(keys).sub(_replace, html)
