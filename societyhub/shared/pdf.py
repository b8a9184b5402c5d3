from __future__ import annotations

import os
from time import monotonic
from typing import Callable

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from .storage import ensure_dir, write_atomic

PAGE_FORMAT = "A4"

# (html, output_path, timeout_seconds) -> None
PdfRenderer = Callable[[str, str, float], None]


class DocumentRenderError(RuntimeError):
    """Raised when rendered HTML could not be captured as a PDF."""


def _remaining_ms(deadline: float, timeout_seconds: float) -> int:
    remaining = deadline - monotonic()
    if remaining <= 0:
        raise DocumentRenderError(f"PDF rendering timed out after {timeout_seconds:g}s")
    return max(1, int(remaining * 1000))


def render_pdf(html: str, output_path: str, timeout_seconds: float = 30) -> None:
    """Capture ``html`` as an A4 PDF at ``output_path`` using headless Chromium.

    Every call launches its own browser and closes it on all exit paths. Launch,
    page load and capture share one ``timeout_seconds`` budget; a capture that
    finishes after the budget is spent is reported as a timeout and nothing is
    written.
    """
    deadline = monotonic() + timeout_seconds
    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(
                headless=True, timeout=_remaining_ms(deadline, timeout_seconds)
            )
            try:
                page = browser.new_page()
                remaining_ms = _remaining_ms(deadline, timeout_seconds)
                page.set_default_timeout(remaining_ms)
                page.set_content(html, wait_until="networkidle", timeout=remaining_ms)
                pdf_bytes = page.pdf(format=PAGE_FORMAT, print_background=True)
            finally:
                browser.close()
    except PlaywrightTimeoutError as exc:
        raise DocumentRenderError(
            f"PDF rendering timed out after {timeout_seconds:g}s"
        ) from exc
    except PlaywrightError as exc:
        raise DocumentRenderError(f"PDF rendering failed: {exc}") from exc

    _remaining_ms(deadline, timeout_seconds)
    if not pdf_bytes:
        raise DocumentRenderError("PDF rendering produced no output")
    ensure_dir(os.path.dirname(output_path))
    write_atomic(output_path, pdf_bytes)


def check_pdf(path: str) -> int:
    """Return the page count of the PDF at ``path``; raise if it is unusable."""
    if not os.path.isfile(path):
        raise DocumentRenderError(f"PDF was not written to {path}")
    try:
        pages = len(PdfReader(path).pages)
    except (PdfReadError, ValueError, OSError) as exc:
        raise DocumentRenderError(f"PDF at {path} is unreadable: {exc}") from exc
    if pages < 1:
        raise DocumentRenderError(f"PDF at {path} has no pages")
    return pages
