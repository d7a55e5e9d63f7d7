"""PDF text extraction via pypdf."""

from __future__ import annotations

from pathlib import Path

import pypdf


def extract_pdf_text(path: str | Path) -> str:
    """Return the text of every page of the PDF at *path*, pages separated by a blank line.

    Pages without a text layer (scans) contribute nothing.
    """
    reader = pypdf.PdfReader(str(path))
    pages = [(page.extract_text() or "").strip() for page in reader.pages]
    return "\n\n".join(p for p in pages if p)
