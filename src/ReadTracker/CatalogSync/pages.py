"""Page counting for downloaded PDF documents."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pypdf import PdfReader

logger = logging.getLogger(__name__)


def count_pdf_pages(path: Path) -> Optional[int]:
    """Return the number of pages in ``path``, or ``None`` if it cannot be parsed.

    An unreadable document is still a valid cached file; readers will report
    the problem when they try to open it.
    """
    try:
        reader = PdfReader(str(path), strict=False)
        return len(reader.pages)
    except Exception as e:  # pypdf raises a wide range of errors on damaged files
        logger.warning(f"Could not count pages of {path.name}: {e}")
        return None
