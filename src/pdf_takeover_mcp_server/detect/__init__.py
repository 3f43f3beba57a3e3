"""PDF detection (URL shape first, HEAD probe second)."""
from __future__ import annotations

from ..utils.urls import looks_like_pdf_url
from .pdf import PdfDetector, ProbeResult, has_pdf_by_headers, is_pdf_url, probe_content_type

__all__ = [
    "PdfDetector",
    "ProbeResult",
    "has_pdf_by_headers",
    "is_pdf_url",
    "looks_like_pdf_url",
    "probe_content_type",
]
