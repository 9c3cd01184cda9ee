"""
WalleTracker Ingestion Engine

Heuristic parsing of forwarded payment notification emails.
"""

__version__ = "0.1.0"

from .normalizer import normalize_text
from .extractor import ParseResult, TransactionExtractor, parse_date_header, parse_email

__all__ = [
    "normalize_text",
    "ParseResult",
    "TransactionExtractor",
    "parse_date_header",
    "parse_email",
]
