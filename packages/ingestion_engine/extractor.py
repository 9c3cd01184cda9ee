"""
Heuristic transaction extractor for forwarded payment notification emails.

Turns an email-like payload (subject, text/HTML bodies, date header, sender)
into a ``ParseResult``: amount, direction, merchant, funding source and a
coarse confidence flag, plus the trail of rules that fired. Pure text-in /
struct-out; no I/O, never raises on missing fields.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .normalizer import normalize_text

logger = logging.getLogger(__name__)

DEBIT = "debit"
CREDIT = "credit"

UNKNOWN_MERCHANT = "Unknown Merchant"

HIGH_CONFIDENCE = 0.8
LOW_CONFIDENCE = 0.3


@dataclass
class ParseResult:
    """Structured output of one extraction run."""

    amount: int = 0
    direction: str = DEBIT
    merchant: str = UNKNOWN_MERCHANT
    source_of_fund: Optional[str] = None
    note: Optional[str] = None
    happened_at: Optional[str] = None
    confidence: float = LOW_CONFIDENCE
    evidence: Dict[str, str] = field(default_factory=dict)
    rules_triggered: List[str] = field(default_factory=list)

    def parse_meta(self) -> Dict[str, Any]:
        """Audit payload stored next to the pending transaction."""
        return {
            "confidence": self.confidence,
            "evidence": dict(self.evidence),
            "rules_triggered": list(self.rules_triggered),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "direction": self.direction,
            "merchant": self.merchant,
            "source_of_fund": self.source_of_fund,
            "note": self.note,
            "happened_at": self.happened_at,
            **self.parse_meta(),
        }


class TransactionExtractor:
    def __init__(self, extra_sources: Iterable[str] = ()):
        # Rp 35.000 / Rp35,000 / IDR 35000 / Rp. 35.000
        # Every non-digit is dropped, so decimal cents ("35.000,00") are not supported
        self.amount_pattern = re.compile(r"(?:Rp|IDR)\s?\.?\s?([0-9][0-9.,]*)", re.IGNORECASE)

        # Credit keywords win over debit keywords when both appear
        self.credit_keywords = [
            "refund",
            "pengembalian",
            "dana masuk",
            "cashback",
            "top up",
            "topup",
        ]
        self.debit_keywords = [
            "pembayaran",
            "berhasil dibayar",
            "total tagihan",
            "total pembayaran",
            "purchase",
            "payment",
        ]

        self.receipt_prefix = re.compile(r"receipt from ", re.IGNORECASE)

        # Checked in order; a later hit overwrites an earlier one
        self.sender_merchants = [
            ("gojek", "Gojek"),
            ("grab", "Grab"),
            ("tokopedia", "Tokopedia"),
            ("shopee", "Shopee"),
        ]

        # Ordered, case-sensitive. "Dana masuk" means "funds received" and is
        # not the DANA wallet.
        self.funding_sources = [
            ("OVO", re.compile(r"OVO")),
            ("Dana", re.compile(r"Dana(?!\s+(?i:masuk))")),
            ("BCA", re.compile(r"BCA")),
            ("Mandiri", re.compile(r"Mandiri")),
            ("Jenius", re.compile(r"Jenius")),
            ("Credit Card", re.compile(r"Credit Card")),
        ]
        for name in extra_sources:
            self.funding_sources.append((name, re.compile(re.escape(name))))

    def extract(self, payload: Mapping[str, Any]) -> ParseResult:
        subject = _as_text(payload.get("subject"))
        content = normalize_text(
            _as_text(payload.get("text_body")) + " " + _as_text(payload.get("html_body"))
        )

        result = ParseResult(note=subject or None)

        self._extract_amount(content, result)
        self._classify_direction(content, subject, result)
        self._extract_merchant(subject, _as_text(payload.get("from_email")), result)
        self._extract_funding_source(content, subject, result)

        result.confidence = HIGH_CONFIDENCE if result.amount > 0 else LOW_CONFIDENCE
        result.happened_at = parse_date_header(payload.get("date_header"))

        logger.debug(
            "Parsed email: amount=%s direction=%s rules=%s",
            result.amount,
            result.direction,
            result.rules_triggered,
        )
        return result

    def _extract_amount(self, content: str, result: ParseResult) -> None:
        match = self.amount_pattern.search(content)
        if not match:
            return

        result.amount = int(re.sub(r"[^0-9]", "", match.group(1)))
        result.evidence["amount_line"] = match.group(0)
        result.rules_triggered.append("amount_regex_match")

    def _classify_direction(self, content: str, subject: str, result: ParseResult) -> None:
        haystacks = (content.lower(), subject.lower())

        if any(k in text for k in self.credit_keywords for text in haystacks):
            result.direction = CREDIT
            result.rules_triggered.append("direction_keyword_credit")
        elif any(k in text for k in self.debit_keywords for text in haystacks):
            result.direction = DEBIT
            result.rules_triggered.append("direction_keyword_debit")

    def _extract_merchant(self, subject: str, from_email: str, result: ParseResult) -> None:
        merchant = subject or UNKNOWN_MERCHANT

        if self.receipt_prefix.search(merchant):
            merchant = self.receipt_prefix.sub("", merchant, count=1).strip()
            result.rules_triggered.append("merchant_subject_prefix")

        matched_domain = None
        for domain, name in self.sender_merchants:
            if domain in from_email:
                merchant = name
                matched_domain = domain

        if matched_domain:
            result.evidence["merchant_domain"] = matched_domain
            result.rules_triggered.append("merchant_sender_domain")

        result.merchant = merchant

    def _extract_funding_source(self, content: str, subject: str, result: ParseResult) -> None:
        for text in (content, subject):
            for name, pattern in self.funding_sources:
                if pattern.search(text):
                    result.source_of_fund = name
                    result.evidence["method_line"] = name
                    result.rules_triggered.append("source_keyword_match")
                    return


def parse_date_header(value) -> Optional[str]:
    """Return the header as an ISO-8601 timestamp, or None if unparseable."""
    if not value:
        return None

    text = str(value).strip()
    try:
        return parsedate_to_datetime(text).isoformat()
    except (TypeError, ValueError, IndexError):
        pass

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
    except ValueError:
        return None


def _as_text(value) -> str:
    if value is None:
        return ""
    return str(value)


_default_extractor = TransactionExtractor()


def parse_email(payload: Mapping[str, Any]) -> ParseResult:
    """Parse with the default rule tables."""
    return _default_extractor.extract(payload)
