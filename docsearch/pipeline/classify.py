"""Heuristic document classification.

Rules are keyword based and tuned for German and English business documents.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import datetime, timezone

from docsearch.domain.document import DocumentTags

logger = logging.getLogger(__name__)

# (document_type, category, markers found in file name, markers found in content)
_TYPE_RULES = [
    ("invoice", "financial", ("rechnung", "invoice"), ("rechnung", "invoice")),
    ("contract", "legal", ("vertrag", "contract"), ("vertrag", "contract")),
    (
        "certificate",
        "legal",
        ("zertifikat", "certificate", "nachweis"),
        ("zertifikat", "certificate", "nachweis"),
    ),
    ("report", "technical", ("bericht", "report"), ("bericht", "report")),
    ("letter", "correspondence", ("brief", "letter"), ("sehr geehrte", "dear")),
    ("minutes", "administrative", ("protokoll", "minutes"), ("protokoll", "minutes")),
    ("certificate", "aviation", (), ("fernpilot", "drohne", "drone", "pilot")),
    ("invoice", "telecommunications", (), ("telekom",)),
]

_GERMAN_WORDS = (
    "der", "die", "das", "und", "oder", "mit", "von", "zu", "auf", "für", "ist",
    "sind", "haben", "werden", "wurde", "rechnung", "betrag", "datum",
)
_ENGLISH_WORDS = (
    "the", "and", "or", "with", "from", "to", "on", "for", "is", "are", "have",
    "will", "was", "invoice", "amount", "date",
)
_STOP_WORDS = frozenset({
    "der", "die", "das", "und", "oder", "aber", "mit", "von", "zu", "auf", "für",
    "ist", "sind", "haben", "werden", "wurde", "wird", "sein", "eine", "einer",
    "eines", "dem", "den", "des",
    "the", "and", "or", "but", "with", "from", "to", "on", "for", "is", "are",
    "have", "will", "was", "were", "been", "being", "a", "an", "this", "that",
    "these", "those",
})

_TYPE_IMPORTANCE = {
    "certificate": 1.8,
    "contract": 1.6,
    "invoice": 1.2,
    "report": 1.4,
    "letter": 1.3,
    "document": 1.0,
}
_CATEGORY_IMPORTANCE = {
    "aviation": 2.0,
    "legal": 1.7,
    "financial": 1.3,
    "telecommunications": 0.8,
    "technical": 1.4,
    "general": 1.0,
}

_DATE_RE = re.compile(r"\d{1,2}[./-]\d{1,2}[./-]\d{4}")
_AMOUNT_RE = re.compile(r"(\d+[.,]\d{2})\s*€|€\s*(\d+[.,]\d{2})")
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_RE = re.compile(r"(?:\+49|0)\s*\d{2,4}\s*\d{6,8}")
_INVOICE_NO_RE = re.compile(r"(?:rechnung|invoice)[\s\-#:]*(\w+)", re.IGNORECASE)
_CERT_NO_RE = re.compile(r"(?:zertifikat|certificate|nachweis)[\s\-#:]*(\w+)", re.IGNORECASE)
_NON_WORD_RE = re.compile(r"[^\w\säöüß]")
_SENTENCE_RE = re.compile(r"[.!?]+")


def detect_type(path: str, content: str) -> tuple[str, str]:
    """Return (document_type, category) from file name and content markers."""
    filename = path.lower()
    lowered = content.lower()
    for document_type, category, name_markers, content_markers in _TYPE_RULES:
        if any(m in filename for m in name_markers) or any(m in lowered for m in content_markers):
            return document_type, category
    return "document", "general"


def _count_words(lowered: str, words) -> int:
    return sum(len(re.findall(rf"\b{re.escape(word)}\b", lowered)) for word in words)


def detect_language(content: str) -> str:
    """Return "de", "en" or "unknown" by counting common function words."""
    lowered = content.lower()
    german = _count_words(lowered, _GERMAN_WORDS)
    english = _count_words(lowered, _ENGLISH_WORDS)
    if german > english:
        return "de"
    if english > german:
        return "en"
    return "unknown"


def extract_keywords(content: str, limit: int = 10) -> list[str]:
    """Most frequent words longer than three characters, stop words removed."""
    words = [
        word
        for word in _NON_WORD_RE.sub(" ", content.lower()).split()
        if len(word) > 3 and word not in _STOP_WORDS
    ]
    # Counter keeps first-seen order for equal counts.
    return [word for word, _ in Counter(words).most_common(limit)]


def summarize(content: str, max_chars: int = 300) -> str:
    """Extractive summary from the first sentences of the text."""
    sentences = [s for s in _SENTENCE_RE.split(content) if len(s.strip()) > 20]
    if not sentences:
        return content[:200] + ("..." if len(content) > 200 else "")

    summary = ""
    for sentence in sentences[:3]:
        if len(summary) + len(sentence) > max_chars:
            break
        summary += sentence.strip() + ". "
    return summary.strip() or content[:200] + "..."


def extract_structured_data(content: str, document_type: str) -> dict[str, list[str]]:
    data: dict[str, list[str]] = {}

    dates = _DATE_RE.findall(content)
    if dates:
        data["dates"] = dates
    amounts = [a or b for a, b in _AMOUNT_RE.findall(content)]
    if amounts:
        data["amounts"] = amounts
    emails = _EMAIL_RE.findall(content)
    if emails:
        data["emails"] = emails
    phones = _PHONE_RE.findall(content)
    if phones:
        data["phones"] = phones

    if document_type == "invoice":
        numbers = _INVOICE_NO_RE.findall(content)
        if numbers:
            data["invoice_numbers"] = numbers
    elif document_type == "certificate":
        numbers = _CERT_NO_RE.findall(content)
        if numbers:
            data["certificate_numbers"] = numbers

    return data


def calculate_importance(
    document_type: str,
    category: str,
    file_size: int,
    extracted_data: dict,
    modified_at: datetime | None = None,
    now: datetime | None = None,
) -> float:
    """Ranking weight in [0.1, 2.0]."""
    importance = _TYPE_IMPORTANCE.get(document_type, 1.0)
    importance *= _CATEGORY_IMPORTANCE.get(category, 1.0)

    if file_size > 100_000:
        importance *= 1.1

    if modified_at is not None:
        now = now or datetime.now(timezone.utc)
        age_days = (now - modified_at).total_seconds() / 86400
        if age_days < 30:
            importance *= 1.2
        elif age_days > 365:
            importance *= 0.9

    if len(extracted_data) > 3:
        importance *= 1.1

    return round(max(0.1, min(2.0, importance)), 4)


def classify(
    path: str,
    content: str,
    file_size: int = 0,
    modified_at: datetime | None = None,
) -> DocumentTags:
    """Classify a document from its path and extracted text.

    Args:
        path: Source path (only the file name matters)
        content: Extracted plain text
        file_size: Source size in bytes
        modified_at: Source modification time

    Returns:
        DocumentTags for the document
    """
    document_type, category = detect_type(path.rsplit("/", 1)[-1], content)
    extracted_data = extract_structured_data(content, document_type)
    tags = DocumentTags(
        document_type=document_type,
        category=category,
        language=detect_language(content),
        keywords=extract_keywords(content),
        summary=summarize(content),
        importance=calculate_importance(
            document_type, category, file_size, extracted_data, modified_at
        ),
        extracted_data=extracted_data,
    )
    logger.debug(
        "Classified %s as %s (%s), importance %.2f",
        path,
        tags.document_type,
        tags.category,
        tags.importance,
    )
    return tags
