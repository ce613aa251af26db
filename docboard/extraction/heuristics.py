"""Passage classifiers used to pick extractions.

All functions are pure and operate on a single passage (a paragraph of page
text). A passage is interesting when any classifier matches.
"""
import re
from typing import List, Set

LEGAL_KEYWORDS = (
    "agreement",
    "contract",
    "party",
    "parties",
    "clause",
    "section",
    "article",
    "term",
    "provision",
    "obligation",
    "liability",
    "warranty",
    "indemnity",
    "confidential",
    "termination",
    "governing law",
    "jurisdiction",
    "dispute",
    "resolution",
    "arbitration",
    "effective date",
    "execution date",
    "payment",
    "fee",
    "compensation",
    "intellectual property",
    "copyright",
    "trademark",
    "patent",
    "license",
    "compliance",
    "regulation",
    "law",
    "statute",
    "amendment",
    "modification",
    "assignment",
    "successor",
    "notice",
    "waiver",
    "severability",
    "force majeure",
    "entire agreement",
)

_MONTHS = "January|February|March|April|May|June|July|August|September|October|November|December"

HEADING_RE = re.compile(r"^[A-Z\s]{5,}$|^[IVX]+\.\s|^[0-9]+\.\s|^[A-Z][a-z]+\s[0-9]+:")
DATE_RE = re.compile(
    rf"\b(?:{_MONTHS})\s+\d{{1,2}},\s+\d{{4}}\b"
    r"|\b\d{1,2}/\d{1,2}/\d{2,4}\b"
    r"|\b\d{4}-\d{2}-\d{2}\b"
)
MONEY_RE = re.compile(
    r"\$\s*\d+(?:,\d{3})*(?:\.\d{2})?|\d+(?:,\d{3})*(?:\.\d{2})?\s*(?:dollars|USD)",
    re.IGNORECASE,
)
PASSAGE_SPLIT_RE = re.compile(r"\n\s*\n")


def is_heading(text: str) -> bool:
    return bool(HEADING_RE.search(text or ""))


def contains_legal_keyword(text: str) -> bool:
    low = (text or "").lower()
    return any(keyword in low for keyword in LEGAL_KEYWORDS)


def contains_date(text: str) -> bool:
    return bool(DATE_RE.search(text or ""))


def contains_money_amount(text: str) -> bool:
    return bool(MONEY_RE.search(text or ""))


def classify(text: str) -> Set[str]:
    """Return the labels of every classifier that matches the passage."""
    labels = set()
    if is_heading(text):
        labels.add("heading")
    if contains_legal_keyword(text):
        labels.add("keyword")
    if contains_date(text):
        labels.add("date")
    if contains_money_amount(text):
        labels.add("money")
    return labels


def is_interesting(text: str) -> bool:
    return (
        contains_legal_keyword(text)
        or is_heading(text)
        or contains_date(text)
        or contains_money_amount(text)
    )


def split_passages(page_text: str) -> List[str]:
    """Split page text on blank lines, dropping empty passages."""
    parts = PASSAGE_SPLIT_RE.split(page_text or "")
    return [p.strip() for p in parts if p.strip()]
