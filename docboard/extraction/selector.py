"""
Extraction selection

Scans every page of a PDF for interesting passages and keeps a bounded,
ordered subset of them. When scanning finds fewer than MIN_EXTRACTIONS the
selector backfills with random word runs from random pages.

Bounds:
- at most MAX_PER_PAGE extractions per page (first found wins)
- passages shorter than MIN_PASSAGE_CHARS are never scanned
- kept text is cut to MAX_TEXT_CHARS plus an ellipsis
- backfill makes at most page_count * BACKFILL_ROUNDS attempts
"""
import logging
import random
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Set

from docboard.errors import ExtractionError
from docboard.extraction import heuristics

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 2
MIN_PASSAGE_CHARS = 20
MAX_TEXT_CHARS = 150
ELLIPSIS = "..."
MIN_EXTRACTIONS = 3
BACKFILL_WORDS = 15
BACKFILL_ROUNDS = 3

SOURCE_HEURISTIC = "heuristic"
SOURCE_BACKFILL = "backfill"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class ExtractionCandidate:
    text: str
    page_number: int
    source: str = SOURCE_HEURISTIC

    def to_dict(self):
        return {'text': self.text, 'pageNumber': self.page_number}


def truncate(text: str, limit: int = MAX_TEXT_CHARS) -> str:
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


class ExtractionSelector:
    """Pick extractions from a PDF using a page source and a random source."""

    def __init__(self, page_source, rng: Optional[random.Random] = None):
        self.page_source = page_source
        self.rng = rng or random.Random()

    def select(self, data: bytes, page_count: int) -> List[ExtractionCandidate]:
        """
        Return extraction candidates ordered by page, then discovery order.

        Raises whatever the page source raises when the document cannot be
        opened, and ExtractionError when not a single page could be read.
        """
        if page_count < 1:
            raise ExtractionError("Document has no pages", details={'pageCount': page_count})

        with self.page_source.open(data) as pages:
            readable: Set[int] = set()
            found = self._scan(pages, page_count, readable)
            if len(found) < MIN_EXTRACTIONS:
                logger.info("Scan found %d extraction(s) in %d page(s); backfilling", len(found), page_count)
                found.extend(self._backfill(pages, page_count, found, readable))

        if not found:
            raise ExtractionError("No readable pages in document", details={'pageCount': page_count})

        # Stable sort keeps discovery order within a page
        return sorted(found, key=lambda c: c.page_number)

    def _read_page(self, pages, page_number: int, readable: Set[int]) -> Optional[str]:
        try:
            text = pages.page_text(page_number)
        except Exception as e:
            logger.warning("Error extracting text from page %d: %s", page_number, e)
            return None
        readable.add(page_number)
        return text

    def _scan(self, pages, page_count: int, readable: Set[int]) -> List[ExtractionCandidate]:
        found: List[ExtractionCandidate] = []
        for page_number in range(1, page_count + 1):
            text = self._read_page(pages, page_number, readable)
            if not text or not text.strip():
                continue
            kept = 0
            for passage in heuristics.split_passages(text):
                if len(passage) < MIN_PASSAGE_CHARS:
                    continue
                if not heuristics.is_interesting(passage):
                    continue
                found.append(ExtractionCandidate(truncate(passage), page_number, SOURCE_HEURISTIC))
                kept += 1
                if kept >= MAX_PER_PAGE:
                    break
        return found

    def _backfill(self, pages, page_count: int, found: List[ExtractionCandidate],
                  readable: Set[int]) -> List[ExtractionCandidate]:
        """Add random word runs until the target is met or attempts run out. Never raises."""
        target = min(MIN_EXTRACTIONS, MAX_PER_PAGE * page_count)
        per_page = Counter(c.page_number for c in found)
        untried = [p for p in range(1, page_count + 1) if p not in per_page]
        added: List[ExtractionCandidate] = []

        for _ in range(page_count * BACKFILL_ROUNDS):
            if len(found) + len(added) >= target:
                break
            if untried:
                page_number = untried.pop(self.rng.randrange(len(untried)))
            else:
                open_pages = [p for p in sorted(readable) if per_page[p] < MAX_PER_PAGE]
                if not open_pages:
                    break
                page_number = self.rng.choice(open_pages)

            text = self._read_page(pages, page_number, readable)
            if text is None:
                continue
            snippet = self._random_run(text) or f"Content from page {page_number}"
            added.append(ExtractionCandidate(truncate(snippet), page_number, SOURCE_BACKFILL))
            per_page[page_number] += 1

        if len(found) + len(added) < target:
            logger.info("Backfill stopped at %d extraction(s) (target %d)", len(found) + len(added), target)
        return added

    def _random_run(self, text: str) -> str:
        words = text.split()
        if not words:
            return ""
        start = self.rng.randrange(max(1, len(words) - BACKFILL_WORDS))
        return " ".join(words[start:start + BACKFILL_WORDS])
