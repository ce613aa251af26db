from docboard.extraction.selector import ExtractionCandidate, ExtractionSelector
from docboard.extraction.fallback import generate_fallback_extractions

__all__ = ["ExtractionCandidate", "ExtractionSelector", "generate_fallback_extractions"]
