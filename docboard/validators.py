"""Input checks applied at the boundary, before the pipeline runs."""
import os
from typing import Any, List, Optional

from docboard.errors import ValidationError
from docboard.extraction.selector import ExtractionCandidate, MAX_TEXT_CHARS, ELLIPSIS
from docboard.models import PDF_MIME_TYPE

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
ALLOWED_EXTENSIONS = ("pdf",)
MAX_EXTRACTION_TEXT = MAX_TEXT_CHARS + len(ELLIPSIS)


def _mb(size: int) -> str:
    return f"{size / (1024 * 1024):.2f}MB"


def validate_file_name(file_name: Any) -> str:
    if not isinstance(file_name, str) or not file_name.strip():
        raise ValidationError("Invalid fileName", details={
            'received': file_name,
            'reason': "fileName must be a non-empty string",
        })
    ext = os.path.splitext(file_name.strip())[1].lower().lstrip(".")
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError("Invalid file extension", details={
            'received': ext,
            'allowedExtensions': list(ALLOWED_EXTENSIONS),
            'reason': "Only PDF files are allowed",
        })
    return file_name.strip()


def validate_content_type(content_type: Any) -> str:
    value = (content_type or "").split(";")[0].strip().lower() if isinstance(content_type, str) else content_type
    if value != PDF_MIME_TYPE:
        raise ValidationError("Invalid file type", details={
            'allowedTypes': [PDF_MIME_TYPE],
            'receivedType': content_type,
        })
    return PDF_MIME_TYPE


def validate_file_size(size: Any, limit: int = MAX_FILE_SIZE) -> int:
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise ValidationError("Invalid file size", details={
            'received': size,
            'reason': "File must not be empty",
        })
    if size > limit:
        raise ValidationError("File too large", details={
            'received': _mb(size),
            'maxSize': _mb(limit),
            'reason': "Maximum file size is 10MB",
        })
    return size


def validate_page_count(page_count: Any) -> Optional[int]:
    """Return the declared page count as an int, or None when not declared."""
    if page_count is None or page_count == "":
        return None
    value = 0
    if isinstance(page_count, int) and not isinstance(page_count, bool):
        value = page_count
    elif isinstance(page_count, str) and page_count.strip().isdigit():
        value = int(page_count.strip())
    if value < 1:
        raise ValidationError("Invalid pageCount", details={
            'received': page_count,
            'reason': "pageCount must be a positive integer",
        })
    return value


def validate_upload(file_name: Any, content_type: Any, data: bytes, limit: int = MAX_FILE_SIZE) -> None:
    validate_file_name(file_name)
    validate_content_type(content_type)
    validate_file_size(len(data or b""), limit)


def validate_extraction_batch(items: Any, page_count: Optional[int] = None) -> List[ExtractionCandidate]:
    """Check a client-supplied extraction batch and convert it to candidates."""
    if items is None:
        raise ValidationError("Missing extractions", details={
            'reason': "The extractions field is required",
        })
    if not isinstance(items, list):
        raise ValidationError("Invalid extractions format", details={
            'received': type(items).__name__,
            'expected': "array",
        })
    if not items:
        raise ValidationError("Empty extractions array", details={
            'reason': "At least one extraction is required",
        })

    errors: List[str] = []
    out: List[ExtractionCandidate] = []
    for index, item in enumerate(items):
        item = item if isinstance(item, dict) else {}
        text = item.get('text')
        page = item.get('pageNumber')
        if not text or not isinstance(text, str):
            errors.append(f"Extraction at index {index}: text is required and must be a string")
        elif len(text) > MAX_EXTRACTION_TEXT:
            errors.append(f"Extraction at index {index}: text must be at most {MAX_EXTRACTION_TEXT} characters")
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            errors.append(f"Extraction at index {index}: pageNumber is required and must be a positive number")
        elif page_count and page > page_count:
            errors.append(f"Extraction at index {index}: pageNumber must not exceed {page_count}")
        if not errors:
            out.append(ExtractionCandidate(text, page, "client"))

    if errors:
        raise ValidationError("Invalid extraction objects", details={'errors': errors})
    return out
