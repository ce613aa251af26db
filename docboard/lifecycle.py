"""
Document lifecycle

Sequences one slot through upload -> store bytes -> upsert record -> extract
-> persist extractions -> register, and through delete. Each slot moves
through SlotState:

    EMPTY -> UPLOADING -> EXTRACTING -> READY -> DELETING -> EMPTY
    any state -> FAILED -> (cleanup) -> READY if still occupied, else EMPTY

Extraction failures never fail an upload: the boilerplate fallback is
persisted instead and the result is flagged as degraded. Nothing is retried
here; retries are the caller's decision.
"""
import enum
import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from docboard.errors import DocboardError, NotFoundError, ValidationError
from docboard.extraction import ExtractionCandidate, ExtractionSelector, generate_fallback_extractions
from docboard.models import PDF_MIME_TYPE
from docboard.services.aws_service import READ_TTL_DEFAULT, WRITE_TTL_DEFAULT
from docboard.slots import (
    SLOT_IDS,
    DocumentHandle,
    SlotDocumentRegistry,
    SlotRef,
    parse_addressable,
)
from docboard import validators

logger = logging.getLogger(__name__)


class SlotState(enum.Enum):
    EMPTY = "empty"
    UPLOADING = "uploading"
    EXTRACTING = "extracting"
    READY = "ready"
    DELETING = "deleting"
    FAILED = "failed"


IN_FLIGHT = (SlotState.UPLOADING, SlotState.EXTRACTING, SlotState.DELETING)


@dataclass
class UploadResult:
    document: object
    extractions: List[object] = field(default_factory=list)
    degraded: bool = False


@dataclass
class DeleteResult:
    document_id: str
    slot_id: str
    file_key: str
    storage_deleted: bool = True

    @property
    def success(self) -> bool:
        return self.storage_deleted


class DocumentLifecycleCoordinator:
    def __init__(self, store, byte_store, page_source, registry: Optional[SlotDocumentRegistry] = None,
                 rng: Optional[random.Random] = None, max_upload_bytes: int = validators.MAX_FILE_SIZE):
        self.store = store
        self.byte_store = byte_store
        self.page_source = page_source
        self.registry = registry or SlotDocumentRegistry()
        self.rng = rng or random.Random()
        self.selector = ExtractionSelector(page_source, self.rng)
        self.max_upload_bytes = max_upload_bytes
        self._states: Dict[str, SlotState] = {slot: SlotState.EMPTY for slot in SLOT_IDS}
        self._states_lock = threading.Lock()

    # ---- state ----

    def state_of(self, slot_id: str) -> SlotState:
        with self._states_lock:
            return self._states[slot_id]

    def _set_state(self, slot_id: str, state: SlotState) -> None:
        with self._states_lock:
            previous = self._states[slot_id]
            self._states[slot_id] = state
        if previous != state:
            logger.debug("Slot %s: %s -> %s", slot_id, previous.value, state.value)

    def _settle(self, slot_id: str) -> None:
        occupied = self.registry.snapshot().get(slot_id) is not None
        self._set_state(slot_id, SlotState.READY if occupied else SlotState.EMPTY)

    # ---- registry ----

    def sync_registry(self) -> list:
        """Rebuild the slot index from the documents table and settle idle slots.

        Returns the documents the index was built from.
        """
        documents = self.store.list_documents()
        self.registry.rebuild(documents)
        for slot in SLOT_IDS:
            if self.state_of(slot) not in IN_FLIGHT:
                self._settle(slot)
        return documents

    def _ensure_registry(self) -> None:
        if not self.registry.loaded:
            self.sync_registry()

    def resolve(self, addressable) -> DocumentHandle:
        ref = parse_addressable(addressable)
        self._ensure_registry()
        handle = self.registry.resolve(ref)
        if handle is None:
            # Another worker may have written since our last sync
            self.sync_registry()
            handle = self.registry.resolve(ref)
        if handle is None:
            raise NotFoundError.for_resource("Document", str(ref))
        return handle

    def get_document(self, addressable):
        handle = self.resolve(addressable)
        document = self.store.get(handle.id)
        if document is None:
            self.sync_registry()
            raise NotFoundError.for_resource("Document", handle.id)
        return document

    def _target_slot(self, addressable) -> str:
        ref = parse_addressable(addressable)
        if isinstance(ref, SlotRef):
            return ref.slot_id
        return self.resolve(ref).slot_id

    # ---- reads ----

    def list_documents(self) -> list:
        return self.store.list_documents()

    def list_slots(self) -> List[Tuple[str, Optional[object], SlotState]]:
        documents = self.sync_registry()
        by_slot = {doc.slot_id: doc for doc in documents}
        return [(slot, by_slot.get(slot), self.state_of(slot)) for slot in SLOT_IDS]

    def get_extractions(self, addressable):
        document = self.get_document(addressable)
        return document, self.store.list_extractions(document.id)

    def download_url(self, addressable, ttl: int = READ_TTL_DEFAULT):
        document = self.get_document(addressable)
        return self.byte_store.get_signed_read_url(document.file_key, ttl), document

    def upload_url(self, file_name, content_type, ttl: Optional[int] = None, file_size=None):
        validators.validate_file_name(file_name)
        validators.validate_content_type(content_type)
        if file_size is not None:
            validators.validate_file_size(file_size, self.max_upload_bytes)
        ttl = WRITE_TTL_DEFAULT if ttl is None else ttl
        url, key = self.byte_store.get_signed_write_url(file_name, PDF_MIME_TYPE, ttl)
        return url, key, ttl

    # ---- upload ----

    def upload(self, addressable, file_name: str, data: bytes, content_type: str,
               page_count=None) -> UploadResult:
        """Store a new PDF in the slot named (or occupied) by addressable."""
        validators.validate_upload(file_name, content_type, data, self.max_upload_bytes)
        page_count = validators.validate_page_count(page_count)
        slot = self._target_slot(addressable)
        page_count = page_count or self._count_pages(data)

        self._set_state(slot, SlotState.UPLOADING)
        try:
            key = self.byte_store.put_object(data, PDF_MIME_TYPE, file_name)
        except Exception as e:
            self._fail(slot, e)
            raise
        logger.info("Stored %s (%d bytes, %d pages) for %s as %s", file_name, len(data), page_count, slot, key)
        return self._extract_and_save(slot, file_name, key, data, page_count)

    def register_uploaded(self, addressable, file_key: str, name: str, file_size, mime_type,
                          page_count=None) -> UploadResult:
        """Record a PDF the client already put in the byte store through a signed write URL."""
        validators.validate_file_name(name)
        validators.validate_content_type(mime_type)
        validators.validate_file_size(file_size, self.max_upload_bytes)
        page_count = validators.validate_page_count(page_count)
        if not isinstance(file_key, str) or not file_key.strip():
            raise ValidationError("Missing required fields", details={'missingFields': ["fileKey"]})
        slot = self._target_slot(addressable)
        self._check_registrable_key(file_key, slot)

        data = self.byte_store.get_object(file_key)
        validators.validate_file_size(len(data), self.max_upload_bytes)
        page_count = page_count or self._count_pages(data)

        self._set_state(slot, SlotState.UPLOADING)
        return self._extract_and_save(slot, name, file_key, data, page_count)

    def _check_registrable_key(self, file_key: str, slot: str) -> None:
        """A signed upload key must come from this store and belong to no other document."""
        prefix = self.byte_store.prefix
        if not file_key.startswith(prefix) or ".." in file_key.split("/"):
            raise ValidationError("Invalid fileKey", details={
                'received': file_key,
                'reason': f"fileKey must be a key issued under {prefix}",
            })
        owner = self.store.get_by_file_key(file_key)
        if owner is not None and owner.slot_id != slot:
            raise ValidationError("Invalid fileKey", details={
                'received': file_key,
                'reason': "fileKey already belongs to another document",
            })

    def _count_pages(self, data: bytes) -> int:
        try:
            count = self.page_source.get_page_count(data)
        except DocboardError as e:
            raise ValidationError("Unable to read PDF", details={'reason': e.message}, cause=e)
        if count < 1:
            raise ValidationError("PDF has no pages")
        return count

    def _current_key(self, slot: str) -> Optional[str]:
        existing = self.store.get_by_slot(slot)
        return existing.file_key if existing is not None else None

    def _run_extraction(self, label: str, data: bytes, page_count: int) -> Tuple[List[ExtractionCandidate], bool]:
        try:
            candidates = self.selector.select(data, page_count)
        except Exception as e:
            logger.warning("Extraction failed for %s, using fallback: %s", label, e)
            return generate_fallback_extractions(label, page_count, self.rng), True
        if not candidates:
            logger.warning("Extraction returned nothing for %s, using fallback", label)
            return generate_fallback_extractions(label, page_count, self.rng), True
        return candidates, False

    def _extract_and_save(self, slot: str, name: str, key: str, data: bytes, page_count: int) -> UploadResult:
        """Extract, then write the record and its batch together.

        If the write fails the slot keeps its previous record, batch and
        payload; the new payload is discarded.
        """
        self._set_state(slot, SlotState.EXTRACTING)
        candidates, degraded = self._run_extraction(slot, data, page_count)
        previous_key = None
        try:
            previous_key = self._current_key(slot)
            document, rows = self.store.save_upload(slot, name, key, len(data), PDF_MIME_TYPE,
                                                    page_count, candidates)
        except Exception as e:
            self._fail(slot, e, orphan_key=None if key == previous_key else key)
            raise

        self.registry.put(slot, DocumentHandle.from_model(document))
        self._set_state(slot, SlotState.READY)
        if previous_key and previous_key != document.file_key:
            self._discard_object(previous_key, "replaced by a new upload")
        logger.info("Document %s ready in %s with %d extraction(s)%s",
                    document.id, slot, len(rows), " (fallback)" if degraded else "")
        return UploadResult(document=document, extractions=rows, degraded=degraded)

    # ---- extractions ----

    def replace_extractions(self, addressable, items) -> list:
        document = self.get_document(addressable)
        candidates = validators.validate_extraction_batch(items, document.page_count)
        return self.store.replace_extractions(document.id, candidates)

    # ---- delete ----

    def delete(self, addressable) -> DeleteResult:
        """
        Delete database rows first, then the byte payload.

        A byte-store failure after the rows are gone leaves the slot EMPTY and
        is reported through storage_deleted=False; the orphaned object is logged.
        """
        document = self.get_document(addressable)
        result = DeleteResult(document_id=document.id, slot_id=document.slot_id, file_key=document.file_key)
        slot = result.slot_id

        self._set_state(slot, SlotState.DELETING)
        try:
            self.store.delete_document(result.document_id)
        except Exception as e:
            self._fail(slot, e)
            raise
        self.registry.remove(slot)
        self._set_state(slot, SlotState.EMPTY)

        try:
            self.byte_store.delete_object(result.file_key)
        except Exception as e:
            result.storage_deleted = False
            logger.error("Orphaned object %s after deleting document %s from %s: %s",
                         result.file_key, result.document_id, slot, e)
        logger.info("Deleted document %s from %s", result.document_id, slot)
        return result

    # ---- failure handling ----

    def _discard_object(self, key: str, reason: str) -> None:
        try:
            self.byte_store.delete_object(key)
        except Exception as e:
            logger.warning("Orphaned object %s (%s): %s", key, reason, e)

    def _fail(self, slot: str, error: Exception, orphan_key: Optional[str] = None) -> None:
        self._set_state(slot, SlotState.FAILED)
        logger.error("Lifecycle failure in %s: %s", slot, error)
        if orphan_key:
            self._discard_object(orphan_key, "upload was not recorded")
        try:
            self.sync_registry()
        except DocboardError as sync_error:
            logger.error("Could not resync slot registry: %s", sync_error)
        self._settle(slot)
