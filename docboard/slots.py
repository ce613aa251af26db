"""
Slots and document identity

The dashboard has nine fixed slots, doc-1 .. doc-9. Callers may address a
document by its slot or by its durable id; parse_addressable turns the raw
string into a SlotRef or DocumentRef once, at the boundary.

SlotDocumentRegistry is an in-process index slot -> document. It is derived
from the documents table and can always be rebuilt from it.
"""
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

from docboard.errors import ValidationError

logger = logging.getLogger(__name__)

SLOT_COUNT = 9
SLOT_PREFIX = "doc-"
SLOT_IDS = tuple(f"{SLOT_PREFIX}{n}" for n in range(1, SLOT_COUNT + 1))

_SLOT_RE = re.compile(r"^doc-([0-9]+)$")
_DOCUMENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


@dataclass(frozen=True)
class SlotRef:
    slot_number: int

    @property
    def slot_id(self) -> str:
        return f"{SLOT_PREFIX}{self.slot_number}"

    def __str__(self):
        return self.slot_id


@dataclass(frozen=True)
class DocumentRef:
    document_id: str

    def __str__(self):
        return self.document_id


Addressable = Union[SlotRef, DocumentRef]


def parse_addressable(raw) -> Addressable:
    """Classify a raw id as a slot reference or a durable document id."""
    if isinstance(raw, (SlotRef, DocumentRef)):
        return raw
    value = (raw or "").strip() if isinstance(raw, str) else ""
    if not value:
        raise ValidationError("Invalid document ID", details={
            'received': raw,
            'reason': "Document ID cannot be empty",
        })
    m = _SLOT_RE.match(value)
    if m:
        number = int(m.group(1))
        if not 1 <= number <= SLOT_COUNT:
            raise ValidationError("Invalid slot ID", details={
                'received': value,
                'allowedSlots': list(SLOT_IDS),
            })
        return SlotRef(number)
    if value.startswith(SLOT_PREFIX) or not _DOCUMENT_ID_RE.match(value):
        raise ValidationError("Invalid document ID", details={
            'received': value,
            'reason': "Expected a slot ID (doc-1 .. doc-9) or a document ID",
        })
    return DocumentRef(value)


def parse_slot(raw) -> SlotRef:
    ref = parse_addressable(raw)
    if not isinstance(ref, SlotRef):
        raise ValidationError("Invalid slot ID", details={
            'received': raw,
            'allowedSlots': list(SLOT_IDS),
        })
    return ref


@dataclass(frozen=True)
class DocumentHandle:
    """Immutable snapshot of the fields the registry needs."""
    id: str
    slot_id: str
    name: str = ""
    file_key: str = ""
    upload_date: Optional[datetime] = None

    @classmethod
    def from_model(cls, document) -> "DocumentHandle":
        return cls(
            id=document.id,
            slot_id=document.slot_id,
            name=document.name or "",
            file_key=document.file_key or "",
            upload_date=document.upload_date,
        )


class SlotDocumentRegistry:
    """slot -> document index guarded by a single lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._slots: Dict[str, Optional[DocumentHandle]] = {slot: None for slot in SLOT_IDS}
        self.loaded = False

    def resolve(self, addressable) -> Optional[DocumentHandle]:
        ref = parse_addressable(addressable)
        with self._lock:
            if isinstance(ref, SlotRef):
                return self._slots.get(ref.slot_id)
            for handle in self._slots.values():
                if handle is not None and handle.id == ref.document_id:
                    return handle
        return None

    def put(self, slot_id: str, handle: DocumentHandle) -> Optional[DocumentHandle]:
        """Place handle in slot_id, returning the previous occupant."""
        slot = parse_slot(slot_id).slot_id
        with self._lock:
            previous = self._slots[slot]
            self._slots[slot] = handle
            for other, occupant in self._slots.items():
                if other != slot and occupant is not None and occupant.id == handle.id:
                    logger.warning("Document %s is registered in both %s and %s", handle.id, other, slot)
        return previous

    def remove(self, slot_id: str) -> Optional[DocumentHandle]:
        slot = parse_slot(slot_id).slot_id
        with self._lock:
            previous = self._slots[slot]
            self._slots[slot] = None
        return previous

    def rebuild(self, documents: Iterable) -> None:
        """Replace the whole table with the given persisted documents."""
        table: Dict[str, Optional[DocumentHandle]] = {slot: None for slot in SLOT_IDS}
        for doc in documents:
            handle = doc if isinstance(doc, DocumentHandle) else DocumentHandle.from_model(doc)
            if handle.slot_id not in table:
                logger.warning("Document %s has unknown slot %r; ignored", handle.id, handle.slot_id)
                continue
            if table[handle.slot_id] is not None:
                logger.warning("Slot %s holds more than one document (%s, %s)",
                               handle.slot_id, table[handle.slot_id].id, handle.id)
            table[handle.slot_id] = handle
        with self._lock:
            self._slots = table
            self.loaded = True
        self.check_invariants()

    def snapshot(self) -> Dict[str, Optional[DocumentHandle]]:
        with self._lock:
            return dict(self._slots)

    def check_invariants(self) -> List[str]:
        """Report documents that appear in more than one slot. Nothing is repaired."""
        seen: Dict[str, str] = {}
        problems: List[str] = []
        for slot, handle in self.snapshot().items():
            if handle is None:
                continue
            if handle.id in seen:
                msg = f"Document {handle.id} appears in {seen[handle.id]} and {slot}"
                logger.warning(msg)
                problems.append(msg)
            else:
                seen[handle.id] = slot
        return problems
