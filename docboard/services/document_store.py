"""Document and extraction persistence on top of the Flask-SQLAlchemy session."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from docboard.errors import InternalError
from docboard.models import Document, Extraction, PDF_MIME_TYPE

logger = logging.getLogger(__name__)


class DocumentStore:
    def __init__(self, session):
        self.session = session

    @contextmanager
    def _transaction(self, operation: str):
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise InternalError("Database operation failed", details={
                'operation': operation,
                'reason': str(e),
            }, cause=e)

    # ---- reads ----

    def list_documents(self) -> List[Document]:
        try:
            return (
                self.session.query(Document)
                .order_by(Document.upload_date.desc())
                .all()
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            raise InternalError("Database operation failed", details={'reason': str(e)}, cause=e)

    def get(self, document_id: str) -> Optional[Document]:
        return self.session.get(Document, document_id)

    def get_by_slot(self, slot_id: str) -> Optional[Document]:
        return self.session.query(Document).filter_by(slot_id=slot_id).first()

    def get_by_file_key(self, file_key: str) -> Optional[Document]:
        return self.session.query(Document).filter_by(file_key=file_key).first()

    def list_extractions(self, document_id: str) -> List[Extraction]:
        return (
            self.session.query(Extraction)
            .filter_by(document_id=document_id)
            .order_by(Extraction.page_number.asc(), Extraction.position.asc())
            .all()
        )

    # ---- writes ----

    def _upsert(self, slot_id, name, file_key, file_size, mime_type, page_count) -> Document:
        document = self.get_by_slot(slot_id)
        if document is None:
            document = Document(slot_id=slot_id)
            self.session.add(document)
        document.name = name
        document.file_key = file_key
        document.file_size = file_size
        document.mime_type = mime_type
        document.page_count = page_count
        document.upload_date = datetime.now(timezone.utc)
        self.session.flush()
        return document

    def _replace_rows(self, document_id: str, items: Iterable) -> List[Extraction]:
        for old in self.list_extractions(document_id):
            self.session.delete(old)
        rows: List[Extraction] = []
        for position, item in enumerate(items):
            row = Extraction(
                document_id=document_id,
                text=item.text,
                page_number=item.page_number,
                position=position,
            )
            self.session.add(row)
            rows.append(row)
        return rows

    def _expire_extractions(self, document_id: str) -> None:
        document = self.get(document_id)
        if document is not None:
            self.session.expire(document, ['extractions'])

    def upsert_by_slot(self, slot_id: str, name: str, file_key: str, file_size: int,
                       mime_type: str = PDF_MIME_TYPE, page_count: Optional[int] = None) -> Document:
        """Create the slot's document, or update the existing one in place (id is kept)."""
        with self._transaction("upsert document"):
            document = self._upsert(slot_id, name, file_key, file_size, mime_type, page_count)
        logger.debug("Upserted document %s in %s", document.id, slot_id)
        return document

    def save_upload(self, slot_id: str, name: str, file_key: str, file_size: int,
                    mime_type: str, page_count: int, items: Iterable) -> Tuple[Document, List[Extraction]]:
        """Upsert the slot's document and replace its extractions in one transaction.

        On failure nothing is written: the slot keeps its previous record and batch.
        """
        with self._transaction("save upload"):
            document = self._upsert(slot_id, name, file_key, file_size, mime_type, page_count)
            rows = self._replace_rows(document.id, items)
        self._expire_extractions(document.id)
        logger.debug("Saved document %s in %s with %d extraction(s)", document.id, slot_id, len(rows))
        return document, rows

    def replace_extractions(self, document_id: str, items: Iterable) -> List[Extraction]:
        """Delete every extraction of the document and insert items, in one transaction.

        items are ExtractionCandidate-like objects (text, page_number).
        """
        with self._transaction("replace extractions"):
            rows = self._replace_rows(document_id, items)
        self._expire_extractions(document_id)
        return rows

    def delete_document(self, document_id: str) -> bool:
        """Delete the document and its extractions in one transaction."""
        with self._transaction("delete document"):
            document = self.get(document_id)
            if document is None:
                return False
            self.session.delete(document)
        return True
