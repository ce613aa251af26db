"""
Database Models

- Document: one uploaded PDF, bound to exactly one dashboard slot
- Extraction: a text snippet + page number owned by a Document
"""
import uuid
from datetime import datetime, timezone

from docboard import db

PDF_MIME_TYPE = "application/pdf"


def _new_id():
    return str(uuid.uuid4())


def _now():
    return datetime.now(timezone.utc)


class Document(db.Model):
    __tablename__ = 'documents'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False)
    upload_date = db.Column(db.DateTime(timezone=True), default=_now, nullable=False)

    # Byte payload in the object store
    file_key = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    mime_type = db.Column(db.String(100), nullable=False, default=PDF_MIME_TYPE)
    page_count = db.Column(db.Integer)

    # At most one live document per slot
    slot_id = db.Column(db.String(10), unique=True, nullable=False, index=True)

    extractions = db.relationship(
        'Extraction',
        back_populates='document',
        cascade='all, delete-orphan',
        order_by=lambda: [Extraction.page_number, Extraction.position],
    )

    def to_dict(self):
        """Convert document to dictionary for API responses"""
        return {
            'id': self.id,
            'name': self.name,
            'uploadDate': self.upload_date.isoformat() if self.upload_date else None,
            'fileKey': self.file_key,
            'fileSize': self.file_size,
            'mimeType': self.mime_type,
            'slotId': self.slot_id,
            'pageCount': self.page_count,
        }


class Extraction(db.Model):
    __tablename__ = 'extractions'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    document_id = db.Column(
        db.String(36),
        db.ForeignKey('documents.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    text = db.Column(db.Text, nullable=False)
    page_number = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)  # discovery order within the batch
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    document = db.relationship('Document', back_populates='extractions')

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.text,
            'pageNumber': self.page_number,
            'documentId': self.document_id,
        }
