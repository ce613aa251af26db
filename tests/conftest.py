"""
Test Configuration and Fixtures
"""
import io
import os
import random

import pytest

from docboard import create_app, db, get_coordinator, init_services
from docboard.errors import NotFoundError, ServiceUnavailable
from docboard.services.aws_service import (
    READ_TTL_DEFAULT,
    READ_TTL_RANGE,
    WRITE_TTL_DEFAULT,
    WRITE_TTL_RANGE,
    new_object_key,
    validate_ttl,
)
from docboard.services.pdf_service import PageSource, PdfPages

FILLER = "Lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor incididunt"
AGREEMENT = "This Agreement is entered into as of January 1, 2025"
PDF_BYTES = b"%PDF-1.4\n% test payload\n"


class FakePages(PdfPages):
    def __init__(self, source):
        self.source = source
        self.page_count = len(source.pages)

    def page_text(self, page_number):
        self.source.calls.append(page_number)
        self._check_page(page_number)
        value = self.source.pages[page_number - 1]
        if isinstance(value, Exception):
            raise value
        return value


class FakePageSource(PageSource):
    """Pages are given as a list: text, or an exception to raise for that page."""
    name = "fake"

    def __init__(self, pages=None, open_error=None):
        self.pages = list(pages or [FILLER])
        self.open_error = open_error
        self.calls = []

    def open(self, data):
        if self.open_error is not None:
            raise self.open_error
        return FakePages(self)


class FakeByteStore:
    name = "fake"
    prefix = "documents/"

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_put = False
        self.fail_delete = False

    def put_object(self, data, content_type, file_name=""):
        if self.fail_put:
            raise ServiceUnavailable.for_operation("S3", "uploading file", RuntimeError("bucket unreachable"))
        key = new_object_key(file_name)
        self.objects[key] = data
        return key

    def get_object(self, key):
        if key not in self.objects:
            raise NotFoundError.for_resource("File", key)
        return self.objects[key]

    def get_signed_read_url(self, key, ttl=READ_TTL_DEFAULT):
        validate_ttl(ttl, READ_TTL_RANGE)
        return f"https://files.example.com/{key}?ttl={ttl}"

    def get_signed_write_url(self, file_name, content_type, ttl=WRITE_TTL_DEFAULT):
        validate_ttl(ttl, WRITE_TTL_RANGE)
        key = new_object_key(file_name)
        return f"https://files.example.com/upload/{key}?ttl={ttl}", key

    def delete_object(self, key):
        if self.fail_delete:
            raise ServiceUnavailable.for_operation("S3", "deleting file", RuntimeError("access denied"))
        self.objects.pop(key, None)
        self.deleted.append(key)


@pytest.fixture(scope='function')
def page_source():
    return FakePageSource([FILLER, AGREEMENT, FILLER, FILLER, FILLER])


@pytest.fixture(scope='function')
def byte_store():
    return FakeByteStore()


@pytest.fixture(scope='function')
def app(page_source, byte_store):
    """Create application for testing"""
    os.environ['SECRET_KEY'] = 'test-secret-key'

    app = create_app('testing')
    with app.app_context():
        init_services(app, byte_store=byte_store, page_source=page_source, rng=random.Random(42))
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def coordinator(app):
    return get_coordinator()


@pytest.fixture
def upload_form():
    def make(slot_id='doc-1', name='contract.pdf', content_type='application/pdf', data=PDF_BYTES, **extra):
        form = {'slotId': slot_id, 'file': (io.BytesIO(data), name, content_type)}
        form.update(extra)
        return form
    return make


@pytest.fixture
def make_pdf():
    """Build a real PDF with PyMuPDF, one text block per page."""
    fitz = pytest.importorskip("fitz")

    def make(pages):
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            page.insert_text((72, 72), text, fontsize=11)
        data = doc.tobytes()
        doc.close()
        return data
    return make
