"""
API Endpoint Tests
"""
import io
import random

import pytest

from conftest import AGREEMENT, PDF_BYTES
from docboard import init_services
from docboard.errors import GENERIC_MESSAGE
from docboard.services.aws_service import LocalByteStore


def upload(client, upload_form, **kwargs):
    return client.post('/api/documents', data=upload_form(**kwargs), content_type='multipart/form-data')


class TestHealth:
    """Test health and version endpoints"""

    def test_healthz(self, client):
        response = client.get('/healthz')
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'ok'
        assert data['database'] == 'ok'
        assert data['storage'] == 'fake'

    def test_version(self, client):
        data = client.get('/version').get_json()
        assert data['version']
        assert data['features']['slots'] == 9


class TestUpload:
    """Test multipart uploads"""

    def test_upload(self, client, upload_form):
        response = upload(client, upload_form)

        assert response.status_code == 200
        data = response.get_json()
        assert data['ok'] is True
        assert data['degraded'] is False
        assert data['document']['slotId'] == 'doc-1'
        assert data['document']['name'] == 'contract.pdf'
        assert data['document']['mimeType'] == 'application/pdf'
        assert data['document']['fileSize'] == len(PDF_BYTES)
        assert len(data['extractions']) == 3
        assert {'id', 'text', 'pageNumber', 'documentId'} <= set(data['extractions'][0])

    def test_pdf_field_and_document_id_alias(self, client):
        response = client.post('/api/documents', data={
            'documentId': 'doc-2',
            'pdf': (io.BytesIO(PDF_BYTES), 'scan.pdf', 'application/pdf'),
        }, content_type='multipart/form-data')

        assert response.status_code == 200
        assert response.get_json()['document']['slotId'] == 'doc-2'

    def test_wrong_extension(self, client, upload_form):
        response = upload(client, upload_form, name='notes.txt')

        assert response.status_code == 400
        error = response.get_json()['error']
        assert error['type'] == 'VALIDATION_ERROR'
        assert error['message'] == 'Invalid file extension'

    def test_wrong_type(self, client, upload_form):
        response = upload(client, upload_form, content_type='image/png')
        assert response.status_code == 400
        assert response.get_json()['error']['message'] == 'Invalid file type'

    def test_too_large(self, client, coordinator, upload_form):
        coordinator.max_upload_bytes = 10
        response = upload(client, upload_form)
        assert response.status_code == 400
        assert response.get_json()['error']['message'] == 'File too large'

    def test_missing_slot(self, client, upload_form):
        form = upload_form()
        del form['slotId']
        response = client.post('/api/documents', data=form, content_type='multipart/form-data')
        assert response.status_code == 400
        assert response.get_json()['error']['details'] == {'missingFields': ['slotId']}

    def test_invalid_slot(self, client, upload_form):
        response = upload(client, upload_form, slot_id='doc-10')
        assert response.status_code == 400

    def test_storage_failure_is_sanitized(self, client, byte_store, upload_form):
        """Should hide service failure details from the client"""
        byte_store.fail_put = True

        response = upload(client, upload_form)

        assert response.status_code == 503
        error = response.get_json()['error']
        assert error['type'] == 'SERVICE_UNAVAILABLE'
        assert error['message'] == GENERIC_MESSAGE
        assert error['details'] is None

    def test_register_requires_fields(self, client):
        response = client.post('/api/documents', json={'name': 'a.pdf'})
        assert response.status_code == 400
        missing = response.get_json()['error']['details']['missingFields']
        assert set(missing) == {'fileKey', 'fileSize', 'mimeType', 'slotId'}

    def test_multipart_without_file(self, client):
        response = client.post('/api/documents', data={'slotId': 'doc-1'}, content_type='multipart/form-data')

        assert response.status_code == 400
        error = response.get_json()['error']
        assert error['message'] == 'No file uploaded'
        assert error['details'] == {'missingFields': ['file']}

    def test_register_rejects_key_of_another_slot(self, client, byte_store, upload_form):
        """Should not let two slots share one stored PDF"""
        doc = upload(client, upload_form, slot_id='doc-1').get_json()['document']

        response = client.post('/api/documents', json={
            'name': 'copy.pdf',
            'fileKey': doc['fileKey'],
            'fileSize': len(PDF_BYTES),
            'mimeType': 'application/pdf',
            'slotId': 'doc-2',
        })

        assert response.status_code == 400
        assert response.get_json()['error']['message'] == 'Invalid fileKey'
        assert client.get('/api/documents/doc-2').status_code == 404
        assert doc['fileKey'] in byte_store.objects

    def test_register_rejects_foreign_key(self, client):
        response = client.post('/api/documents', json={
            'name': 'scan.pdf',
            'fileKey': 'other-bucket-path/scan.pdf',
            'fileSize': len(PDF_BYTES),
            'mimeType': 'application/pdf',
            'slotId': 'doc-2',
        })
        assert response.status_code == 400
        assert response.get_json()['error']['message'] == 'Invalid fileKey'

    def test_invalid_json(self, client):
        response = client.post('/api/documents', data='{not json', content_type='application/json')
        assert response.status_code == 400
        assert response.get_json()['error']['message'] == 'Invalid JSON in request body'


class TestDocuments:
    """Test document lookups"""

    def test_list(self, client, upload_form):
        upload(client, upload_form, slot_id='doc-1')
        upload(client, upload_form, slot_id='doc-2')

        data = client.get('/api/documents').get_json()

        assert sorted(d['slotId'] for d in data) == ['doc-1', 'doc-2']

    def test_slots(self, client, upload_form):
        upload(client, upload_form, slot_id='doc-3')

        slots = client.get('/api/slots').get_json()['slots']

        assert len(slots) == 9
        by_id = {s['slotId']: s for s in slots}
        assert by_id['doc-3']['state'] == 'ready'
        assert by_id['doc-3']['document']['name'] == 'contract.pdf'
        assert by_id['doc-1']['state'] == 'empty'
        assert by_id['doc-1']['document'] is None

    def test_get_by_slot_and_id(self, client, upload_form):
        doc = upload(client, upload_form).get_json()['document']

        by_slot = client.get('/api/documents/doc-1').get_json()
        by_id = client.get(f"/api/documents/{doc['id']}").get_json()

        assert by_slot == by_id
        assert by_slot['id'] == doc['id']

    def test_empty_slot_404(self, client):
        response = client.get('/api/documents/doc-5')
        assert response.status_code == 404
        assert response.get_json()['error']['type'] == 'NOT_FOUND'

    @pytest.mark.parametrize("doc_id", ['doc-0', 'doc-10', 'doc-x'])
    def test_bad_id_400(self, client, doc_id):
        assert client.get(f'/api/documents/{doc_id}').status_code == 400


class TestExtractions:
    """Test extraction endpoints"""

    def test_get(self, client, upload_form):
        upload(client, upload_form)

        data = client.get('/api/documents/doc-1/extractions').get_json()

        assert len(data) == 3
        assert any(e['pageNumber'] == 2 and 'Agreement' in e['text'] for e in data)
        pages = [e['pageNumber'] for e in data]
        assert pages == sorted(pages)

    def test_replace(self, client, upload_form):
        upload(client, upload_form)

        response = client.post('/api/documents/doc-1/extractions', json={'extractions': [
            {'text': AGREEMENT, 'pageNumber': 2},
        ]})

        assert response.status_code == 200
        assert response.get_json()['count'] == 1
        data = client.get('/api/documents/doc-1/extractions').get_json()
        assert [(e['text'], e['pageNumber']) for e in data] == [(AGREEMENT, 2)]

    @pytest.mark.parametrize("body", [
        {},
        {'extractions': []},
        {'extractions': 'text'},
        {'extractions': [{'text': '', 'pageNumber': 1}]},
        {'extractions': [{'text': 'x', 'pageNumber': 0}]},
        {'extractions': [{'text': 'x' * 200, 'pageNumber': 1}]},
    ])
    def test_replace_invalid(self, client, upload_form, body):
        upload(client, upload_form)
        response = client.post('/api/documents/doc-1/extractions', json=body)
        assert response.status_code == 400

    def test_unknown_document(self, client):
        assert client.get('/api/documents/doc-4/extractions').status_code == 404


class TestSignedUrls:
    """Test signed download and upload URLs"""

    def test_download_url(self, client, upload_form):
        doc = upload(client, upload_form).get_json()['document']

        data = client.get('/api/documents/doc-1/download-url?expiresIn=600').get_json()

        assert doc['fileKey'] in data['url']
        assert 'ttl=600' in data['url']

    def test_download_url_detailed(self, client, upload_form):
        doc = upload(client, upload_form).get_json()['document']

        data = client.get('/api/documents/doc-1/download-url?detailed=1').get_json()

        assert data['documentId'] == doc['id']
        assert data['documentName'] == 'contract.pdf'
        assert data['expires']

    @pytest.mark.parametrize("ttl", ['abc', '10', '999999999'])
    def test_download_url_bad_ttl(self, client, upload_form, ttl):
        upload(client, upload_form)
        response = client.get(f'/api/documents/doc-1/download-url?expiresIn={ttl}')
        assert response.status_code == 400

    def test_upload_url(self, client):
        response = client.post('/api/documents/upload-url', json={
            'fileName': 'scan.pdf',
            'contentType': 'application/pdf',
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data['key'] in data['url']
        assert data['maxFileSize'] == 10 * 1024 * 1024
        assert data['expires']

    def test_upload_url_validation(self, client):
        response = client.post('/api/documents/upload-url', json={
            'fileName': 'scan.exe',
            'contentType': 'application/pdf',
        })
        assert response.status_code == 400

    def test_files_route_needs_local_store(self, client):
        assert client.get('/api/files/anything').status_code == 400


class TestDelete:
    """Test document deletion"""

    def test_delete(self, client, byte_store, upload_form):
        doc = upload(client, upload_form).get_json()['document']

        response = client.delete('/api/documents/doc-1')

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['documentId'] == doc['id']
        assert data['slotId'] == 'doc-1'
        assert doc['fileKey'] in byte_store.deleted
        assert client.get('/api/documents/doc-1').status_code == 404

    def test_delete_storage_failure(self, client, byte_store, upload_form):
        """Should report a partial delete when the object store fails"""
        doc = upload(client, upload_form).get_json()['document']
        byte_store.fail_delete = True

        response = client.delete(f"/api/documents/{doc['id']}")

        assert response.status_code == 500
        data = response.get_json()
        assert data['success'] is False
        assert data['documentId'] == doc['id']
        assert data['error']['details']['s3Deleted'] is False
        assert client.get('/api/documents/doc-1').status_code == 404
        assert client.get('/api/documents/doc-1/extractions').status_code == 404

    def test_delete_missing(self, client):
        assert client.delete('/api/documents/doc-9').status_code == 404


def test_local_signed_upload_flow(app, client, page_source, tmp_path):
    """Should upload through a signed URL, register, and download the bytes back"""
    init_services(app, byte_store=LocalByteStore(str(tmp_path), 'test-secret-key'),
                  page_source=page_source, rng=random.Random(5))

    signed = client.post('/api/documents/upload-url', json={
        'fileName': 'scan.pdf',
        'contentType': 'application/pdf',
    }).get_json()
    assert signed['url'].startswith('/api/files/')

    put = client.put(signed['url'], data=PDF_BYTES, content_type='application/pdf')
    assert put.status_code == 200
    assert put.get_json()['key'] == signed['key']

    registered = client.post('/api/documents', json={
        'name': 'scan.pdf',
        'fileKey': signed['key'],
        'fileSize': len(PDF_BYTES),
        'mimeType': 'application/pdf',
        'slotId': 'doc-7',
    })
    assert registered.status_code == 200
    assert registered.get_json()['document']['fileKey'] == signed['key']

    download = client.get('/api/documents/doc-7/download-url').get_json()['url']
    response = client.get(download)
    assert response.status_code == 200
    assert response.data == PDF_BYTES

    # A read URL cannot be used to write
    assert client.put(download, data=b'x').status_code == 400
