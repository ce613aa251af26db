"""
API Blueprint - document slots, uploads, extractions and signed URLs

Every route that takes an <doc_id> accepts either a slot id (doc-1 .. doc-9)
or a durable document id.
"""
from datetime import datetime, timedelta, timezone

from flask import Blueprint, Response, current_app, jsonify, request

from docboard import get_coordinator
from docboard.errors import InternalError, ValidationError
from docboard.services.aws_service import READ_TTL_DEFAULT, LocalByteStore

api_bp = Blueprint('api', __name__, url_prefix='/api')


# ============ Helper Functions ============

def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def expires_iso(ttl: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(seconds=ttl)).isoformat()


def json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON in request body", details={'cause': "JSON parse error"})
    return body


def require_fields(body: dict, names) -> None:
    missing = [name for name in names if not body.get(name)]
    if missing:
        raise ValidationError("Missing required fields", details={'missingFields': missing})


def parse_ttl_arg(raw, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError("Invalid expiresIn parameter", details={'received': raw})


def local_store() -> LocalByteStore:
    store = get_coordinator().byte_store
    if not isinstance(store, LocalByteStore):
        raise ValidationError("Signed file URLs are served by the object store")
    return store


def upload_response(result, status=200):
    return jsonify({
        'ok': True,
        'document': result.document.to_dict(),
        'extractions': [e.to_dict() for e in result.extractions],
        'degraded': result.degraded,
    }), status


# ============ API Routes ============

@api_bp.route('/slots', methods=['GET'])
def list_slots():
    slots = []
    for slot_id, document, state in get_coordinator().list_slots():
        slots.append({
            'slotId': slot_id,
            'state': state.value,
            'document': document.to_dict() if document is not None else None,
        })
    return jsonify({'ok': True, 'slots': slots})


@api_bp.route('/documents', methods=['GET'])
def list_documents():
    documents = get_coordinator().list_documents()
    return jsonify([d.to_dict() for d in documents])


@api_bp.route('/documents', methods=['POST'])
def create_document():
    """Multipart upload (slotId + file) or JSON registration of a signed upload."""
    coordinator = get_coordinator()

    if request.mimetype == 'multipart/form-data':
        file = request.files.get('file') or request.files.get('pdf')
        if not file:
            raise ValidationError("No file uploaded", details={'missingFields': ['file']})
        slot = request.form.get('slotId') or request.form.get('documentId')
        if not slot:
            raise ValidationError("Missing required fields", details={'missingFields': ['slotId']})
        data = file.read()
        result = coordinator.upload(
            slot,
            file.filename or "",
            data,
            file.mimetype,
            page_count=request.form.get('pageCount'),
        )
        return upload_response(result)

    body = json_body()
    require_fields(body, ['name', 'fileKey', 'fileSize', 'mimeType', 'slotId'])
    result = coordinator.register_uploaded(
        body['slotId'],
        body['fileKey'],
        body['name'],
        body['fileSize'],
        body['mimeType'],
        page_count=body.get('pageCount'),
    )
    return upload_response(result)


@api_bp.route('/documents/upload-url', methods=['POST'])
def create_upload_url():
    body = json_body()
    require_fields(body, ['fileName', 'contentType'])
    url, key, ttl = get_coordinator().upload_url(
        body['fileName'],
        body['contentType'],
        ttl=body.get('expiresIn'),
        file_size=body.get('fileSize'),
    )
    return jsonify({
        'url': url,
        'key': key,
        'expires': expires_iso(ttl),
        'maxFileSize': current_app.config['MAX_UPLOAD_BYTES'],
    })


@api_bp.route('/documents/<doc_id>', methods=['GET'])
def get_document(doc_id):
    return jsonify(get_coordinator().get_document(doc_id).to_dict())


@api_bp.route('/documents/<doc_id>', methods=['DELETE'])
def delete_document(doc_id):
    current_app.logger.info(
        "DELETE_DOCUMENT_REQUEST id=%s ip=%s agent=%s",
        doc_id,
        request.headers.get('X-Forwarded-For') or request.remote_addr or "unknown",
        request.headers.get('User-Agent') or "unknown",
    )
    result = get_coordinator().delete(doc_id)

    if not result.storage_deleted:
        err = InternalError("Failed to delete document completely", details={
            'documentId': result.document_id,
            'databaseDeleted': True,
            'extractionsDeleted': True,
            's3Deleted': False,
        })
        return jsonify({
            'ok': False,
            'success': False,
            'documentId': result.document_id,
            'error': err.to_dict(expose_details=True),
        }), err.status_code

    current_app.logger.info("DELETE_DOCUMENT_SUCCESS id=%s", result.document_id)
    return jsonify({
        'ok': True,
        'success': True,
        'message': "Document deleted successfully",
        'documentId': result.document_id,
        'slotId': result.slot_id,
        'timestamp': now_utc_iso(),
    })


@api_bp.route('/documents/<doc_id>/extractions', methods=['GET'])
def get_extractions(doc_id):
    _, extractions = get_coordinator().get_extractions(doc_id)
    return jsonify([e.to_dict() for e in extractions])


@api_bp.route('/documents/<doc_id>/extractions', methods=['POST'])
def replace_extractions(doc_id):
    body = json_body()
    coordinator = get_coordinator()
    document = coordinator.get_document(doc_id)
    rows = coordinator.replace_extractions(document.id, body.get('extractions'))
    return jsonify({
        'ok': True,
        'success': True,
        'count': len(rows),
        'message': f"Successfully created {len(rows)} extractions for document {document.id}",
    })


@api_bp.route('/documents/<doc_id>/download-url', methods=['GET'])
def get_download_url(doc_id):
    ttl = parse_ttl_arg(request.args.get('expiresIn'), READ_TTL_DEFAULT)
    url, document = get_coordinator().download_url(doc_id, ttl)
    if 'detailed' in request.args:
        return jsonify({
            'url': url,
            'expires': expires_iso(ttl),
            'documentId': document.id,
            'documentName': document.name,
        })
    return jsonify({'url': url})


@api_bp.route('/files/<token>', methods=['GET'])
def read_file(token):
    store = local_store()
    data = store.get_object(store.verify_token(token, "read"))
    return Response(data, mimetype='application/pdf')


@api_bp.route('/files/<token>', methods=['PUT'])
def write_file(token):
    store = local_store()
    data = request.get_data()
    if len(data) > current_app.config['MAX_UPLOAD_BYTES']:
        raise ValidationError("File too large", details={'maxSize': "10MB"})
    key = store.store_signed_upload(token, data)
    return jsonify({'ok': True, 'key': key})
