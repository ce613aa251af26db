"""Byte storage for uploaded PDFs.

S3ByteStore talks to S3 through boto3. LocalByteStore keeps files under a
directory and hands out itsdangerous-signed URLs served by the files route;
it is used when no bucket is configured.
"""
from __future__ import annotations

import logging
import os
import re
import uuid
from typing import Tuple

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from docboard.errors import NotFoundError, ServiceUnavailable, ValidationError

logger = logging.getLogger(__name__)

READ_TTL_DEFAULT = 3600
READ_TTL_RANGE = (60, 604800)
WRITE_TTL_DEFAULT = 300
WRITE_TTL_RANGE = (60, 3600)


def validate_ttl(ttl, bounds: Tuple[int, int], received=None) -> int:
    low, high = bounds
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < low or ttl > high:
        raise ValidationError("Invalid expiresIn parameter", details={
            'received': ttl if received is None else received,
            'allowedRange': f"{low}-{high} seconds",
        })
    return ttl


def new_object_key(file_name: str, prefix: str = "documents/") -> str:
    ext = os.path.splitext((file_name or "").strip())[1].lower().lstrip(".") or "pdf"
    ext = re.sub(r"[^a-z0-9]", "", ext) or "pdf"
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return f"{prefix}{uuid.uuid4()}.{ext}"


def aws_ready(bucket: str, region: str) -> Tuple[bool, str]:
    if not (bucket or "").strip():
        return False, "AWS_S3_BUCKET not set"
    if not (region or "").strip():
        return False, "AWS_REGION not set"
    return True, ""


class S3ByteStore:
    name = "s3"

    def __init__(self, client, bucket: str, prefix: str = "documents/"):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix

    @classmethod
    def from_config(cls, region: str, bucket: str, prefix: str = "documents/") -> "S3ByteStore":
        client = boto3.client("s3", region_name=region or None)
        return cls(client, bucket, prefix)

    def put_object(self, data: bytes, content_type: str, file_name: str = "") -> str:
        key = new_object_key(file_name, self.prefix)
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            raise ServiceUnavailable.for_operation("S3", "uploading file", e)
        return key

    def get_object(self, key: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()
        except ClientError as e:
            code = str((e.response or {}).get("Error", {}).get("Code", ""))
            if code in ("NoSuchKey", "404"):
                raise NotFoundError.for_resource("File", key)
            raise ServiceUnavailable.for_operation("S3", "reading file", e)
        except BotoCoreError as e:
            raise ServiceUnavailable.for_operation("S3", "reading file", e)

    def get_signed_read_url(self, key: str, ttl: int = READ_TTL_DEFAULT) -> str:
        validate_ttl(ttl, READ_TTL_RANGE)
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl,
            )
        except (BotoCoreError, ClientError) as e:
            raise ServiceUnavailable.for_operation("S3", "generating download URL", e)

    def get_signed_write_url(self, file_name: str, content_type: str,
                             ttl: int = WRITE_TTL_DEFAULT) -> Tuple[str, str]:
        validate_ttl(ttl, WRITE_TTL_RANGE)
        key = new_object_key(file_name, self.prefix)
        try:
            url = self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=ttl,
            )
        except (BotoCoreError, ClientError) as e:
            raise ServiceUnavailable.for_operation("S3", "generating upload URL", e)
        return url, key

    def delete_object(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise ServiceUnavailable.for_operation("S3", "deleting file", e)


class LocalByteStore:
    """Filesystem store for development and single-host deployments."""
    name = "local"

    def __init__(self, root: str, secret_key: str, url_prefix: str = "/api/files",
                 prefix: str = "documents/"):
        self.root = root
        self.url_prefix = url_prefix.rstrip("/")
        self.prefix = prefix
        self._signer = URLSafeTimedSerializer(secret_key, salt="docboard-files")

    def _path(self, key: str) -> str:
        safe = os.path.normpath(key or "")
        if not key or safe.startswith("..") or os.path.isabs(safe):
            raise ValidationError("Invalid file key", details={'received': key})
        return os.path.join(self.root, safe)

    def _write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise ServiceUnavailable.for_operation("File storage", "uploading file", e)

    def put_object(self, data: bytes, content_type: str, file_name: str = "") -> str:
        key = new_object_key(file_name, self.prefix)
        self._write(key, data)
        return key

    def get_object(self, key: str) -> bytes:
        path = self._path(key)
        if not os.path.exists(path):
            raise NotFoundError.for_resource("File", key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise ServiceUnavailable.for_operation("File storage", "reading file", e)

    def _sign(self, key: str, mode: str, ttl: int) -> str:
        token = self._signer.dumps({'key': key, 'mode': mode, 'ttl': ttl})
        return f"{self.url_prefix}/{token}"

    def get_signed_read_url(self, key: str, ttl: int = READ_TTL_DEFAULT) -> str:
        validate_ttl(ttl, READ_TTL_RANGE)
        return self._sign(key, "read", ttl)

    def get_signed_write_url(self, file_name: str, content_type: str,
                             ttl: int = WRITE_TTL_DEFAULT) -> Tuple[str, str]:
        validate_ttl(ttl, WRITE_TTL_RANGE)
        key = new_object_key(file_name, self.prefix)
        return self._sign(key, "write", ttl), key

    def verify_token(self, token: str, mode: str) -> str:
        """Return the key a signed URL token grants access to."""
        try:
            payload = self._signer.loads(token)
            payload = self._signer.loads(token, max_age=int(payload.get('ttl') or 0))
        except SignatureExpired:
            raise ValidationError("Signed URL has expired")
        except (BadSignature, ValueError, AttributeError):
            raise ValidationError("Invalid signed URL")
        if payload.get('mode') != mode:
            raise ValidationError("Signed URL does not allow this operation")
        return payload['key']

    def store_signed_upload(self, token: str, data: bytes) -> str:
        key = self.verify_token(token, "write")
        self._write(key, data)
        return key

    def delete_object(self, key: str) -> None:
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.info("Local file %s already gone", key)
        except OSError as e:
            raise ServiceUnavailable.for_operation("File storage", "deleting file", e)


def make_byte_store(app_config) -> "S3ByteStore | LocalByteStore":
    bucket = app_config.get("AWS_S3_BUCKET", "")
    region = app_config.get("AWS_REGION", "")
    prefix = app_config.get("S3_KEY_PREFIX", "documents/")
    ok, reason = aws_ready(bucket, region)
    if ok:
        return S3ByteStore.from_config(region, bucket, prefix)
    logger.info("Using local file storage (%s)", reason)
    return LocalByteStore(app_config.get("UPLOAD_FOLDER", "/tmp/docboard_uploads"),
                          app_config["SECRET_KEY"], prefix=prefix)
