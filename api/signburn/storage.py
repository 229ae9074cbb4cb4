"""Object storage for document bytes (MinIO / S3).

Objects are written once under ``documents/{id}/{original|signed}/{uuid}.pdf``
and never overwritten, so a stored hash always describes one immutable blob.
"""

import io
import logging
from functools import lru_cache
from uuid import uuid4

from minio import Minio

from .config import MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_BUCKET, MINIO_SECURE

logger = logging.getLogger(__name__)

ORIGINAL_DIR = "original"
SIGNED_DIR = "signed"
PDF_CONTENT_TYPE = "application/pdf"


@lru_cache(maxsize=1)
def _client() -> Minio:
    client = Minio(
        MINIO_ENDPOINT,
        access_key=MINIO_ACCESS_KEY,
        secret_key=MINIO_SECRET_KEY,
        secure=MINIO_SECURE,
    )
    if not client.bucket_exists(MINIO_BUCKET):
        logger.info("creating bucket %s", MINIO_BUCKET)
        client.make_bucket(MINIO_BUCKET)
    return client


def document_key(document_id: int, kind: str) -> str:
    if kind not in (ORIGINAL_DIR, SIGNED_DIR):
        raise ValueError(f"unknown object kind: {kind}")
    return f"documents/{document_id}/{kind}/{uuid4().hex}.pdf"


def put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream"):
    _client().put_object(MINIO_BUCKET, key, io.BytesIO(data), length=len(data), content_type=content_type)


def put_pdf(document_id: int, kind: str, data: bytes) -> str:
    """Store a PDF under a fresh key and return the key."""
    key = document_key(document_id, kind)
    put_bytes(key, data, content_type=PDF_CONTENT_TYPE)
    return key


def get_bytes(key: str) -> bytes:
    resp = _client().get_object(MINIO_BUCKET, key)
    try:
        return resp.read()
    finally:
        resp.close()
        resp.release_conn()


def delete_object(key: str):
    _client().remove_object(MINIO_BUCKET, key)
