"""Document lifecycle: upload, field editing, signing and download.

Signing is at most once per document.  An in-process lock serializes sign
attempts for the same document and the final ``pending -> signed`` flip is
a conditional UPDATE, so a second worker racing on the same document sees
zero affected rows and backs out.
"""

import json
import logging
from typing import Optional

from minio.error import S3Error
from sqlalchemy import update
from sqlmodel import Session, select, delete
from urllib3.exceptions import HTTPError

from . import audit, storage
from .compositor import PdfCompositor
from .config import MAX_UPLOAD_BYTES
from .errors import (
    CompositionFailed,
    DocumentAlreadySigned,
    DocumentNotFound,
    IntegrityCheckFailed,
    InvalidRequest,
)
from .fields import FieldData
from .models import Document, Field, PENDING, SIGNED
from .utils import KeyedLocks, sha256_bytes, utcnow

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = storage.PDF_CONTENT_TYPE

_sign_locks = KeyedLocks()


def get_document(session: Session, document_id) -> Document:
    if document_id is None:
        raise InvalidRequest("Document ID is required")
    doc = session.get(Document, document_id)
    if not doc:
        raise DocumentNotFound()
    return doc


def serialize_document(doc: Document) -> dict:
    return {
        "id": doc.id,
        "filename": doc.filename,
        "originalHash": doc.original_hash,
        "signedHash": doc.signed_hash,
        "status": doc.status,
        "createdAt": doc.created_at,
        "signedAt": doc.signed_at,
    }


def page_sizes_of(doc: Document) -> list[dict]:
    return [{"width": w, "height": h} for w, h in json.loads(doc.page_sizes_json or "[]")]


# ---------- upload ----------

def create_document(
    session: Session,
    filename: str,
    content_type: Optional[str],
    data: bytes,
    ip: Optional[str] = None,
    ua: Optional[str] = None,
) -> Document:
    if (content_type or "").split(";")[0].strip().lower() != PDF_CONTENT_TYPE:
        raise InvalidRequest("Only PDF files are allowed")
    if not data:
        raise InvalidRequest("No PDF file provided")
    if len(data) > MAX_UPLOAD_BYTES:
        raise InvalidRequest(f"PDF exceeds the {MAX_UPLOAD_BYTES} byte upload limit")
    try:
        sizes = PdfCompositor(data).page_sizes()
    except CompositionFailed as exc:
        raise InvalidRequest("Uploaded file is not a readable PDF") from exc

    doc = Document(
        filename=filename or "document.pdf",
        content_type=PDF_CONTENT_TYPE,
        size=len(data),
        s3_key="pending",
        original_hash=sha256_bytes(data),
        page_sizes_json=json.dumps(sizes),
    )
    session.add(doc)
    session.flush()
    doc.s3_key = storage.put_pdf(doc.id, storage.ORIGINAL_DIR, data)
    session.add(doc)
    audit.append_entry(session, doc, audit.CREATED, ip=ip, ua=ua, commit=False)
    session.commit()
    session.refresh(doc)
    logger.info("document %s uploaded (%d bytes, %d pages)", doc.id, doc.size, len(sizes))
    return doc


def record_view(session: Session, doc: Document, metadata: Optional[dict] = None, ip=None, ua=None):
    audit.append_entry(session, doc, audit.VIEWED, metadata=metadata, ip=ip, ua=ua)


# ---------- fields ----------

def load_fields(session: Session, doc: Document) -> list[FieldData]:
    rows = session.exec(
        select(Field).where(Field.document_id == doc.id).order_by(Field.position)
    ).all()
    return [
        FieldData(
            id=row.field_key,
            type=row.type,
            page_number=row.page,
            x=row.x,
            y=row.y,
            width=row.w,
            height=row.h,
            value=row.value,
            required=row.required,
        )
        for row in rows
    ]


def _write_fields(session: Session, doc: Document, fields: list[FieldData]):
    session.exec(delete(Field).where(Field.document_id == doc.id))
    for position, f in enumerate(fields):
        session.add(Field(
            document_id=doc.id,
            position=position,
            field_key=f.id,
            type=f.type.value,
            page=f.page_number,
            x=f.x,
            y=f.y,
            w=f.width,
            h=f.height,
            value=f.value,
            required=f.required,
        ))
    session.flush()


def _check_field_ids(fields: list[FieldData]):
    seen = set()
    for f in fields:
        if f.id in seen:
            raise InvalidRequest(f"Duplicate field id: {f.id}")
        seen.add(f.id)


def replace_fields(session: Session, doc: Document, fields: list[FieldData]):
    if doc.status == SIGNED:
        raise DocumentAlreadySigned()
    _check_field_ids(fields)
    _write_fields(session, doc, fields)
    session.commit()


# ---------- signing ----------

def sign_document(
    session: Session,
    document_id,
    fields: Optional[list[FieldData]],
    signature_image: Optional[str] = None,
    metadata: Optional[dict] = None,
    ip: Optional[str] = None,
    ua: Optional[str] = None,
) -> Document:
    if document_id is None:
        raise InvalidRequest("Document ID is required")
    if not fields:
        raise InvalidRequest("Fields array is required")
    _check_field_ids(fields)

    with _sign_locks.get(document_id):
        doc = get_document(session, document_id)
        session.refresh(doc)
        if doc.status != PENDING:
            raise DocumentAlreadySigned()

        # one snapshot: the bytes we hash are the bytes we composite
        try:
            original = storage.get_bytes(doc.s3_key)
        except (S3Error, HTTPError, OSError) as exc:
            logger.warning("document %s original unreadable before signing: %s", doc.id, exc)
            raise IntegrityCheckFailed("Original document could not be read") from exc
        if sha256_bytes(original) != doc.original_hash:
            logger.warning("document %s failed integrity check before signing", doc.id)
            raise IntegrityCheckFailed()

        compositor = PdfCompositor(original)
        signed_pdf = compositor.render(fields, signature_image)
        signed_hash = sha256_bytes(signed_pdf)

        signed_key = storage.put_pdf(doc.id, storage.SIGNED_DIR, signed_pdf)
        with audit.chain_lock(doc.id):
            try:
                result = session.exec(
                    update(Document)
                    .where(Document.id == doc.id, Document.status == PENDING)
                    .values(status=SIGNED, signed_hash=signed_hash, signed_key=signed_key, signed_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise DocumentAlreadySigned()
                _write_fields(session, doc, fields)
                audit.append_entry(
                    session,
                    doc,
                    audit.SIGNED,
                    result_hash=signed_hash,
                    metadata={
                        **(metadata or {}),
                        "fieldsCount": len(fields),
                        "skippedFields": len(compositor.warnings),
                    },
                    ip=ip,
                    ua=ua,
                    commit=False,
                )
                session.commit()
            except Exception:
                session.rollback()
                _discard(signed_key)
                raise

    session.refresh(doc)
    logger.info("document %s signed (%s)", doc.id, signed_hash)
    return doc


def _discard(key: str):
    try:
        storage.delete_object(key)
    except Exception as exc:
        logger.warning("could not remove orphaned signed object %s: %s", key, exc)


# ---------- download ----------

def read_original(doc: Document) -> bytes:
    return storage.get_bytes(doc.s3_key)


def read_signed(session: Session, doc: Document, ip=None, ua=None) -> bytes:
    if doc.status != SIGNED or not doc.signed_key:
        raise InvalidRequest("Document has not been signed yet")
    data = storage.get_bytes(doc.signed_key)
    audit.append_entry(session, doc, audit.DOWNLOADED, result_hash=doc.signed_hash, ip=ip, ua=ua)
    return data
