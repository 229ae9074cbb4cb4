"""Append-only audit trail of document lifecycle events.

Entries for one document form a hash chain: each stores the previous
entry's hash and its own hash over ``prev_hash + canonical_json(entry)``.
Entries are never updated or deleted.  Appends for one document are
serialized by ``chain_lock``; callers that append with ``commit=False``
hold it themselves until their transaction commits.
"""

import json
from datetime import timedelta
from typing import Optional

from sqlmodel import Session, select

from .models import AuditLog, Document
from .utils import KeyedLocks, as_utc, canonical_json, sha256_bytes, utcnow

CREATED = "created"
VIEWED = "viewed"
SIGNED = "signed"
DOWNLOADED = "downloaded"
ACTIONS = (CREATED, VIEWED, SIGNED, DOWNLOADED)

GENESIS_HASH = "0" * 64

_chain_locks = KeyedLocks()


def chain_lock(document_id: int):
    return _chain_locks.get(document_id)


def _chain_payload(entry: AuditLog) -> str:
    return canonical_json({
        "documentId": entry.document_id,
        "action": entry.action,
        "originalHash": entry.original_hash,
        "resultHash": entry.result_hash,
        "meta": entry.meta_json,
        "at": as_utc(entry.at).isoformat(),
    })


def entry_digest(prev_hash: str, entry: AuditLog) -> str:
    return sha256_bytes((prev_hash + _chain_payload(entry)).encode())


def _last_entry(session: Session, document_id: int) -> Optional[AuditLog]:
    return session.exec(
        select(AuditLog).where(AuditLog.document_id == document_id).order_by(AuditLog.id.desc())
    ).first()


def append_entry(
    session: Session,
    document: Document,
    action: str,
    result_hash: Optional[str] = None,
    metadata: Optional[dict] = None,
    ip: Optional[str] = None,
    ua: Optional[str] = None,
    commit: bool = True,
) -> AuditLog:
    if action not in ACTIONS:
        raise ValueError(f"unknown audit action: {action}")
    with chain_lock(document.id):
        last = _last_entry(session, document.id)
        prev_hash = last.hash if last else GENESIS_HASH
        at = utcnow()
        if last and at <= as_utc(last.at):
            at = as_utc(last.at) + timedelta(microseconds=1)
        entry = AuditLog(
            document_id=document.id,
            action=action,
            original_hash=document.original_hash,
            result_hash=result_hash,
            meta_json=canonical_json(metadata or {}),
            ip=ip,
            ua=ua,
            at=at,
            prev_hash=prev_hash,
        )
        entry.hash = entry_digest(prev_hash, entry)
        session.add(entry)
        if commit:
            session.commit()
        else:
            session.flush()
    return entry


def read_trail(session: Session, document_id: int) -> list[AuditLog]:
    """Entries for a document, most recent first."""
    return session.exec(
        select(AuditLog)
        .where(AuditLog.document_id == document_id)
        .order_by(AuditLog.at.desc(), AuditLog.id.desc())
    ).all()


def verify_chain(session: Session, document_id: int) -> bool:
    prev_hash = GENESIS_HASH
    prev_at = None
    for entry in reversed(read_trail(session, document_id)):
        if entry.prev_hash != prev_hash or entry.hash != entry_digest(prev_hash, entry):
            return False
        at = as_utc(entry.at)
        if prev_at is not None and at <= prev_at:
            return False
        prev_hash, prev_at = entry.hash, at
    return True


def serialize_entry(entry: AuditLog) -> dict:
    return {
        "id": entry.id,
        "action": entry.action,
        "originalHash": entry.original_hash,
        "resultHash": entry.result_hash,
        "timestamp": entry.at,
        "metadata": json.loads(entry.meta_json or "{}"),
    }
