from fastapi import APIRouter, Depends
from sqlmodel import Session
from .. import audit, signing
from ..db import get_session
from ..integrity import verify_document
from ..schemas import VerifyRequest

router = APIRouter()

@router.post("/verify")
def verify_document_integrity(payload: VerifyRequest, session: Session = Depends(get_session)):
    doc = signing.get_document(session, payload.document_id)
    report = verify_document(doc)
    return {
        "documentId": doc.id,
        "filename": doc.filename,
        "originalIntact": report.original_intact,
        "signedIntact": report.signed_intact,
        "overallStatus": report.overall_status,
        "verification": {
            "originalDocument": {
                "intact": report.original_intact,
                "expectedHash": doc.original_hash,
            },
            "signedDocument": {
                "intact": report.signed_intact,
                "expectedHash": doc.signed_hash,
            } if doc.signed_hash else None,
        },
    }

@router.get("/{document_id}")
def get_audit_trail(document_id: int, session: Session = Depends(get_session)):
    doc = signing.get_document(session, document_id)
    entries = audit.read_trail(session, doc.id)
    return {
        "documentId": doc.id,
        "filename": doc.filename,
        "currentStatus": doc.status,
        "originalHash": doc.original_hash,
        "signedHash": doc.signed_hash,
        "chainIntact": audit.verify_chain(session, doc.id),
        "auditTrail": [audit.serialize_entry(e) for e in entries],
    }
