from fastapi import APIRouter, Depends, Request, Response
from itsdangerous import BadSignature
from sqlmodel import Session
from .. import signing
from ..config import PUBLIC_BASE_URL
from ..db import get_session
from ..errors import InvalidRequest
from ..schemas import FieldsUpdate, ShareComplete
from ..utils import make_token, read_token
from .documents import client_info

router = APIRouter()

def _document_from_token(session: Session, token: str):
    try:
        data = read_token(token)
    except BadSignature as exc:
        raise InvalidRequest("Invalid share link") from exc
    return signing.get_document(session, data.get("document_id"))

@router.post("/prepare/{document_id}")
def prepare_document_for_signing(
    document_id: int,
    payload: FieldsUpdate,
    request: Request,
    session: Session = Depends(get_session),
):
    doc = signing.get_document(session, document_id)
    signing.replace_fields(session, doc, payload.fields)
    ip, ua = client_info(request)
    signing.record_view(
        session, doc, {"action": "fields_saved", "fieldsCount": len(payload.fields)}, ip=ip, ua=ua
    )
    token = make_token({"document_id": doc.id})
    return {
        "documentId": doc.id,
        "shareToken": token,
        "shareUrl": f"{PUBLIC_BASE_URL}/sign/{token}",
        "fieldsCount": len(payload.fields),
    }

@router.get("/{token}")
def get_shared_document(token: str, request: Request, session: Session = Depends(get_session)):
    doc = _document_from_token(session, token)
    ip, ua = client_info(request)
    signing.record_view(session, doc, {"action": "signer_view"}, ip=ip, ua=ua)
    return {
        "id": doc.id,
        "filename": doc.filename,
        "status": doc.status,
        "pages": signing.page_sizes_of(doc),
        "fields": [f.to_wire() for f in signing.load_fields(session, doc)],
        "pdfUrl": f"/api/share/{token}/pdf",
    }

@router.get("/{token}/pdf")
def get_shared_pdf(token: str, session: Session = Depends(get_session)):
    doc = _document_from_token(session, token)
    return Response(content=signing.read_original(doc), media_type="application/pdf")

@router.post("/{token}/complete")
def complete_document_signing(
    token: str,
    payload: ShareComplete,
    request: Request,
    session: Session = Depends(get_session),
):
    doc = _document_from_token(session, token)
    ip, ua = client_info(request)
    doc = signing.sign_document(
        session,
        doc.id,
        payload.fields,
        payload.signature_image,
        metadata={
            "signerName": payload.signer_name or "Anonymous",
            "signerEmail": payload.signer_email,
        },
        ip=ip,
        ua=ua,
    )
    return {
        "id": doc.id,
        "filename": doc.filename,
        "signedHash": doc.signed_hash,
        "signedAt": doc.signed_at,
        "downloadUrl": f"/api/documents/{doc.id}/download",
    }
