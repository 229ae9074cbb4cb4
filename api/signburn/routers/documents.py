from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session
from .. import signing
from ..db import get_session
from ..errors import DocumentAlreadySigned
from ..models import SIGNED
from ..schemas import AsyncSignRequest, FieldsUpdate, SignRequest

router = APIRouter()

def client_info(request: Request):
    ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")

@router.post("/upload", status_code=201)
async def upload_document(request: Request, pdf: UploadFile = File(...), session: Session = Depends(get_session)):
    data = await pdf.read()
    ip, ua = client_info(request)
    doc = await run_in_threadpool(
        signing.create_document, session, pdf.filename, pdf.content_type, data, ip, ua
    )
    return signing.serialize_document(doc)

@router.post("/sign-pdf")
def sign_pdf(payload: SignRequest, request: Request, session: Session = Depends(get_session)):
    ip, ua = client_info(request)
    doc = signing.sign_document(
        session, payload.document_id, payload.fields, payload.signature_image, ip=ip, ua=ua
    )
    return {
        **signing.serialize_document(doc),
        "downloadUrl": f"/api/documents/{doc.id}/download",
    }

@router.get("/{document_id}")
def get_document_metadata(document_id: int, request: Request, session: Session = Depends(get_session)):
    doc = signing.get_document(session, document_id)
    ip, ua = client_info(request)
    signing.record_view(session, doc, ip=ip, ua=ua)
    return {
        **signing.serialize_document(doc),
        "pages": signing.page_sizes_of(doc),
        "fields": [f.to_wire() for f in signing.load_fields(session, doc)],
    }

@router.put("/{document_id}/fields")
def save_fields(document_id: int, payload: FieldsUpdate, session: Session = Depends(get_session)):
    doc = signing.get_document(session, document_id)
    signing.replace_fields(session, doc, payload.fields)
    return {"documentId": doc.id, "fieldsCount": len(payload.fields)}

@router.get("/{document_id}/pdf")
def get_original_pdf(document_id: int, session: Session = Depends(get_session)):
    doc = signing.get_document(session, document_id)
    return Response(content=signing.read_original(doc), media_type="application/pdf")

@router.post("/{document_id}/sign-async", status_code=202)
def sign_pdf_async(document_id: int, payload: AsyncSignRequest, session: Session = Depends(get_session)):
    from ..tasks import sign_document_task
    doc = signing.get_document(session, document_id)
    if doc.status == SIGNED:
        raise DocumentAlreadySigned()
    result = sign_document_task.delay(
        doc.id, [f.to_wire() for f in payload.fields], payload.signature_image
    )
    return {"documentId": doc.id, "taskId": result.id, "status": "queued"}

@router.get("/{document_id}/download")
def download_signed_pdf(document_id: int, request: Request, session: Session = Depends(get_session)):
    doc = signing.get_document(session, document_id)
    ip, ua = client_info(request)
    pdf_bytes = signing.read_signed(session, doc, ip=ip, ua=ua)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="signed_{doc.filename}"'},
    )
