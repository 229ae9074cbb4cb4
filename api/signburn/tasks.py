"""Background signing.  Run a worker with ``celery -A signburn.tasks worker -Q signing``."""

from celery import Celery
from sqlmodel import Session

from . import db as db_module
from .config import REDIS_URL, WORKER_QUEUE
from .fields import FieldData
from .signing import sign_document

cel = Celery("signburn", broker=REDIS_URL, backend=REDIS_URL)

@cel.task(name="sign_document", queue=WORKER_QUEUE)
def sign_document_task(document_id: int, fields: list, signature_image: str = None, metadata: dict = None):
    parsed = [FieldData.model_validate(f) for f in fields]
    with Session(db_module.engine) as session:
        doc = sign_document(session, document_id, parsed, signature_image, metadata=metadata)
        return {"documentId": doc.id, "signedHash": doc.signed_hash}
