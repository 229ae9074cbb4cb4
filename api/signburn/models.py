from typing import Optional
from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field as ORMField
from .utils import utcnow

PENDING = "pending"
SIGNED = "signed"

class Document(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    filename: str
    content_type: str = "application/pdf"
    size: int = 0
    s3_key: str
    original_hash: str
    page_sizes_json: str = "[]"
    status: str = PENDING  # pending|signed, never back to pending
    signed_hash: Optional[str] = None
    signed_key: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=DateTime(timezone=True))
    signed_at: Optional[datetime] = ORMField(default=None, sa_type=DateTime(timezone=True))

class Field(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: int = ORMField(index=True)
    position: int  # list order, later fields draw on top
    field_key: str
    type: str  # text|signature|image|date|radio
    page: int
    x: float
    y: float
    w: float
    h: float
    value: Optional[str] = None
    required: bool = False

class AuditLog(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: int = ORMField(index=True)
    action: str  # created|viewed|signed|downloaded
    original_hash: str
    result_hash: Optional[str] = None
    meta_json: str = "{}"
    ip: Optional[str] = None
    ua: Optional[str] = None
    at: datetime = ORMField(default_factory=utcnow, sa_type=DateTime(timezone=True))
    prev_hash: Optional[str] = None
    hash: Optional[str] = None
