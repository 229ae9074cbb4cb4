from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from .fields import FieldData

class FieldsUpdate(BaseModel):
    fields: List[FieldData]

class SignRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: int = Field(alias="documentId")
    fields: List[FieldData] = Field(min_length=1)
    signature_image: Optional[str] = Field(default=None, alias="signatureImage")

class AsyncSignRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fields: List[FieldData] = Field(min_length=1)
    signature_image: Optional[str] = Field(default=None, alias="signatureImage")

class ShareComplete(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fields: List[FieldData] = Field(min_length=1)
    signature_image: Optional[str] = Field(default=None, alias="signatureImage")
    signer_name: Optional[str] = Field(default=None, alias="signerName")
    signer_email: Optional[str] = Field(default=None, alias="signerEmail")

class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: int = Field(alias="documentId")
