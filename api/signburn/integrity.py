from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from minio.error import S3Error
from urllib3.exceptions import HTTPError

from . import storage
from .models import Document
from .utils import verify_hash

logger = logging.getLogger(__name__)

VERIFIED = "verified"
TAMPERED = "tampered"


@dataclass
class IntegrityReport:
    original_intact: bool
    signed_intact: Optional[bool]  # None until a signed artifact exists

    @property
    def overall_status(self) -> str:
        if self.original_intact and self.signed_intact in (None, True):
            return VERIFIED
        return TAMPERED


def stored_bytes_match(key: str, expected_hash: str, load: Callable[[str], bytes] = None) -> bool:
    """Hash the object stored under ``key`` and compare; unreadable counts as a mismatch."""
    load = load or storage.get_bytes
    try:
        data = load(key)
    except (S3Error, HTTPError, OSError) as exc:
        logger.warning("could not read %s for integrity check: %s", key, exc)
        return False
    return verify_hash(data, expected_hash)


def verify_document(doc: Document) -> IntegrityReport:
    original_intact = stored_bytes_match(doc.s3_key, doc.original_hash)
    signed_intact = None
    if doc.signed_key and doc.signed_hash:
        signed_intact = stored_bytes_match(doc.signed_key, doc.signed_hash)
    report = IntegrityReport(original_intact, signed_intact)
    if report.overall_status == TAMPERED:
        logger.warning(
            "document %s failed verification (original=%s signed=%s)",
            doc.id, original_intact, signed_intact,
        )
    return report
