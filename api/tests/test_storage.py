import re

import pytest

from signburn import storage


def test_document_keys_are_fresh_per_write():
    first = storage.document_key(3, storage.SIGNED_DIR)
    second = storage.document_key(3, storage.SIGNED_DIR)
    assert re.fullmatch(r"documents/3/signed/[0-9a-f]{32}\.pdf", first)
    assert first != second


def test_unknown_object_kind_is_rejected():
    with pytest.raises(ValueError):
        storage.document_key(3, "drafts")


def test_put_pdf_stores_under_returned_key(mock_storage):
    key = storage.put_pdf(5, storage.ORIGINAL_DIR, b"%PDF-1.4")
    assert key.startswith("documents/5/original/")
    assert mock_storage == {key: b"%PDF-1.4"}
