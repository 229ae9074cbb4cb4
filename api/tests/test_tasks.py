from signburn import tasks

from factories import SIMPLE_SIGNATURE_B64, field, make_pdf

FIELDS = [field("t", "text", value="queued"), field("s", "signature", page=2)]


def test_task_signs_document(client, upload, mock_storage):
    doc = upload(make_pdf()).json()
    result = tasks.sign_document_task(doc["id"], FIELDS, SIMPLE_SIGNATURE_B64, {"source": "worker"})
    assert result["documentId"] == doc["id"]

    audit = client.get(f"/api/audit/{doc['id']}").json()
    assert audit["currentStatus"] == "signed"
    assert audit["signedHash"] == result["signedHash"]
    assert audit["auditTrail"][0]["metadata"]["source"] == "worker"


def test_sign_async_enqueues(client, upload, monkeypatch):
    calls = []

    class FakeResult:
        id = "task-123"

    def fake_delay(*args):
        calls.append(args)
        return FakeResult()

    monkeypatch.setattr(tasks.sign_document_task, "delay", fake_delay)
    doc = upload(make_pdf()).json()
    resp = client.post(
        f"/api/documents/{doc['id']}/sign-async",
        json={"fields": FIELDS, "signatureImage": SIMPLE_SIGNATURE_B64},
    )
    assert resp.status_code == 202
    assert resp.json() == {"documentId": doc["id"], "taskId": "task-123", "status": "queued"}
    [(document_id, fields, signature)] = calls
    assert document_id == doc["id"]
    assert [f["id"] for f in fields] == ["t", "s"]
    assert fields[0]["pageNumber"] == 1
    assert signature == SIMPLE_SIGNATURE_B64


def test_sign_async_rejects_signed_document(client, upload):
    doc = upload(make_pdf()).json()
    tasks.sign_document_task(doc["id"], FIELDS)
    resp = client.post(f"/api/documents/{doc['id']}/sign-async", json={"fields": FIELDS})
    assert resp.status_code == 409
