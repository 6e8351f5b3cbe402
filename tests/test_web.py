"""HTTP surface via Flask's test client."""

import base64

import pytest
from conftest import PUBLIC_PREFIX, make_docx

from docgen.web import create_app


@pytest.fixture
def client(generator):
    app = create_app(generator)
    app.config["TESTING"] = True
    return app.test_client()


def test_generate_document(client):
    resp = client.post("/api/generate-document", json={"templateId": "tpl-docx", "caseId": "ex-1"})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["documentRef"].startswith(PUBLIC_PREFIX + "generated/Exchange_Agreement_ex-1_")
    assert body["warnings"] == [{"token": "contact.firstname", "origin": "heuristic-match",
                                 "detail": "rule: client first name"}]
    assert body["kind"] == "archive"


def test_generate_document_requires_ids(client):
    resp = client.post("/api/generate-document", json={"templateId": "tpl-docx"})
    assert resp.status_code == 400


def test_overrides_must_be_an_object(client):
    resp = client.post("/api/generate-document",
                       json={"templateId": "tpl-docx", "caseId": "ex-1", "overrides": ["nope"]})
    assert resp.status_code == 400


def test_unknown_template_is_404(client):
    resp = client.post("/api/generate-document", json={"templateId": "nope", "caseId": "ex-1"})
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "template_not_found"


def test_unknown_case_is_404(client):
    resp = client.post("/api/generate-document", json={"templateId": "tpl-docx", "caseId": "missing"})
    assert resp.status_code == 404
    assert resp.get_json()["step"] == "aggregate"


def test_missing_required_fields_are_422(client, store, storage):
    storage.objects["templates/strict.docx"] = make_docx("#Matter.Exotic Field# #Exchange.Mystery#")
    store.templates["tpl-strict"] = {
        "id": "tpl-strict",
        "name": "Strict",
        "file_path": "templates/strict.docx",
        "required_fields": ["#Matter.Exotic Field#", "#Exchange.Mystery#"],
    }
    resp = client.post("/api/generate-document", json={"templateId": "tpl-strict", "caseId": "ex-1"})
    assert resp.status_code == 422
    body = resp.get_json()
    assert body["code"] == "missing_required_field"
    assert sorted(body["fields"]) == ["exchange.mystery", "matter.exotic field"]


def test_bulk_generation(client):
    resp = client.post("/api/generate-documents", json={"templateId": "tpl-text", "caseIds": ["ex-1", "missing"]})
    assert resp.status_code == 200
    body = resp.get_json()
    assert (body["succeeded"], body["failed"]) == (1, 1)
    assert body["results"][1]["code"] == "case_not_found"


def test_bulk_generation_requires_case_ids(client):
    resp = client.post("/api/generate-documents", json={"templateId": "tpl-text", "caseIds": []})
    assert resp.status_code == 400


def test_preview_text_template(client, storage):
    resp = client.post("/api/templates/tpl-text/preview", json={})
    assert resp.status_code == 200
    assert resp.get_json()["previewText"] == "Hello John Doe, your exchange is EX-SAMPLE-001."
    assert storage.uploads == []


def test_preview_archive_template(client):
    resp = client.post("/api/templates/tpl-docx/preview", json={"sampleData": {"Client.Name": "Pat"}})
    content = base64.b64decode(resp.get_json()["content"])
    assert content.startswith(b"PK")
