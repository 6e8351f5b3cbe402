"""Shared fixtures: in-memory data store, object store, and DOCX builders."""

from __future__ import annotations

import io
import time
import zipfile
from datetime import datetime

import pytest

from docgen.catalog.loader import TemplateCatalog
from docgen.config import Settings
from docgen.engine.generator import DocumentGenerator
from docgen.errors import StorageFailure
from docgen.models import Contact, ExchangeCase, RecordGraph

FIXED_NOW = datetime(2024, 3, 1, 9, 30, 0)
PUBLIC_PREFIX = "https://proj.supabase.co/storage/v1/object/public/documents/"

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
CONTENT_TYPES_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Default Extension="png" ContentType="image/png"/>'
    "</Types>"
)
RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" Target="word/document.xml"/>'
    "</Relationships>"
)
# Metadata parts are never rewritten, even when they look like they hold tokens.
CORE_XML = '<?xml version="1.0"?><cp:coreProperties><dc:title>#Client.Name# agreement</dc:title></cp:coreProperties>'
IMAGE_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) + b"#Client.Name# {Exchange.Number}"


def document_xml(*paragraphs: str) -> str:
    body = "".join(
        f'<w:p><w:r><w:t xml:space="preserve">{text}</w:t></w:r></w:p>' for text in paragraphs
    )
    return f'<?xml version="1.0" encoding="UTF-8"?><w:document xmlns:w="{W_NS}"><w:body>{body}</w:body></w:document>'


def make_docx(*paragraphs: str, raw_document: str | None = None) -> bytes:
    """Build a minimal word-processing archive with a media entry and metadata."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("[Content_Types].xml", CONTENT_TYPES_XML, compress_type=zipfile.ZIP_DEFLATED)
        zf.writestr("_rels/.rels", RELS_XML, compress_type=zipfile.ZIP_DEFLATED)
        zf.writestr("docProps/core.xml", CORE_XML, compress_type=zipfile.ZIP_DEFLATED)
        zf.writestr("word/document.xml", raw_document or document_xml(*paragraphs),
                    compress_type=zipfile.ZIP_DEFLATED)
        zf.writestr("word/media/image1.png", IMAGE_BYTES, compress_type=zipfile.ZIP_STORED)
        zf.comment = b"docgen fixture"
    return buf.getvalue()


def read_part(data: bytes, name: str) -> bytes:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return zf.read(name)


def document_text(data: bytes) -> str:
    return read_part(data, "word/document.xml").decode("utf-8")


class FakeDataStore:
    """In-memory stand-in for the hosted tables."""

    def __init__(self, cases=None, contacts=None, staff=None, participants=None, properties=None,
                 templates=None, fail=(), delay=None):
        self.cases = cases or {}
        self.contacts = contacts or {}
        self.staff = staff or {}
        self.participants = participants or {}
        self.properties = properties or {}
        self.templates = templates or {}
        self.fail = set(fail)
        self.delay = delay or {}
        self.calls: list[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.delay:
            time.sleep(self.delay[name])
        if name in self.fail:
            raise RuntimeError(f"{name} unavailable")

    def get_case(self, case_id):
        self._enter("get_case")
        return self.cases.get(case_id)

    def get_contact(self, contact_id):
        self._enter("get_contact")
        return self.contacts.get(contact_id)

    def get_staff(self, staff_id):
        self._enter("get_staff")
        return self.staff.get(staff_id)

    def list_related_parties(self, case_id):
        self._enter("list_related_parties")
        return self.participants.get(case_id, [])

    def list_properties(self, case_id):
        self._enter("list_properties")
        return self.properties.get(case_id, [])

    def get_template(self, template_id):
        self._enter("get_template")
        return self.templates.get(template_id)


class FakeStorage:
    """In-memory object store; ``fail_with`` makes uploads raise."""

    def __init__(self, objects=None, fail_with: Exception | None = None):
        self.objects: dict[str, bytes] = dict(objects or {})
        self.uploads: list[tuple[str, bytes, str]] = []
        self.fail_with = fail_with

    def public_url(self, path: str) -> str:
        return PUBLIC_PREFIX + path

    def path_from_public_url(self, url: str) -> str | None:
        if not url.startswith(PUBLIC_PREFIX):
            return None
        return url[len(PUBLIC_PREFIX):]

    def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise StorageFailure(f"object {path} not found")
        return self.objects[path]

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.uploads.append((path, data, content_type))
        self.objects[path] = data
        return self.public_url(path)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

CASE_ROW = {
    "id": "ex-1",
    "exchange_number": "EX-2024-001",
    "name": "Doe, Jane - 123 Main St",
    "status": "45D",
    "exchange_type": "Delayed",
    "exchange_value": "750000.00",
    "start_date": "2024-01-15",
    "identification_deadline": "2024-02-29",
    "completion_deadline": "2024-07-13T00:00:00Z",
    "client_id": "c-1",
    "coordinator_id": "u-1",
    "client_vesting": "Jane Doe, Trustee of the Doe Family Trust",
    "rel_escrow_number": "ESC-778",
}
CONTACT_ROW = {
    "id": "c-1",
    "first_name": "Jane",
    "last_name": "Doe",
    "email": "jane@example.com",
    "phone_mobile": "(555) 010-2000",
    "address": "123 Main St",
    "city": "Springfield",
    "province_state": "CA",
    "zip": "90210",
}
STAFF_ROW = {"id": "u-1", "first_name": "Sam", "last_name": "Lee", "email": "sam@peak1031.com"}
PARTICIPANT_ROWS = [
    {"id": "p-1", "participant_type": "Attorney", "first_name": "Alex", "last_name": "Counsel"},
    {"id": "p-2", "role": "co-owner", "name": "John Doe"},
]
PROPERTY_ROWS = [
    {"id": "pr-1", "property_type": "Relinquished", "address": "123 Main St", "sale_price": 750000},
    {"id": "pr-2", "type": "replacement", "street": "9 Oak Ave", "purchase_price": "800000"},
]


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        supabase_url="https://proj.supabase.co",
        supabase_service_key="service-key",
        catalog_file="does-not-exist.yaml",
        fetch_timeout=2.0,
    )


@pytest.fixture
def jane_graph():
    return RecordGraph(
        case=ExchangeCase(id="ex-1"),
        primary_party=Contact(first_name="Jane", last_name="Doe"),
    )


@pytest.fixture
def agreement_docx():
    return make_docx(
        "Exchange Agreement #Exchange.Number#",
        "Exchanger: #Client.Name# ({Client.Email})",
        "Vesting: #Matter.Client Vesting#",
        "Dear Contact.FirstName,",
    )


@pytest.fixture
def store(agreement_docx):
    return FakeDataStore(
        cases={"ex-1": dict(CASE_ROW)},
        contacts={"c-1": dict(CONTACT_ROW)},
        staff={"u-1": dict(STAFF_ROW)},
        participants={"ex-1": [dict(p) for p in PARTICIPANT_ROWS]},
        properties={"ex-1": [dict(p) for p in PROPERTY_ROWS]},
        templates={
            "tpl-docx": {"id": "tpl-docx", "name": "Exchange Agreement", "file_path": "templates/agreement.docx"},
            "tpl-text": {"id": "tpl-text", "name": "Welcome Letter",
                         "file_template": "Hello #Client.Name#, your exchange is #Exchange.Number#."},
            "tpl-url": {"id": "tpl-url", "name": "Agreement Copy",
                        "file_template": PUBLIC_PREFIX + "templates/agreement.docx"},
        },
    )


@pytest.fixture
def storage(agreement_docx):
    return FakeStorage(objects={"templates/agreement.docx": agreement_docx})


@pytest.fixture
def generator(store, storage, settings):
    return DocumentGenerator(store, storage, settings=settings, catalog=TemplateCatalog(),
                             clock=lambda: FIXED_NOW)
