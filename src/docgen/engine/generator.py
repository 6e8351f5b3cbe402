"""Generation orchestrator.

load template -> scan -> aggregate -> resolve -> rewrite -> persist

Each step runs under :func:`step`, which stamps the template id, case id
and step name onto any domain error and wraps anything unexpected in
:class:`UnexpectedFailure`. Nothing is retried here.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from docgen.catalog.loader import TemplateCatalog, load_catalog
from docgen.config import Settings, get_settings
from docgen.engine.aggregator import RecordAggregator
from docgen.engine.fields import DEFAULT_QI_COMPANY, FALLBACK_VALUES
from docgen.engine.resolver import ResolutionMap, resolve, resolved_count
from docgen.engine.rewriter import rewrite_archive, rewrite_text
from docgen.engine.scanner import scan_archive, scan_text
from docgen.errors import ArchiveCorrupt, DocgenError, TemplateNotFound, UnexpectedFailure
from docgen.integrations.base import DataStore, ObjectStore
from docgen.models import (
    Contact,
    ExchangeCase,
    GenerationResult,
    PropertyRecord,
    RecordGraph,
    StaffMember,
    TemplateKind,
    TemplateRecord,
    Token,
)

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
ZIP_MAGIC = (b"PK\x03\x04", b"PK\x05\x06")

CONTENT_TYPES = {
    TemplateKind.ARCHIVE: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    TemplateKind.PDF: "application/pdf",
    TemplateKind.TEXT: "text/plain; charset=utf-8",
}
EXTENSIONS = {
    TemplateKind.ARCHIVE: ".docx",
    TemplateKind.PDF: ".pdf",
    TemplateKind.TEXT: ".txt",
}
PDF_NOTICE = "PDF templates are passed through unchanged; placeholders are not filled"

# Record graph used for template previews.
SAMPLE_GRAPH = RecordGraph(
    case=ExchangeCase(
        id="sample",
        exchange_number="EX-SAMPLE-001",
        name="Sample Exchange",
        exchange_type="Delayed",
        status="45D",
        exchange_value=500000,
        relinquished_sale_price=500000,
        property_address="123 Main St, City, State 12345",
        start_date="2024-01-15",
        identification_deadline="2024-02-29",
        completion_deadline="2024-07-13",
    ),
    primary_party=Contact(
        first_name="John",
        last_name="Doe",
        email="john.doe@example.com",
        phone="(555) 123-4567",
        street1="123 Main St",
        city="City",
        state="State",
        zip_postal_code="12345",
    ),
    assigned_staff=StaffMember(
        first_name="Jane",
        last_name="Smith",
        email="coordinator@example.com",
        title="Exchange Coordinator",
    ),
    properties=[
        PropertyRecord(kind="relinquished", address="123 Main St, City, State 12345", value=500000),
    ],
)


@contextmanager
def step(name: str, *, template_id: Any = None, case_id: Any = None):
    """Attach request context to failures raised inside one pipeline step."""
    try:
        yield
    except DocgenError as e:
        e.with_context(template_id=template_id, case_id=case_id, step=name)
        raise
    except Exception as e:
        logger.exception("Unexpected failure in step %s (template=%s case=%s)", name, template_id, case_id)
        raise UnexpectedFailure(
            f"{name} failed: {e}",
            template_id=None if template_id is None else str(template_id),
            case_id=None if case_id is None else str(case_id),
            step=name,
        ) from e


def sniff_kind(data: bytes) -> TemplateKind:
    """Decide the template kind from its content, never from metadata."""
    if data.startswith(ZIP_MAGIC):
        return TemplateKind.ARCHIVE
    if data.lstrip()[:5] == PDF_MAGIC:
        return TemplateKind.PDF
    return TemplateKind.TEXT


def sanitize_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", name or "").strip("_") or "document"


def output_filename(template_name: str, case_id: Any, kind: TemplateKind, when: datetime) -> str:
    stamp = int(when.timestamp() * 1000)
    return f"{sanitize_name(template_name)}_{case_id}_{stamp}{EXTENSIONS[kind]}"


@dataclass
class PreparedTemplate:
    """Template content plus the tokens found in it."""

    kind: TemplateKind
    data: bytes
    tokens: dict[str, Token] = field(default_factory=dict)
    text: str | None = None


def prepare_template(data: bytes) -> PreparedTemplate:
    kind = sniff_kind(data)
    if kind is TemplateKind.PDF:
        return PreparedTemplate(kind=kind, data=data)
    if kind is TemplateKind.ARCHIVE:
        scan = scan_archive(data)
        if not scan.ok:
            raise ArchiveCorrupt(scan.error)
        return PreparedTemplate(kind=kind, data=data, tokens=scan.tokens)
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ArchiveCorrupt(f"template is neither an archive nor UTF-8 text: {e}") from e
    return PreparedTemplate(kind=kind, data=data, tokens=scan_text(text), text=text)


def fill(prepared: PreparedTemplate, resolution: ResolutionMap) -> tuple[bytes, int]:
    """Write resolved values into the template; returns (bytes, replacements)."""
    if prepared.kind is TemplateKind.PDF:
        return prepared.data, 0
    if prepared.kind is TemplateKind.ARCHIVE:
        rewritten = rewrite_archive(prepared.data, resolution)
        return rewritten.data, rewritten.replacements
    text, count = rewrite_text(prepared.text or "", resolution)
    return text.encode("utf-8"), count


def render_template(
    data: bytes,
    graph: RecordGraph,
    required: Iterable[str] = (),
    fallbacks: Mapping[str, str] = FALLBACK_VALUES,
    overrides: Mapping[str, Any] | None = None,
    today: datetime | None = None,
    qi_company: str = DEFAULT_QI_COMPANY,
) -> GenerationResult:
    """Fill a template from an in-memory record graph. No I/O."""
    prepared = prepare_template(data)
    resolution, warnings = resolve(
        prepared.tokens, graph, fallbacks, required=required,
        overrides=overrides, today=today, qi_company=qi_company,
    )
    output, count = fill(prepared, resolution)
    return GenerationResult(
        archive_bytes=output,
        resolved_count=resolved_count(resolution),
        warnings=warnings,
        replacement_count=count,
        kind=prepared.kind,
        content_type=CONTENT_TYPES[prepared.kind],
        notices=[PDF_NOTICE] if prepared.kind is TemplateKind.PDF else [],
    )


@dataclass
class BatchOutcome:
    case_id: str
    result: GenerationResult | None = None
    error: DocgenError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        if self.error is not None:
            return {"caseId": self.case_id, "success": False, **self.error.to_dict()}
        return {
            "caseId": self.case_id,
            "success": True,
            "documentRef": self.result.document_ref,
            "warnings": [w.model_dump(mode="json") for w in self.result.warnings],
        }


class DocumentGenerator:
    """Generate filled documents for cases from stored templates."""

    def __init__(
        self,
        store: DataStore,
        storage: ObjectStore,
        settings: Settings | None = None,
        catalog: TemplateCatalog | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.storage = storage
        self.settings = settings or get_settings()
        self.catalog = catalog if catalog is not None else load_catalog(self.settings.catalog_path)
        self.clock = clock
        self.aggregator = RecordAggregator(
            store, timeout=self.settings.fetch_timeout, max_workers=self.settings.max_fetch_workers
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> DocumentGenerator:
        from docgen.integrations.supabase import SupabaseDataStore, SupabaseStorage

        settings = settings or get_settings()
        return cls(SupabaseDataStore(settings), SupabaseStorage(settings), settings=settings)

    # -- template source ---------------------------------------------------

    def load_template(self, template_id: Any) -> tuple[TemplateRecord, bytes]:
        row = self.store.get_template(str(template_id))
        if not row:
            raise TemplateNotFound(f"template {template_id} not found")
        template = TemplateRecord.model_validate(row)

        source = template.file_template
        if source:
            if source.startswith(("http://", "https://")):
                path = self.storage.path_from_public_url(source)
                if not path:
                    raise TemplateNotFound(f"template {template_id} points outside the document store")
                return template, self.storage.download(path)
            return template, source.encode("utf-8")
        if template.file_path:
            return template, self.storage.download(template.file_path)
        raise TemplateNotFound(f"template {template_id} has no content")

    def output_path(self, template: TemplateRecord, case_id: Any, kind: TemplateKind) -> str:
        name = output_filename(template.name, case_id, kind, self.clock())
        return f"{self.settings.generated_prefix}/{name}"

    # -- pipeline ----------------------------------------------------------

    def render(self, data: bytes, graph: RecordGraph, template: TemplateRecord | None = None,
               overrides: Mapping[str, Any] | None = None) -> GenerationResult:
        """Fill ``data`` from ``graph`` using the template's catalog settings."""
        template_id = template.id if template else ""
        declared = template.required_fields if template else []
        return render_template(
            data,
            graph,
            required=self.catalog.required_for(str(template_id), declared),
            fallbacks=self.catalog.fallbacks_for(str(template_id)),
            overrides=overrides,
            today=self.clock(),
            qi_company=self.settings.qi_company,
        )

    def generate(self, template_id: Any, case_id: Any,
                 overrides: Mapping[str, Any] | None = None) -> GenerationResult:
        with step("load_template", template_id=template_id, case_id=case_id):
            template, data = self.load_template(template_id)
        return self._generate_loaded(template, data, case_id, overrides)

    def _generate_loaded(self, template: TemplateRecord, data: bytes, case_id: Any,
                         overrides: Mapping[str, Any] | None) -> GenerationResult:
        ctx = {"template_id": template.id, "case_id": case_id}
        with step("scan", **ctx):
            prepared = prepare_template(data)
        with step("aggregate", **ctx):
            graph = self.aggregator.aggregate(str(case_id))
        with step("resolve", **ctx):
            resolution, warnings = resolve(
                prepared.tokens,
                graph,
                self.catalog.fallbacks_for(str(template.id)),
                required=self.catalog.required_for(str(template.id), template.required_fields),
                overrides=overrides,
                today=self.clock(),
                qi_company=self.settings.qi_company,
            )
        with step("rewrite", **ctx):
            output, count = fill(prepared, resolution)
        with step("persist", **ctx):
            path = self.output_path(template, case_id, prepared.kind)
            ref = self.storage.upload(path, output, CONTENT_TYPES[prepared.kind])

        logger.info(
            "Generated %s for case %s from template %s: %d replacements, %d warnings",
            path, case_id, template.id, count, len(warnings),
        )
        return GenerationResult(
            archive_bytes=output,
            resolved_count=resolved_count(resolution),
            warnings=warnings,
            replacement_count=count,
            kind=prepared.kind,
            filename=path.rsplit("/", 1)[-1],
            content_type=CONTENT_TYPES[prepared.kind],
            document_ref=ref,
            notices=[PDF_NOTICE] if prepared.kind is TemplateKind.PDF else [],
        )

    def preview(self, template_id: Any, sample: Mapping[str, Any] | None = None,
                graph: RecordGraph | None = None) -> GenerationResult:
        """Render a template against sample data without persisting anything."""
        with step("load_template", template_id=template_id):
            template, data = self.load_template(template_id)
        with step("render", template_id=template_id):
            result = self.render(data, graph or SAMPLE_GRAPH, template, overrides=sample)
        result.filename = f"{sanitize_name(template.name)}_preview{EXTENSIONS[result.kind]}"
        return result

    def generate_many(self, template_id: Any, case_ids: Iterable[Any],
                      overrides: Mapping[str, Any] | None = None) -> list[BatchOutcome]:
        """Generate one document per case; a failing case does not stop the batch."""
        with step("load_template", template_id=template_id):
            template, data = self.load_template(template_id)
        outcomes = []
        for case_id in case_ids:
            try:
                result = self._generate_loaded(template, data, case_id, overrides)
            except DocgenError as e:
                logger.warning("Bulk generation failed for case %s: %s", case_id, e)
                outcomes.append(BatchOutcome(case_id=str(case_id), error=e))
            else:
                outcomes.append(BatchOutcome(case_id=str(case_id), result=result))
        return outcomes
