"""Flask HTTP surface for document generation."""

from __future__ import annotations

import base64
import logging
import os

from flask import Flask, current_app, jsonify, request

from docgen.engine.generator import DocumentGenerator
from docgen.errors import DocgenError
from docgen.models import GenerationResult, TemplateKind

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "template_not_found": 404,
    "case_not_found": 404,
    "missing_required_field": 422,
    "archive_corrupt": 422,
    "storage_failure": 502,
}


def _generator() -> DocumentGenerator:
    return current_app.extensions["docgen"]


def _warnings(result: GenerationResult) -> list[dict]:
    return [w.model_dump(mode="json") for w in result.warnings]


def _result_dict(result: GenerationResult) -> dict:
    return {
        "documentRef": result.document_ref,
        "filename": result.filename,
        "kind": result.kind.value,
        "resolvedCount": result.resolved_count,
        "replacementCount": result.replacement_count,
        "warnings": _warnings(result),
        "notices": result.notices,
    }


def create_app(generator: DocumentGenerator | None = None) -> Flask:
    app = Flask(__name__)
    app.extensions["docgen"] = generator or DocumentGenerator.from_settings()

    # ── Errors ───────────────────────────────────────────────────────────

    @app.errorhandler(DocgenError)
    def generation_failed(err: DocgenError):
        status = STATUS_BY_KIND.get(err.kind, 500)
        if status >= 500:
            logger.error("Request failed: %s", err)
        return jsonify(err.to_dict()), status

    # ── Generation ───────────────────────────────────────────────────────

    @app.route("/api/generate-document", methods=["POST"])
    def generate_document():
        body = request.get_json(silent=True) or {}
        template_id = body.get("templateId")
        case_id = body.get("caseId")
        if not template_id or not case_id:
            return jsonify({"error": "templateId and caseId are required"}), 400
        overrides = body.get("overrides") or {}
        if not isinstance(overrides, dict):
            return jsonify({"error": "overrides must be an object"}), 400

        result = _generator().generate(template_id, case_id, overrides)
        return jsonify(_result_dict(result)), 201

    @app.route("/api/generate-documents", methods=["POST"])
    def generate_documents():
        body = request.get_json(silent=True) or {}
        template_id = body.get("templateId")
        case_ids = body.get("caseIds")
        if not template_id or not isinstance(case_ids, list) or not case_ids:
            return jsonify({"error": "templateId and a non-empty caseIds list are required"}), 400

        outcomes = _generator().generate_many(template_id, case_ids, body.get("overrides") or {})
        return jsonify({
            "results": [o.to_dict() for o in outcomes],
            "succeeded": sum(1 for o in outcomes if o.ok),
            "failed": sum(1 for o in outcomes if not o.ok),
        })

    @app.route("/api/templates/<template_id>/preview", methods=["POST"])
    def preview_template(template_id):
        body = request.get_json(silent=True) or {}
        sample = body.get("sampleData") or {}
        if not isinstance(sample, dict):
            return jsonify({"error": "sampleData must be an object"}), 400

        result = _generator().preview(template_id, sample)
        out = _result_dict(result)
        if result.kind is TemplateKind.TEXT:
            out["previewText"] = result.archive_bytes.decode("utf-8")
        else:
            out["content"] = base64.b64encode(result.archive_bytes).decode("ascii")
        return jsonify(out)

    return app


if __name__ == "__main__":
    port = int(os.environ.get("DOCGEN_PORT", "5000"))
    create_app().run(host="127.0.0.1", port=port)
