"""Error taxonomy for document generation.

Every error carries the request context (template id, case id, failing
step) so the caller can act on it without digging through logs.
"""

from __future__ import annotations


class DocgenError(RuntimeError):
    """Base class for all generation failures."""

    kind = "generation_failed"

    def __init__(self, message: str = "", *, template_id: str | None = None,
                 case_id: str | None = None, step: str | None = None):
        super().__init__(message or self.kind.replace("_", " "))
        self.message = message or self.kind.replace("_", " ")
        self.template_id = template_id
        self.case_id = case_id
        self.step = step

    def with_context(self, *, template_id=None, case_id=None, step=None) -> DocgenError:
        """Fill in any context the raising code did not know about."""
        if self.template_id is None and template_id is not None:
            self.template_id = str(template_id)
        if self.case_id is None and case_id is not None:
            self.case_id = str(case_id)
        if self.step is None and step is not None:
            self.step = step
        return self

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.kind,
            "template_id": self.template_id,
            "case_id": self.case_id,
            "step": self.step,
        }

    def __str__(self) -> str:
        ctx = ", ".join(
            f"{name}={value}"
            for name, value in (("template", self.template_id), ("case", self.case_id), ("step", self.step))
            if value is not None
        )
        return f"{self.message} ({ctx})" if ctx else self.message


class TemplateNotFound(DocgenError):
    kind = "template_not_found"


class CaseNotFound(DocgenError):
    kind = "case_not_found"


class ArchiveCorrupt(DocgenError):
    kind = "archive_corrupt"


class StorageFailure(DocgenError):
    kind = "storage_failure"


class UnexpectedFailure(DocgenError):
    kind = "unexpected_failure"


class MissingRequiredField(DocgenError):
    """Raised once per request, naming every required token that could not be filled."""

    kind = "missing_required_field"

    def __init__(self, tokens: list[str], **context):
        self.tokens = list(tokens)
        super().__init__(f"missing required fields: {', '.join(self.tokens)}", **context)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["fields"] = self.tokens
        return data
