"""Template catalog loader.

Reads the YAML file that lists, per template, the ordered required-field
list and any extra fallback text. Example::

    default_required_fields: []
    templates:
      exchange-agreement:
        required_fields: ["#Client.Name#", "#Exchange.Number#"]
        fallbacks:
          "#Matter.Exotic Field#": "To be provided"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from docgen.engine.fields import FALLBACK_VALUES
from docgen.engine.scanner import normalize_key

logger = logging.getLogger(__name__)


@dataclass
class TemplateEntry:
    template_id: str
    required_fields: list[str] = field(default_factory=list)
    fallbacks: dict[str, str] = field(default_factory=dict)


@dataclass
class TemplateCatalog:
    templates: dict[str, TemplateEntry] = field(default_factory=dict)
    default_required_fields: list[str] = field(default_factory=list)

    def required_for(self, template_id: str, declared: list[str] | None = None) -> list[str]:
        """Ordered, de-duplicated normalized keys required by a template.

        ``declared`` is the list stored on the template record itself.
        """
        entry = self.templates.get(str(template_id))
        keys: list[str] = []
        for raw in [*self.default_required_fields, *(entry.required_fields if entry else []), *(declared or [])]:
            key = normalize_key(str(raw))
            if key and key not in keys:
                keys.append(key)
        return keys

    def fallbacks_for(self, template_id: str) -> dict[str, str]:
        """Static fallback text merged with the template's own entries."""
        table = dict(FALLBACK_VALUES)
        entry = self.templates.get(str(template_id))
        if entry:
            table.update(entry.fallbacks)
        return table


def parse_catalog(data: dict) -> TemplateCatalog:
    catalog = TemplateCatalog(
        default_required_fields=[str(k) for k in data.get("default_required_fields") or []],
    )
    for template_id, spec in (data.get("templates") or {}).items():
        spec = spec or {}
        catalog.templates[str(template_id)] = TemplateEntry(
            template_id=str(template_id),
            required_fields=[str(k) for k in spec.get("required_fields") or []],
            fallbacks={
                normalize_key(str(k)): str(v)
                for k, v in (spec.get("fallbacks") or {}).items()
                if v is not None
            },
        )
    return catalog


def load_catalog(path: str | Path) -> TemplateCatalog:
    """Load a catalog YAML file; a missing file yields an empty catalog."""
    path = Path(path)
    if not path.exists():
        logger.debug("No template catalog at %s", path)
        return TemplateCatalog()
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    catalog = parse_catalog(data)
    logger.info("Loaded template catalog %s (%d templates)", path, len(catalog.templates))
    return catalog
