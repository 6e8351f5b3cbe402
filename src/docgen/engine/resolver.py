"""Layered token resolution: exact -> heuristic -> fallback -> unresolved."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from types import MappingProxyType
from typing import Any

from docgen.engine.fields import (
    DEFAULT_QI_COMPANY,
    FALLBACK_VALUES,
    FieldContext,
    build_exact_table,
    match_rule,
)
from docgen.engine.formatting import display, neutralize
from docgen.engine.scanner import normalize_key
from docgen.errors import MissingRequiredField
from docgen.models import (
    Contact,
    ExchangeCase,
    GenerationWarning,
    Origin,
    RecordGraph,
    ResolvedValue,
    StaffMember,
    Token,
)

logger = logging.getLogger(__name__)

ResolutionMap = Mapping[str, ResolvedValue]

# Override keys with these prefixes patch the record graph instead of a token.
GRAPH_OVERRIDE_PREFIXES = {
    "case": ExchangeCase,
    "primary_party": Contact,
    "assigned_staff": StaffMember,
}


def unresolved_marker(key: str) -> str:
    return neutralize(f"[{key}]")


def apply_overrides(graph: RecordGraph, overrides: Mapping[str, Any] | None) -> tuple[RecordGraph, dict[str, str]]:
    """Split caller overrides into graph patches and token values.

    ``{"case.exchange_value": 500000}`` patches the graph before any lookup;
    ``{"Client.Name": "Jane"}`` forces the value of that token.
    """
    if not overrides:
        return graph, {}

    patches: dict[str, dict[str, Any]] = {}
    tokens: dict[str, str] = {}
    for raw_key, value in overrides.items():
        prefix, dot, field = str(raw_key).partition(".")
        if dot and prefix in GRAPH_OVERRIDE_PREFIXES and field:
            if field not in GRAPH_OVERRIDE_PREFIXES[prefix].model_fields:
                logger.warning("Ignoring override for unknown field %s", raw_key)
                continue
            patches.setdefault(prefix, {})[field] = value
            continue
        key = normalize_key(str(raw_key))
        text = display(value)
        if key and text is not None:
            tokens[key] = text

    if patches:
        updates = {}
        for section, fields in patches.items():
            current = getattr(graph, section)
            if current is None:
                current = GRAPH_OVERRIDE_PREFIXES[section]()
            updates[section] = current.model_copy(update=fields)
        graph = graph.model_copy(update=updates)
    return graph, tokens


def _as_datetime(today: date | datetime | None) -> datetime:
    if today is None:
        return datetime.now()
    if isinstance(today, datetime):
        return today
    return datetime(today.year, today.month, today.day)


def resolve(
    tokens: Mapping[str, Token] | Iterable[str],
    graph: RecordGraph,
    fallback_table: Mapping[str, str] = FALLBACK_VALUES,
    required: Iterable[str] = (),
    overrides: Mapping[str, Any] | None = None,
    today: date | datetime | None = None,
    qi_company: str = DEFAULT_QI_COMPANY,
) -> tuple[ResolutionMap, list[GenerationWarning]]:
    """Resolve every token to exactly one value.

    Returns a read-only map keyed by normalized token key, plus one warning
    for every token that was not an exact match. Required tokens that
    neither resolve nor have a fallback are collected and raised together
    as :class:`MissingRequiredField` once every token has been processed.
    """
    now = _as_datetime(today)
    graph, token_overrides = apply_overrides(graph, overrides)
    exact = build_exact_table(graph, now=now, qi_company=qi_company)
    exact.update(token_overrides)
    ctx = FieldContext(graph=graph, now=now, qi_company=qi_company)
    required_keys = {normalize_key(r) for r in required if r}

    keys = sorted(tokens.keys() if isinstance(tokens, Mapping) else set(tokens))
    resolution: dict[str, ResolvedValue] = {}
    warnings: list[GenerationWarning] = []
    missing: list[str] = []

    for key in keys:
        if key in exact:
            resolution[key] = ResolvedValue(value=neutralize(exact[key]), origin=Origin.EXACT)
            continue

        rule = match_rule(key)
        value = display(rule.resolve(ctx)) if rule else None
        if value is not None:
            logger.debug("Token %s resolved by heuristic %r", key, rule.name)
            resolution[key] = ResolvedValue(value=neutralize(value), origin=Origin.HEURISTIC)
            warnings.append(GenerationWarning(token=key, origin=Origin.HEURISTIC, detail=f"rule: {rule.name}"))
            continue

        if key in required_keys:
            fallback = fallback_table.get(key)
            if fallback is None:
                missing.append(key)
                continue
            logger.debug("Token %s using fallback value", key)
            resolution[key] = ResolvedValue(value=neutralize(fallback), origin=Origin.FALLBACK)
            warnings.append(GenerationWarning(token=key, origin=Origin.FALLBACK, detail="required field had no data"))
            continue

        resolution[key] = ResolvedValue(value=unresolved_marker(key), origin=Origin.UNRESOLVED)
        warnings.append(GenerationWarning(token=key, origin=Origin.UNRESOLVED, detail="no data for token"))

    if missing:
        raise MissingRequiredField(missing)

    exact_hits = sum(1 for v in resolution.values() if v.origin is Origin.EXACT)
    logger.info("Resolved %d tokens (%d exact, %d warnings)", len(resolution), exact_hits, len(warnings))
    return MappingProxyType(resolution), warnings


def resolved_count(resolution: ResolutionMap) -> int:
    return sum(1 for v in resolution.values() if v.origin is not Origin.UNRESOLVED)
