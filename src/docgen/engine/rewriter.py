"""Substitute resolved values back into template text and archives."""

from __future__ import annotations

import io
import logging
import re
import zipfile
from collections.abc import Mapping
from dataclasses import dataclass
from xml.sax.saxutils import escape

from docgen.engine.scanner import BARE_ROOTS, is_bare_key, is_text_part
from docgen.errors import ArchiveCorrupt
from docgen.models import ResolvedValue

logger = logging.getLogger(__name__)

_CANONICAL_ROOTS = {root.lower(): root for root in BARE_ROOTS}
_NEXT_ROOT = "|".join(BARE_ROOTS)
_XML_ENTITIES = {'"': "&quot;"}

Substitution = tuple[re.Pattern[str], str]


@dataclass
class RewriteResult:
    data: bytes
    replacements: int = 0


def _inner(key: str) -> str:
    return r"\s+".join(re.escape(word) for word in key.split(" "))


def _bare_pattern(key: str) -> re.Pattern[str]:
    root, _, rest = key.partition(".")
    words = " ".join(re.escape(word) for word in rest.split(" "))
    return re.compile(
        rf"(?<![\w.]){re.escape(_CANONICAL_ROOTS[root])}(?i:\.{words})(?!\w|\.\w| (?!(?:{_NEXT_ROOT})\.)[A-Z0-9])"
    )


def _text_of(value: ResolvedValue | str) -> str:
    return value.value if isinstance(value, ResolvedValue) else str(value)


def build_substitutions(resolution: Mapping[str, ResolvedValue | str]) -> list[Substitution]:
    """Compile one pattern per token variant, longest keys first.

    Delimited variants all run before any bare variant, otherwise a bare
    match inside ``#Client.Name#`` would strand the ``#`` delimiters.
    """
    keys = sorted(resolution, key=lambda k: (-len(k), k))
    subs: list[Substitution] = []
    for key in keys:
        inner = _inner(key)
        value = _text_of(resolution[key])
        subs.append((re.compile(rf"#{inner}#", re.IGNORECASE), value))
        subs.append((re.compile(rf"\{{{inner}\}}", re.IGNORECASE), value))
    for key in keys:
        if is_bare_key(key):
            subs.append((_bare_pattern(key), _text_of(resolution[key])))
    return subs


def apply_substitutions(text: str, subs: list[Substitution], escape_xml: bool = False) -> tuple[str, int]:
    total = 0
    for pattern, value in subs:
        literal = escape(value, _XML_ENTITIES) if escape_xml else value
        text, count = pattern.subn(lambda _m, v=literal: v, text)
        total += count
    return text, total


def rewrite_text(text: str, resolution: Mapping[str, ResolvedValue | str],
                 escape_xml: bool = False) -> tuple[str, int]:
    """Replace every token occurrence in ``text``; returns (text, replacements)."""
    return apply_substitutions(text, build_substitutions(resolution), escape_xml)


def rewrite_archive(data: bytes, resolution: Mapping[str, ResolvedValue | str]) -> RewriteResult:
    """Rewrite the text parts of a zip archive, copying everything else as-is.

    Entry order, per-entry compression and the archive comment are kept.
    """
    subs = build_substitutions(resolution)
    out = io.BytesIO()
    total = 0
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zin, zipfile.ZipFile(out, "w") as zout:
            zout.comment = zin.comment
            for info in zin.infolist():
                payload = zin.read(info)
                if not info.is_dir() and is_text_part(info.filename):
                    try:
                        text = payload.decode("utf-8")
                    except UnicodeDecodeError:
                        logger.warning("Leaving undecodable part %s unchanged", info.filename)
                    else:
                        text, count = apply_substitutions(text, subs, escape_xml=True)
                        if count:
                            payload = text.encode("utf-8")
                            total += count
                zout.writestr(info, payload)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as e:
        raise ArchiveCorrupt(f"archive could not be rewritten: {e}", step="rewrite") from e

    logger.info("Rewrote archive with %d replacements", total)
    return RewriteResult(data=out.getvalue(), replacements=total)
