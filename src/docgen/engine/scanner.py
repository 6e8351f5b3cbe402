"""Placeholder token discovery.

Template authors have used several token syntaxes over the years. Word
also splits text into runs, which can separate a token's ``#`` delimiters
from its content, so a third grammar picks up dotted paths that lost their
delimiters entirely. All three feed one normalized key space.
"""

from __future__ import annotations

import io
import logging
import re
import zipfile

from docgen.models import ScanResult, Token, TokenSyntax

logger = logging.getLogger(__name__)

# Root words that may start a delimiter-less token.
BARE_ROOTS = (
    "Matter",
    "Contact",
    "Exchange",
    "Client",
    "User",
    "QI",
    "System",
    "Financial",
    "Property",
    "Date",
    "Coordinator",
)

_INNER = r"[\w.]+(?: [\w.]+)*"
_ROOTS = "|".join(BARE_ROOTS)

GRAMMARS: tuple[tuple[TokenSyntax, re.Pattern[str]], ...] = (
    (TokenSyntax.HASH, re.compile(rf"#({_INNER})#")),
    (TokenSyntax.BRACE, re.compile(rf"\{{({_INNER})\}}")),
    (TokenSyntax.BARE, re.compile(
        rf"(?<![\w.])((?:{_ROOTS})\.\w+(?:\.\w+| (?!(?:{_ROOTS})\.)[A-Z0-9]\w*)*)"
    )),
)

_EDGES = re.compile(r"^[\s#{}]+|[\s#{}]+$")
_SPACES = re.compile(r"\s+")


def normalize_key(raw: str) -> str:
    """Strip delimiters and surrounding whitespace, collapse spaces, lowercase."""
    text = _EDGES.sub("", raw)
    return _SPACES.sub(" ", text).lower()


def is_bare_key(key: str) -> bool:
    """True if a normalized key could also appear without delimiters."""
    root, dot, rest = key.partition(".")
    return bool(dot and rest) and root in {r.lower() for r in BARE_ROOTS}


def is_text_part(name: str) -> bool:
    """Archive entries that carry document text (not relationships or metadata)."""
    if not name.endswith(".xml"):
        return False
    if name == "[Content_Types].xml" or name.startswith("docProps/"):
        return False
    return "_rels/" not in name and not name.startswith("_rels")


def _collect(text: str, found: dict[str, dict]) -> None:
    for syntax, pattern in GRAMMARS:
        for match in pattern.finditer(text):
            key = normalize_key(match.group(1))
            if not key:
                continue
            entry = found.setdefault(key, {"raw_form": match.group(0), "syntaxes": set()})
            entry["syntaxes"].add(syntax)


def _freeze(found: dict[str, dict]) -> dict[str, Token]:
    return {
        key: Token(raw_form=entry["raw_form"], key=key, syntaxes=frozenset(entry["syntaxes"]))
        for key, entry in found.items()
    }


def scan_text(text: str) -> dict[str, Token]:
    """Extract the distinct tokens in a block of text."""
    found: dict[str, dict] = {}
    _collect(text, found)
    return _freeze(found)


def scan_archive(data: bytes) -> ScanResult:
    """Scan every text part of a zip-structured document archive.

    A corrupt or non-archive input returns an empty token set with
    ``error`` set, so callers can tell it apart from a clean archive that
    simply has no tokens.
    """
    found: dict[str, dict] = {}
    parts = 0
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for info in archive.infolist():
                if info.is_dir() or not is_text_part(info.filename):
                    continue
                try:
                    text = archive.read(info).decode("utf-8")
                except UnicodeDecodeError:
                    logger.warning("Skipping undecodable part %s", info.filename)
                    continue
                parts += 1
                _collect(text, found)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, OSError) as e:
        logger.warning("Archive could not be scanned: %s", e)
        return ScanResult(error=f"not a readable archive: {e}")

    tokens = _freeze(found)
    logger.info("Scanned %d text parts, found %d distinct tokens", parts, len(tokens))
    return ScanResult(tokens=tokens, parts_scanned=parts)
