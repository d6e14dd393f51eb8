"""
Document detection: dialect, delimiters and version, resolved once per document.

Both the batch scanner and the interactive lookup go through `detect_document`, so the two
never disagree on how the same text is interpreted.
"""
import logging
import re
from typing import Dict, Optional, Union

from cdm import Dialect, DelimiterSet, DocumentContext, NoEnvelopeError
from edi_delimiters import resolve_delimiters, strip_preamble
from schema_manager import FALLBACK_VERSIONS, SchemaManager

logger = logging.getLogger(__name__)

EDIFACT_MARKERS = ("UNB+", "UNH+", "UNA:")
EDIFACT_VERSION_SCAN_LINES = 20

ISA_VERSION_OFFSET = 84
ISA_VERSION_LENGTH = 5

# ISA version fields that have no published schema of their own, mapped to the nearest one.
X12_VERSION_REMAP: Dict[str, str] = {
    "002000": "002040",
    "003000": "003010",
    "004000": "004010",
    "005000": "005010",
    "006000": "006010",
    "007000": "007010",
    "008000": "008010",
}

def coerce_dialect(dialect: Union[Dialect, str, None]) -> Optional[Dialect]:
    if dialect is None or isinstance(dialect, Dialect):
        return dialect
    return Dialect(dialect.lower())

def sniff_dialect(text: str) -> Optional[Dialect]:
    """Guess the dialect from content. None means no envelope was recognized."""
    clean = strip_preamble(text)
    if clean.startswith("ISA"):
        return Dialect.X12
    if clean.startswith(("UNA", "UNB")) or any(marker in clean for marker in EDIFACT_MARKERS):
        return Dialect.EDIFACT
    return None

def normalize_x12_version(isa_version: str) -> str:
    """ISA12 (e.g. 00401) to schema version (004010), remapping unpublished variants."""
    version = isa_version + "0" if len(isa_version) == 5 else isa_version
    if version in X12_VERSION_REMAP:
        logger.info(f"Mapping version {version} to {X12_VERSION_REMAP[version]}")
        version = X12_VERSION_REMAP[version]
    return version

def detect_x12_version(text: str) -> Optional[str]:
    first_line = strip_preamble(text).split("\n", 1)[0]
    if first_line.startswith("ISA") and len(first_line) >= ISA_VERSION_OFFSET + ISA_VERSION_LENGTH:
        isa_version = first_line[ISA_VERSION_OFFSET:ISA_VERSION_OFFSET + ISA_VERSION_LENGTH].strip()
        if isa_version:
            return normalize_x12_version(isa_version)
    return None

def _unh_pattern(delimiters: DelimiterSet) -> "re.Pattern[str]":
    e = re.escape(delimiters.element)
    c = re.escape(delimiters.component)
    # UNH+ref+ORDERS:D:96A:UN
    return re.compile(rf"^UNH{e}[^{e}]+{e}[^{c}]+{c}D{c}(\d{{2}}[A-Z]){c}UN", re.IGNORECASE)

def detect_edifact_version(text: str, delimiters: DelimiterSet) -> Optional[str]:
    pattern = _unh_pattern(delimiters)
    for line in strip_preamble(text).splitlines()[:EDIFACT_VERSION_SCAN_LINES]:
        match = pattern.match(line)
        if match:
            return "d" + match.group(1).lower()
    return None

def detect_version(text: str, dialect: Dialect, delimiters: DelimiterSet) -> Optional[str]:
    if dialect == Dialect.EDIFACT:
        return detect_edifact_version(text, delimiters)
    return detect_x12_version(text)

def detect_document(
    text: str,
    dialect: Union[Dialect, str, None] = None,
    schema_manager: Optional[SchemaManager] = None,
) -> DocumentContext:
    """
    Resolve dialect, delimiters and schema version for a document.

    An explicit dialect lets envelope-less fragments through with default delimiters.
    Without one, a document lacking ISA/UNA/UNB raises NoEnvelopeError.
    """
    explicit = coerce_dialect(dialect)
    resolved = explicit or sniff_dialect(text)
    if resolved is None:
        raise NoEnvelopeError("Not an EDI document (no ISA or UNB/UNH envelope found)")

    delimiters = resolve_delimiters(text, resolved, strict=explicit is None)
    detected = detect_version(text, resolved, delimiters)
    logger.debug(f"Detected {resolved.value} document, version {detected or 'none'}, delimiters {delimiters.as_tuple()}")

    if schema_manager is not None:
        version = schema_manager.resolve_version(resolved, detected)
    else:
        version = detected or FALLBACK_VERSIONS[resolved][0]

    return DocumentContext(dialect=resolved, version=version, detected_version=detected, delimiters=delimiters)
