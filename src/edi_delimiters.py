import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, ValidationError

from cdm import (
    Dialect, DelimiterSet, NoEnvelopeError, default_delimiters,
    EDIFACT_DEFAULT_DELIMITERS, X12_DEFAULT_DELIMITERS,
)
from edi_locator import tokenize

logger = logging.getLogger(__name__)

# ISA is fixed width, so its separators sit at known absolute positions.
ISA_ELEMENT_OFFSET = 3
ISA_COMPONENT_OFFSET = 104
ISA_SEGMENT_OFFSET = 105
ISA_LENGTH = 106

# UNA service string advice: UNA + component, element, decimal mark, release, reserved, segment.
UNA_LENGTH = 9
STANDARD_UNA_TEMPLATE = "UNA:+{decimal}? '"

# Temporary codepoints used while rewriting delimiters, so that swapped delimiters never alias.
SENTINELS = {
    "element": "\u0001",
    "segment": "\u0002",
    "component": "\u0003",
    "release": "\u0004",
}

class RewriteResult(BaseModel):
    """Outcome of a text rewrite. `changed` is False when the input was returned untouched."""
    text: str
    changed: bool
    message: str
    before: Optional[DelimiterSet] = None
    after: Optional[DelimiterSet] = None

def strip_preamble(text: str) -> str:
    """Drop a byte-order mark and leading whitespace before the envelope."""
    return text.lstrip("\ufeff \t\r\n")

def has_envelope(text: str) -> bool:
    clean = strip_preamble(text)
    return clean.startswith(("ISA", "UNA", "UNB"))

def _build(dialect: Dialect, **delims: Optional[str]) -> DelimiterSet:
    try:
        return DelimiterSet(**delims)
    except ValidationError as e:
        fallback = default_delimiters(dialect)
        logger.warning(f"Detected delimiters {delims} are not usable ({e.errors()[0]['msg']}). Falling back to {dialect.value} defaults.")
        return fallback

def _resolve_x12(clean: str, strict: bool) -> DelimiterSet:
    if not clean.startswith("ISA"):
        if strict:
            raise NoEnvelopeError("No ISA envelope detected")
        logger.warning("Could not find standard ISA segment. Falling back to default delimiters ('*', '~', ':').")
        return X12_DEFAULT_DELIMITERS

    if len(clean) < ISA_LENGTH:
        logger.warning(f"ISA segment is truncated ({len(clean)} chars). Using defaults for the missing delimiters.")
    element = clean[ISA_ELEMENT_OFFSET] if len(clean) > ISA_ELEMENT_OFFSET else X12_DEFAULT_DELIMITERS.element
    component = clean[ISA_COMPONENT_OFFSET] if len(clean) > ISA_SEGMENT_OFFSET else X12_DEFAULT_DELIMITERS.component
    segment = clean[ISA_SEGMENT_OFFSET] if len(clean) > ISA_SEGMENT_OFFSET else X12_DEFAULT_DELIMITERS.segment
    if segment == "\r":
        segment = "\n"
    logger.debug(f"Delimiters detected: Element='{element}', Segment={segment!r}, Component='{component}'")
    return _build(Dialect.X12, element=element, component=component, segment=segment)

def _infer_unb_component(clean: str, element: str) -> str:
    # The first UNB element is the syntax identifier (e.g. UNOA:2); its separator is the component delimiter.
    for ch in clean[4:]:
        if ch == element or ch in "\r\n":
            break
        if not ch.isalnum():
            return ch
    return EDIFACT_DEFAULT_DELIMITERS.component

def _infer_unb_segment(clean: str, element: str, component: str) -> str:
    first_line, sep, _ = clean.partition("\n")
    if sep:
        candidate = first_line.rstrip("\r")[-1:]
        if candidate and not candidate.isalnum() and candidate not in (element, component, " "):
            return candidate
    # Without a line-broken UNB the conventional apostrophe is the only safe guess.
    return EDIFACT_DEFAULT_DELIMITERS.segment

def _resolve_edifact(clean: str, strict: bool) -> DelimiterSet:
    if clean.startswith("UNA"):
        if len(clean) < UNA_LENGTH:
            logger.warning(f"UNA service string advice is truncated ({len(clean)} chars). Using EDIFACT defaults.")
            return EDIFACT_DEFAULT_DELIMITERS
        release: Optional[str] = clean[6]
        if release == " ":
            release = None
        return _build(Dialect.EDIFACT, component=clean[3], element=clean[4], release=release, segment=clean[8])

    if clean.startswith("UNB"):
        element = clean[3] if len(clean) > 3 else EDIFACT_DEFAULT_DELIMITERS.element
        component = _infer_unb_component(clean, element)
        segment = _infer_unb_segment(clean, element, component)
        return _build(Dialect.EDIFACT, element=element, component=component, segment=segment,
                      release=EDIFACT_DEFAULT_DELIMITERS.release)

    if strict:
        raise NoEnvelopeError("No EDIFACT envelope (UNA/UNB) detected")
    logger.warning("No UNA/UNB envelope found. Falling back to EDIFACT default delimiters.")
    return EDIFACT_DEFAULT_DELIMITERS

def resolve_delimiters(text: str, dialect: Dialect, strict: bool = True) -> DelimiterSet:
    """
    Determine the active delimiters of a document.

    Args:
        text: Full document text.
        dialect: Dialect the document is known or assumed to be in.
        strict: Raise NoEnvelopeError when the envelope is missing instead of using defaults.
    """
    clean = strip_preamble(text)
    if dialect == Dialect.EDIFACT:
        return _resolve_edifact(clean, strict)
    return _resolve_x12(clean, strict)

def decimal_mark(text: str) -> str:
    clean = strip_preamble(text)
    if clean.startswith("UNA") and len(clean) >= UNA_LENGTH and clean[5] != " ":
        return clean[5]
    return "."

def _two_phase(text: str, current: DelimiterSet, target: DelimiterSet, escape_literals: bool) -> str:
    roles = ("element", "segment", "component", "release")
    to_sentinel: Dict[str, str] = {}
    for role in roles:
        char = getattr(current, role)
        if char is not None and getattr(target, role) is not None:
            to_sentinel[char] = SENTINELS[role]
    from_sentinel = {ord(SENTINELS[role]): getattr(target, role) for role in roles if getattr(target, role) is not None}

    # Phase 1: current delimiters -> sentinels. Escaped characters stay literal.
    target_chars = {c for c in target.as_tuple() if c is not None}
    literal_targets = target_chars if escape_literals else set()
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if current.release and ch == current.release and i + 1 < len(text):
            escaped = text[i + 1]
            # Keep the escape only where the character is still special after the rewrite.
            if target.release and escaped in target_chars:
                out.append(SENTINELS["release"])
            out.append(escaped)
            i += 2
            continue
        if ch in to_sentinel:
            out.append(to_sentinel[ch])
        elif ch in literal_targets:
            # A plain character that becomes a delimiter after the rewrite must be escaped.
            out.append(SENTINELS["release"] + ch)
        else:
            out.append(ch)
        i += 1

    # Phase 2: sentinels -> standard delimiters.
    return "".join(out).translate(from_sentinel)

def normalize_delimiters(text: str, dialect: Dialect) -> RewriteResult:
    """
    Rewrite the document's delimiters to the standard set for its dialect.

    X12 standard: element '*', segment '~'. EDIFACT standard: component ':', element '+',
    segment "'", release '?', with a UNA header written (or replaced) at the top.
    """
    current = resolve_delimiters(text, dialect, strict=True)

    if dialect == Dialect.X12:
        if current.element == "*" and current.segment == "~":
            return RewriteResult(text=text, changed=False, message="Delimiters OK - no updates made", before=current, after=current)
        component = current.component
        if component in ("*", "~"):
            component = ":" if current.element != ":" and current.segment != ":" else ">"
        target = DelimiterSet(element="*", segment="~", component=component)
        source = text.replace("\r\n", "\n") if current.segment == "\n" else text
        updated = _two_phase(source, current, target, escape_literals=False)
        logger.info(f"X12 delimiters normalized: {current.as_tuple()} -> {target.as_tuple()}")
        return RewriteResult(text=updated, changed=True, message="Delimiters normalized", before=current, after=target)

    target = EDIFACT_DEFAULT_DELIMITERS
    if current == target:
        return RewriteResult(text=text, changed=False, message="Delimiters OK - no updates made", before=current, after=current)

    clean = strip_preamble(text)
    has_una = clean.startswith("UNA")
    header = STANDARD_UNA_TEMPLATE.format(decimal=decimal_mark(clean))
    body = clean[UNA_LENGTH:] if has_una else clean
    updated = _two_phase(body, current, target, escape_literals=True)
    updated = header + updated if has_una else header + "\n" + updated
    logger.info(f"EDIFACT delimiters normalized: {current.as_tuple()} -> {target.as_tuple()}")
    return RewriteResult(text=updated, changed=True, message="EDIFACT delimiters normalized", before=current, after=target)

def add_line_breaks(text: str, delimiters: DelimiterSet) -> RewriteResult:
    """Put every segment on its own line. Leaves text alone when it is already broken into lines."""
    segment = delimiters.segment
    if segment in "\r\n":
        return RewriteResult(text=text, changed=False, message="Line breaks already present")

    tokens = tokenize(text, segment, delimiters.release)
    segment_count = len(tokens) - 1
    line_count = len(text.split("\n"))
    if segment_count == 0:
        return RewriteResult(text=text, changed=False, message="No segment terminators found")
    if line_count >= segment_count * 0.9:
        return RewriteResult(text=text, changed=False, message="Line breaks already present")

    pieces = [tokens[0].raw]
    for token in tokens[1:]:
        raw = token.raw
        if raw.startswith("\r\n"):
            raw = raw[2:]
        elif raw.startswith("\n"):
            raw = raw[1:]
        pieces.append(raw)
    updated = (segment + "\n").join(pieces)
    logger.info(f"Line breaks added after {segment_count} segments")
    return RewriteResult(text=updated, changed=True, message="Line breaks added")
