"""
Envelope utilities: read the message type and rewrite interchange sender/receiver IDs.

Segments are rewritten in place; everything outside the touched elements (line breaks,
padding, escaped characters) is left exactly as it was.
"""
import logging
from typing import Callable, List, Optional, Union

from pydantic import BaseModel, Field

from cdm import Dialect, DelimiterSet
from edi_delimiters import RewriteResult, resolve_delimiters
from edi_detection import detect_document
from edi_locator import match_segment_code, tokenize

logger = logging.getLogger(__name__)

ISA_ID_WIDTH = 15
SEGMENT_PADDING = "\r\n \t"

class X12Party(BaseModel):
    """Interchange (ISA) qualifier and ID plus the functional group (GS) application code."""
    qualifier: str = Field(min_length=2, max_length=2)
    isa_id: str = Field(pattern=r"^[\w \-]{1,15}$")
    gs_id: str = Field(min_length=2, max_length=15)

class EdifactParty(BaseModel):
    """UNB/UNG party identification; the qualifier is dropped from the element when empty."""
    id: str = Field(min_length=1, max_length=35)
    qualifier: Optional[str] = Field(default=None, max_length=4)

    def render(self, component: str) -> str:
        return f"{self.id}{component}{self.qualifier}" if self.qualifier else self.id

SegmentRewriter = Callable[[str, List[str]], bool]

def _rewrite_segments(text: str, delimiters: DelimiterSet, rewriter: SegmentRewriter) -> str:
    """Apply `rewriter(code, elements)` to every segment; it mutates `elements` and returns True on change."""
    segments = tokenize(text, delimiters.segment, delimiters.release)
    out: List[str] = []
    for token in segments:
        raw = token.raw
        body = raw.lstrip(SEGMENT_PADDING)
        prefix = raw[:len(raw) - len(body)]
        code = match_segment_code(body, delimiters)
        if code:
            elements = [t.raw for t in tokenize(body, delimiters.element, delimiters.release)]
            if rewriter(code, elements):
                body = delimiters.element.join(elements)
        out.append(prefix + body)
    return delimiters.segment.join(out)

def _set_element(elements: List[str], index: int, value: str) -> bool:
    if index >= len(elements):
        return False
    elements[index] = value
    return True

def update_x12_ids(text: str, sender: Optional[X12Party] = None, receiver: Optional[X12Party] = None) -> RewriteResult:
    """
    Rewrite ISA05/06 and GS02 (sender) and ISA07/08 and GS03 (receiver).

    ISA IDs are space padded to their fixed width of 15.

    Raises:
        ValueError: neither party was given.
        NoEnvelopeError: the text does not start with ISA.
    """
    if sender is None and receiver is None:
        raise ValueError("Nothing to update: give a sender, a receiver or both")
    delimiters = resolve_delimiters(text, Dialect.X12, strict=True)
    touched: List[str] = []

    def rewrite(code: str, elements: List[str]) -> bool:
        changed = False
        if code == "ISA":
            if sender is not None:
                changed |= _set_element(elements, 5, sender.qualifier)
                changed |= _set_element(elements, 6, sender.isa_id.ljust(ISA_ID_WIDTH))
            if receiver is not None:
                changed |= _set_element(elements, 7, receiver.qualifier)
                changed |= _set_element(elements, 8, receiver.isa_id.ljust(ISA_ID_WIDTH))
        elif code == "GS":
            if sender is not None:
                changed |= _set_element(elements, 2, sender.gs_id)
            if receiver is not None:
                changed |= _set_element(elements, 3, receiver.gs_id)
        if changed:
            touched.append(code)
        return changed

    updated = _rewrite_segments(text, delimiters, rewrite)
    return _result(text, updated, sender is not None, receiver is not None, touched)

def update_edifact_ids(text: str, sender: Optional[EdifactParty] = None, receiver: Optional[EdifactParty] = None) -> RewriteResult:
    """
    Rewrite the sender (element 2) and receiver (element 3) of UNB and of every UNG.

    Raises:
        ValueError: neither party was given.
        NoEnvelopeError: the text has neither UNA nor UNB.
    """
    if sender is None and receiver is None:
        raise ValueError("Nothing to update: give a sender, a receiver or both")
    delimiters = resolve_delimiters(text, Dialect.EDIFACT, strict=True)
    touched: List[str] = []

    def rewrite(code: str, elements: List[str]) -> bool:
        if code not in ("UNB", "UNG"):
            return False
        changed = False
        if sender is not None:
            changed |= _set_element(elements, 2, sender.render(delimiters.component))
        if receiver is not None:
            changed |= _set_element(elements, 3, receiver.render(delimiters.component))
        if changed:
            touched.append(code)
        return changed

    updated = _rewrite_segments(text, delimiters, rewrite)
    return _result(text, updated, sender is not None, receiver is not None, touched)

def _result(original: str, updated: str, has_sender: bool, has_receiver: bool, touched: List[str]) -> RewriteResult:
    if not touched:
        logger.warning("No envelope segment had the elements to update")
        return RewriteResult(text=original, changed=False, message="No envelope IDs found to update")
    parties = "sender and receiver" if has_sender and has_receiver else "sender" if has_sender else "receiver"
    logger.info(f"Updated {parties} IDs in {', '.join(touched)}")
    return RewriteResult(text=updated, changed=updated != original, message=f"Updated {parties} IDs")

def find_message_type(text: str, dialect: Union[Dialect, str, None] = None) -> Optional[str]:
    """The X12 transaction set code (ST01) or the EDIFACT message type (UNH02, first component)."""
    context = detect_document(text, dialect)
    delimiters = context.delimiters
    for token in tokenize(text, delimiters.segment, delimiters.release):
        body = token.raw.lstrip(SEGMENT_PADDING)
        code = match_segment_code(body, delimiters)
        if context.dialect == Dialect.X12 and code == "ST":
            elements = tokenize(body, delimiters.element)
            return elements[1].raw.strip() if len(elements) > 1 else None
        if context.dialect == Dialect.EDIFACT and code == "UNH":
            elements = tokenize(body, delimiters.element, delimiters.release)
            if len(elements) < 3:
                return None
            return tokenize(elements[2].raw, delimiters.component, delimiters.release)[0].raw.strip()
    return None
