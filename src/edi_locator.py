"""
Coordinate Locator.

Maps caret offsets inside one segment line to (segment, element, component)
coordinates and back to column spans. Splitting is done by an explicit tokenizer
that honors the release (escape) character, so `?+` inside an EDIFACT value does
not start a new element.

Offsets are caret positions: an element owns the offsets [start, end] where
`start` is the first character after its leading delimiter and `end` is
`start + len(raw)`. A caret sitting right after a delimiter therefore belongs to
the element that starts there, and a caret right before the next delimiter still
belongs to the current element.
"""
import logging
import re
from typing import List, Optional, Tuple

from pydantic import BaseModel

from cdm import DelimiterSet

logger = logging.getLogger(__name__)

LINE_BREAKS = "\r\n"

class Token(BaseModel):
    """A raw slice of a line: `start`/`end` are column offsets (end exclusive)."""
    index: int
    start: int
    end: int
    raw: str

class Coordinate(BaseModel):
    segment: str
    element: Optional[int] = None
    component: Optional[int] = None

    @property
    def label(self) -> str:
        label = self.segment
        if self.element is not None:
            label += f"-{self.element:02d}"
        if self.component is not None:
            label += f"-{self.component:02d}"
        return label

def tokenize(text: str, delimiter: str, release: Optional[str] = None, offset: int = 0) -> List[Token]:
    """Split `text` on `delimiter`, skipping delimiters escaped by `release`."""
    tokens: List[Token] = []
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if release and ch == release and i + 1 < len(text):
            i += 2
            continue
        if ch == delimiter:
            tokens.append(Token(index=len(tokens), start=offset + start, end=offset + i, raw=text[start:i]))
            start = i + 1
        i += 1
    tokens.append(Token(index=len(tokens), start=offset + start, end=offset + len(text), raw=text[start:]))
    return tokens

def unescape(value: str, delimiters: DelimiterSet) -> str:
    """Drop release characters, keeping the character each one escapes."""
    release = delimiters.release
    if not release or release not in value:
        return value
    out = []
    i = 0
    while i < len(value):
        if value[i] == release and i + 1 < len(value):
            out.append(value[i + 1])
            i += 2
            continue
        out.append(value[i])
        i += 1
    return "".join(out)

def _segment_code_pattern(delimiters: DelimiterSet) -> "re.Pattern[str]":
    lookahead = "".join(re.escape(c) for c in (delimiters.element, delimiters.component, delimiters.segment))
    return re.compile(rf"^([A-Z0-9]{{2,3}})(?=[{lookahead}])")

def match_segment_code(line: str, delimiters: DelimiterSet) -> Optional[str]:
    """Return the 2-3 character segment code anchored at the start of `line`."""
    if not line:
        return None
    match = _segment_code_pattern(delimiters).match(line)
    return match.group(1) if match else None

def segment_body(line: str, delimiters: DelimiterSet) -> str:
    """The part of `line` up to its first unescaped segment terminator, line breaks removed."""
    text = line.rstrip(LINE_BREAKS)
    segment = delimiters.segment
    if segment in LINE_BREAKS:
        return text
    return tokenize(text, segment, delimiters.release)[0].raw

def split_elements(line: str, delimiters: DelimiterSet) -> List[Token]:
    """Element tokens of the segment on `line`. Token 0 is the segment code."""
    return tokenize(segment_body(line, delimiters), delimiters.element, delimiters.release)

def split_components(element_raw: str, delimiters: DelimiterSet, offset: int = 0) -> List[Token]:
    return tokenize(element_raw, delimiters.component, delimiters.release, offset=offset)

def _offset_to_index(tokens: List[Token], offset: int, skip_first: bool) -> Optional[int]:
    for token in tokens:
        if skip_first and token.index == 0:
            continue
        if token.start <= offset <= token.end:
            return token.index
    return None

def offset_to_element(line: str, offset: int, delimiters: DelimiterSet) -> Optional[int]:
    """1-based element index at caret `offset`, or None on the segment code or past the segment."""
    tokens = split_elements(line, delimiters)
    if len(tokens) < 2:
        return None
    return _offset_to_index(tokens, offset, skip_first=True)

def offset_to_component(element_raw: str, offset: int, delimiters: DelimiterSet) -> Optional[int]:
    """1-based component index at caret `offset` measured from the start of the element."""
    index = _offset_to_index(split_components(element_raw, delimiters), offset, skip_first=False)
    return index + 1 if index is not None else None

def element_span(line: str, element_index: int, delimiters: DelimiterSet) -> Optional[Tuple[int, int]]:
    """Column span (end exclusive) of element `element_index`; terminators are excluded."""
    tokens = split_elements(line, delimiters)
    if element_index < 1 or element_index >= len(tokens):
        return None
    token = tokens[element_index]
    return token.start, token.end

def component_span(element_raw: str, component_index: int, delimiters: DelimiterSet) -> Optional[Tuple[int, int]]:
    """Span of a component relative to the start of its element."""
    tokens = split_components(element_raw, delimiters)
    if component_index < 1 or component_index > len(tokens):
        return None
    token = tokens[component_index - 1]
    return token.start, token.end

def element_value(line: str, element_index: int, delimiters: DelimiterSet) -> str:
    tokens = split_elements(line, delimiters)
    if 1 <= element_index < len(tokens):
        return tokens[element_index].raw
    return ""

def locate(line: str, offset: int, delimiters: DelimiterSet) -> Optional[Coordinate]:
    """Resolve a caret offset to a coordinate. Components are only reported for composite values."""
    code = match_segment_code(line, delimiters)
    if not code:
        return None
    element = offset_to_element(line, offset, delimiters)
    if element is None:
        return Coordinate(segment=code)
    token = split_elements(line, delimiters)[element]
    component = None
    if len(split_components(token.raw, delimiters)) > 1:
        component = offset_to_component(token.raw, offset - token.start, delimiters)
    logger.debug(f"Caret {offset} on '{code}' -> element {element}, component {component}")
    return Coordinate(segment=code, element=element, component=component)
