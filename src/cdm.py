from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Optional, Tuple

# Canonical Data Model (CDM) shared by the delimiter resolver, locator, validators and scanner.
# Everything here is a plain value object; nothing holds references to schema caches.

class EdiError(ValueError):
    """Base class for errors raised by the EDI tooling."""

class NoEnvelopeError(EdiError):
    """Raised when a document has no recognizable ISA, UNA or UNB opening."""

class Dialect(str, Enum):
    X12 = "x12"
    EDIFACT = "edifact"

class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"

class ErrorKind(str, Enum):
    LENGTH = "length"
    DATA_TYPE = "dataType"
    INVALID_CODE = "invalidCode"

class DelimiterSet(BaseModel):
    """The active separators of a document. `release` is None when the dialect has no escape character."""
    model_config = ConfigDict(frozen=True)

    element: str
    component: str
    segment: str
    release: Optional[str] = None

    @model_validator(mode="after")
    def check_distinct(self) -> "DelimiterSet":
        chars = [c for c in (self.element, self.component, self.segment, self.release) if c is not None]
        for c in chars:
            if len(c) != 1:
                raise ValueError(f"Delimiter {c!r} must be a single character.")
        if len(set(chars)) != len(chars):
            raise ValueError(f"Delimiters must be distinct, got {chars!r}.")
        return self

    def as_tuple(self) -> Tuple[str, str, str, Optional[str]]:
        return self.element, self.component, self.segment, self.release

X12_DEFAULT_DELIMITERS = DelimiterSet(element='*', component=':', segment='~')
EDIFACT_DEFAULT_DELIMITERS = DelimiterSet(element='+', component=':', segment="'", release='?')

def default_delimiters(dialect: Dialect) -> DelimiterSet:
    return EDIFACT_DEFAULT_DELIMITERS if dialect == Dialect.EDIFACT else X12_DEFAULT_DELIMITERS

class DocumentContext(BaseModel):
    """Single detection result consumed by the scanner and the interactive lookup."""
    dialect: Dialect
    version: str
    detected_version: Optional[str] = None
    delimiters: DelimiterSet

class ValidationResult(BaseModel):
    """Outcome of checking one value against one element schema. Always returned, never raised."""
    is_valid: bool
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    severity: Severity = Severity.WARNING
    suggestions: List[str] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, suggestions: Optional[List[str]] = None) -> "ValidationResult":
        return cls(is_valid=False, error_kind=kind, message=message, severity=Severity.ERROR,
                   suggestions=suggestions or [])

class Diagnostic(BaseModel):
    """A validation failure pinned to a single-line column range (end exclusive)."""
    line: int
    start_col: int
    end_col: int
    message: str
    severity: Severity
    kind: ErrorKind
    source: str = "EDI Validator"
    segment: Optional[str] = None
    element: Optional[int] = None
    component: Optional[int] = None

    @property
    def range(self) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        return (self.line, self.start_col), (self.line, self.end_col)

    @property
    def location(self) -> str:
        """Coordinate label such as 'DTM-01-02'."""
        if not self.segment:
            return ""
        label = self.segment
        if self.element is not None:
            label += f"-{self.element:02d}"
        if self.component is not None:
            label += f"-{self.component:02d}"
        return label

class ScanStatus(str, Enum):
    COMPLETED = "completed"
    NO_ENVELOPE = "no_envelope"

class ScanReport(BaseModel):
    """Result of one validation pass over a document."""
    status: ScanStatus
    context: Optional[DocumentContext] = None
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    lines_scanned: int = 0
    message: str = ""

    @property
    def ran(self) -> bool:
        return self.status == ScanStatus.COMPLETED

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.WARNING)
