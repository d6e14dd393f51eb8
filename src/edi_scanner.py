import logging
from typing import List, Optional, Union

from cdm import (
    Dialect, DelimiterSet, Diagnostic, DocumentContext, NoEnvelopeError,
    ScanReport, ScanStatus, ValidationResult,
)
from edi_detection import detect_document
from edi_locator import Token, match_segment_code, split_components, split_elements, unescape
from edi_schema_models import CompositeDefinition, ElementRef
from edi_validators import validate_date_with_format, validate_element
from schema_manager import SchemaManager

logger = logging.getLogger(__name__)

DIAGNOSTIC_SOURCE = "EDI Validator"

# Composites whose second component is a date/time value formatted per the third (qualifier).
DATE_TIME_COMPOSITES = {"C507", "S004"}
FORMAT_VALUE_INDEX = 1
FORMAT_QUALIFIER_INDEX = 2

class EdiScanner:
    """
    Validates a whole document line by line against the schemas of its detected version.

    Lines are numbered from 0 and columns are character offsets into the line, so diagnostics
    can be placed directly in an editor buffer.
    """

    def __init__(self, schema_manager: SchemaManager):
        self.schema_manager = schema_manager

    def scan(self, text: str, dialect: Union[Dialect, str, None] = None) -> ScanReport:
        try:
            context = detect_document(text, dialect, self.schema_manager)
        except NoEnvelopeError as e:
            logger.warning(f"Validation skipped: {e}")
            return ScanReport(status=ScanStatus.NO_ENVELOPE, message=str(e))

        logger.info(f"Validating {context.dialect.value.upper()} document against version {context.version}")
        self.schema_manager.load(context.dialect, context.version)

        diagnostics: List[Diagnostic] = []
        lines = text.split("\n")
        for line_number, line in enumerate(lines):
            if not line.strip():
                continue
            try:
                diagnostics.extend(self.scan_line(line, line_number, context))
            except Exception as e:
                logger.error(f"Error validating line {line_number + 1}: {e}", exc_info=True)

        self._log_summary(context, len(lines), diagnostics)
        return ScanReport(
            status=ScanStatus.COMPLETED,
            context=context,
            diagnostics=diagnostics,
            lines_scanned=len(lines),
            message=f"{len(diagnostics)} issue(s) found",
        )

    def scan_line(self, line: str, line_number: int, context: DocumentContext) -> List[Diagnostic]:
        """Diagnostics for the first segment on one line."""
        delimiters = context.delimiters
        code = match_segment_code(line, delimiters)
        if not code:
            return []
        segment = self.schema_manager.get_segment(context.dialect, context.version, code)
        if segment is None:
            logger.debug(f"Unknown segment '{code}' on line {line_number + 1}; skipping")
            return []

        tokens = split_elements(line, delimiters)
        count = min(len(tokens) - 1, len(segment.elements))
        diagnostics: List[Diagnostic] = []
        for index in range(1, count + 1):
            token = tokens[index]
            if not unescape(token.raw, delimiters).strip():
                continue
            ref = segment.elements[index - 1]
            diagnostics.extend(self._check_element(code, index, ref, token, line_number, context))
        return diagnostics

    def _check_element(
        self, code: str, index: int, ref: ElementRef, token: Token,
        line_number: int, context: DocumentContext,
    ) -> List[Diagnostic]:
        composite = None
        if ref.names_composite:
            composite = self.schema_manager.get_composite(context.dialect, context.version, ref.type)
        if composite is not None:
            return self._check_composite(code, index, composite, token, line_number, context)

        element = self.schema_manager.get_element(context.dialect, context.version, ref.type)
        if element is None:
            logger.debug(f"Unknown element '{ref.type}' at {code}-{index:02d}; skipping")
            return []
        result = validate_element(unescape(token.raw, context.delimiters), element)
        if result.is_valid:
            return []
        return [_diagnostic(result, line_number, token.start, token.end, code, index)]

    def _check_composite(
        self, code: str, index: int, composite: CompositeDefinition, token: Token,
        line_number: int, context: DocumentContext,
    ) -> List[Diagnostic]:
        delimiters = context.delimiters
        components = split_components(token.raw, delimiters, offset=token.start)

        if len(components) == 1:
            # A lone value is read as the composite's first component.
            if not composite.components:
                return []
            element = self.schema_manager.get_element(context.dialect, context.version, composite.components[0].elementId)
            if element is None:
                return []
            result = validate_element(unescape(token.raw, delimiters), element)
            if result.is_valid:
                return []
            return [_diagnostic(result, line_number, token.start, token.end, code, index)]

        qualifier = format_qualifier(composite, components, delimiters)
        diagnostics: List[Diagnostic] = []
        for position, component in enumerate(components):
            if position >= len(composite.components):
                logger.debug(f"{code}-{index:02d} has more components than {composite.id} declares; extras not validated")
                break
            value = unescape(component.raw, delimiters)
            if not value.strip():
                continue

            if qualifier is not None and position == FORMAT_VALUE_INDEX:
                result = validate_date_with_format(value, qualifier)
            else:
                element = self.schema_manager.get_element(
                    context.dialect, context.version, composite.components[position].elementId)
                if element is None:
                    continue
                result = validate_element(value, element)

            if not result.is_valid:
                diagnostics.append(_diagnostic(result, line_number, component.start, component.end, code, index, position + 1))
        return diagnostics

    def _log_summary(self, context: DocumentContext, line_count: int, diagnostics: List[Diagnostic]):
        logger.info("--- EDI VALIDATION SUMMARY ---")
        logger.info(f"Dialect: {context.dialect.value.upper()}, version: {context.version}, lines: {line_count}")
        if not diagnostics:
            logger.info("No issues found.")
        else:
            logger.info(f"Found {len(diagnostics)} issue(s).")
            for d in diagnostics:
                logger.debug(f"  Line {d.line + 1} {d.location}: {d.message}")
        logger.info("------------------------------")

def format_qualifier(composite: CompositeDefinition, components: List[Token], delimiters: DelimiterSet) -> Optional[str]:
    """The format qualifier of a date/time composite, or None when the value is not format-qualified."""
    if composite.id not in DATE_TIME_COMPOSITES or len(components) <= FORMAT_QUALIFIER_INDEX:
        return None
    qualifier = unescape(components[FORMAT_QUALIFIER_INDEX].raw, delimiters).strip()
    return qualifier or None

def _diagnostic(
    result: ValidationResult, line_number: int, start: int, end: int,
    segment: str, element: int, component: Optional[int] = None,
) -> Diagnostic:
    return Diagnostic(
        line=line_number,
        start_col=start,
        end_col=end,
        message=result.message,
        severity=result.severity,
        kind=result.error_kind,
        source=DIAGNOSTIC_SOURCE,
        segment=segment,
        element=element,
        component=component,
    )
