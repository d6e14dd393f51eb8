import logging
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from cdm import Dialect, DocumentContext, ValidationResult
from edi_detection import detect_document
from edi_locator import Coordinate, element_value, locate, split_components, unescape
from edi_scanner import FORMAT_VALUE_INDEX, format_qualifier
from edi_schema_models import (
    CodeDefinition, ComponentRef, CompositeDefinition, ElementDefinition, ElementRef, SegmentDefinition,
)
from edi_validators import validate_date_with_format, validate_element
from schema_manager import SchemaManager

logger = logging.getLogger(__name__)

MAX_LISTED_CODES = 10

class SegmentLookup(BaseModel):
    """What sits under a caret placed on a segment code."""
    coordinate: Coordinate
    version: str
    segment: Optional[SegmentDefinition] = None

    @property
    def label(self) -> str:
        return self.coordinate.label

class ElementLookup(BaseModel):
    """What sits under a caret placed on an element or on one component of a composite."""
    coordinate: Coordinate
    version: str
    value: str = ""
    element_ref: Optional[ElementRef] = None
    composite: Optional[CompositeDefinition] = None
    component_ref: Optional[ComponentRef] = None
    element: Optional[ElementDefinition] = None
    validation: Optional[ValidationResult] = None
    translation: Optional[str] = None
    codes: List[CodeDefinition] = Field(default_factory=list)
    more_codes: int = 0

    @property
    def label(self) -> str:
        return self.coordinate.label

class EdiLookup:
    """
    Resolves a single caret position to its schema definitions and current value.

    Detection and splitting go through the same functions the scanner uses, so a lookup
    always agrees with the diagnostics shown for the same position.
    """

    def __init__(self, schema_manager: SchemaManager):
        self.schema_manager = schema_manager

    def lookup(
        self, text: str, line_number: int, character: int, dialect: Union[Dialect, str, None] = None,
    ) -> Union[SegmentLookup, ElementLookup, None]:
        """
        Args:
            text: Full document text.
            line_number: 0-based line of the caret.
            character: 0-based caret offset within that line.
            dialect: Optional explicit dialect; see `detect_document`.

        Returns:
            A SegmentLookup, an ElementLookup, or None when the line holds no segment.

        Raises:
            NoEnvelopeError: the dialect was not given and the text has no envelope.
        """
        lines = text.split("\n")
        if line_number < 0 or line_number >= len(lines):
            return None
        line = lines[line_number].rstrip("\r")

        context = detect_document(text, dialect, self.schema_manager)
        coordinate = locate(line, character, context.delimiters)
        if coordinate is None:
            return None

        segment = self.schema_manager.get_segment(context.dialect, context.version, coordinate.segment)
        if coordinate.element is None:
            return SegmentLookup(coordinate=coordinate, version=context.version, segment=segment)

        ref = None
        if segment is not None and coordinate.element <= len(segment.elements):
            ref = segment.elements[coordinate.element - 1]
        raw = element_value(line, coordinate.element, context.delimiters)

        if coordinate.component is not None and self._composite_for(ref, context) is None:
            # Plain elements are read whole even when the value holds the component separator (ISA16).
            coordinate = coordinate.model_copy(update={"component": None})

        if coordinate.component is not None:
            result = self._lookup_component(coordinate, ref, raw, context)
        else:
            result = self._lookup_element(coordinate, ref, raw, context)
        logger.debug(f"Lookup {result.label} = '{result.value}'")
        return result

    def _lookup_element(
        self, coordinate: Coordinate, ref: Optional[ElementRef], raw: str, context: DocumentContext,
    ) -> ElementLookup:
        value = unescape(raw, context.delimiters)
        lookup = ElementLookup(coordinate=coordinate, version=context.version, value=value, element_ref=ref)
        if ref is None:
            return lookup

        composite = self._composite_for(ref, context)
        if composite is not None and composite.components:
            # A single value in a composite slot is its first component.
            lookup.composite = composite
            lookup.component_ref = composite.components[0]
            element = self.schema_manager.get_element(context.dialect, context.version, composite.components[0].elementId)
        else:
            element = self.schema_manager.get_element(context.dialect, context.version, ref.type)

        self._describe(lookup, element)
        if element is not None and value.strip():
            lookup.validation = validate_element(value, element)
        return lookup

    def _lookup_component(
        self, coordinate: Coordinate, ref: Optional[ElementRef], raw: str, context: DocumentContext,
    ) -> ElementLookup:
        delimiters = context.delimiters
        components = split_components(raw, delimiters)
        position = coordinate.component - 1
        value = unescape(components[position].raw, delimiters) if position < len(components) else ""
        lookup = ElementLookup(coordinate=coordinate, version=context.version, value=value, element_ref=ref)
        if ref is None:
            return lookup

        composite = self._composite_for(ref, context)
        if composite is None or position >= len(composite.components):
            logger.debug(f"No composite definition for {coordinate.label}")
            return lookup

        lookup.composite = composite
        lookup.component_ref = composite.components[position]
        element = self.schema_manager.get_element(context.dialect, context.version, lookup.component_ref.elementId)
        self._describe(lookup, element)

        if not value.strip():
            return lookup
        qualifier = format_qualifier(composite, components, delimiters)
        if qualifier is not None and position == FORMAT_VALUE_INDEX:
            lookup.validation = validate_date_with_format(value, qualifier)
        elif element is not None:
            lookup.validation = validate_element(value, element)
        return lookup

    def _composite_for(self, ref: Optional[ElementRef], context: DocumentContext) -> Optional[CompositeDefinition]:
        """The composite a slot names, resolved the same way the scanner resolves it."""
        if ref is None or not ref.names_composite:
            return None
        return self.schema_manager.get_composite(context.dialect, context.version, ref.type)

    def _describe(self, lookup: ElementLookup, element: Optional[ElementDefinition]):
        if element is None:
            return
        lookup.element = element
        lookup.translation = element.describe_code(lookup.value)
        codes = element.codes or []
        lookup.codes = codes[:MAX_LISTED_CODES]
        lookup.more_codes = max(0, len(codes) - MAX_LISTED_CODES)
