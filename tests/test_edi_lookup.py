import pytest

from cdm import ErrorKind, NoEnvelopeError
from edi_lookup import EdiLookup, ElementLookup, SegmentLookup
from edi_scanner import EdiScanner

pytestmark = pytest.mark.integration

@pytest.fixture
def lookup(schema_manager):
    return EdiLookup(schema_manager)

class TestX12Lookup:

    def test_caret_on_segment_code(self, lookup, valid_850_edi_string):
        result = lookup.lookup(valid_850_edi_string, 2, 1)

        assert isinstance(result, SegmentLookup)
        assert result.label == "ST"
        assert result.version == "004010"
        assert result.segment.name == "Transaction Set Header"

    def test_caret_before_first_delimiter_is_still_the_segment(self, lookup, valid_850_edi_string):
        assert isinstance(lookup.lookup(valid_850_edi_string, 2, 2), SegmentLookup)

    def test_element_with_translation(self, lookup, valid_850_edi_string):
        for caret in (3, 4, 6):
            result = lookup.lookup(valid_850_edi_string, 2, caret)
            assert isinstance(result, ElementLookup)
            assert result.label == "ST-01"
            assert result.value == "850"
            assert result.translation == "Purchase Order"
            assert result.element_ref.type == "143"
            assert result.validation.is_valid

    def test_code_list_is_capped(self, lookup, valid_850_edi_string):
        result = lookup.lookup(valid_850_edi_string, 3, 5)

        assert result.label == "BEG-01"
        assert result.translation == "Original"
        assert len(result.codes) == 10
        assert result.more_codes == 2

    def test_invalid_value_is_reported(self, lookup, invalid_850_edi_string):
        result = lookup.lookup(invalid_850_edi_string, 4, 10)

        assert result.label == "DTM-02"
        assert result.value == "20230229"
        assert not result.validation.is_valid
        assert result.validation.message == "Invalid day 29 for month 2"
        assert result.translation is None

    def test_empty_element_has_no_validation(self, lookup, valid_850_edi_string):
        # BEG04 is empty: "BEG*00*SA*PO-12345**20240715~"
        result = lookup.lookup(valid_850_edi_string, 3, 19)

        assert result.label == "BEG-04"
        assert result.value == ""
        assert result.validation is None
        assert result.element.id == "328"

    def test_component_separator_element(self, lookup, valid_850_edi_string, isa_line):
        """ISA16 holds the component separator itself and is still read as one plain element."""
        result = lookup.lookup(valid_850_edi_string, 0, len(isa_line) - 2)

        assert result.label == "ISA-16"
        assert result.coordinate.component is None
        assert result.value == ">"
        assert result.element.id == "I15"
        assert result.validation.is_valid

    def test_plain_element_containing_component_separator(self, lookup, schema_manager, valid_850_edi_string):
        text = valid_850_edi_string.replace("*PO-12345*", "*PO>12345*")
        result = lookup.lookup(text, 3, 12)

        assert result.label == "BEG-03"
        assert result.coordinate.component is None
        assert result.value == "PO>12345"
        assert result.element.id == "324"
        assert result.validation.is_valid
        assert EdiScanner(schema_manager).scan(text).diagnostics == []

    def test_unknown_segment(self, lookup, valid_850_edi_string):
        text = valid_850_edi_string.replace("CTT*1~", "ZZZ*1~")
        result = lookup.lookup(text, 6, 4)

        assert result.label == "ZZZ-01"
        assert result.value == "1"
        assert result.element_ref is None
        assert result.element is None

    def test_crlf_document(self, lookup, valid_850_edi_string):
        result = lookup.lookup(valid_850_edi_string.replace("\n", "\r\n"), 2, 4)
        assert result.value == "850"

    @pytest.mark.parametrize("line_number", [-1, 10, 99])
    def test_line_out_of_range(self, lookup, valid_850_edi_string, line_number):
        assert lookup.lookup(valid_850_edi_string, line_number, 0) is None

    def test_line_without_segment(self, lookup, valid_850_edi_string):
        text = valid_850_edi_string.replace("CTT*1~", "\nCTT*1~")
        assert lookup.lookup(text, 6, 0) is None

    def test_no_envelope(self, lookup):
        with pytest.raises(NoEnvelopeError):
            lookup.lookup("ST*850*0001~", 0, 4)

    def test_explicit_dialect_on_a_fragment(self, st_schema_manager):
        result = EdiLookup(st_schema_manager).lookup("ST*999*0001~", 0, 4, dialect="x12")

        assert result.label == "ST-01"
        assert result.validation.error_kind == ErrorKind.INVALID_CODE
        assert [c.code for c in result.codes] == ["810", "850"]

class TestEdifactLookup:

    def test_date_component_uses_format_qualifier(self, lookup, valid_orders_edifact_string):
        result = lookup.lookup(valid_orders_edifact_string, 4, 10)

        assert result.label == "DTM-01-02"
        assert result.value == "20240715"
        assert result.composite.id == "C507"
        assert result.component_ref.elementId == "2380"
        assert result.validation.is_valid

    def test_date_component_format_violation(self, lookup, valid_orders_edifact_string):
        text = valid_orders_edifact_string.replace("DTM+137:20240715:102'", "DTM+137:240115:102'")
        result = lookup.lookup(text, 4, 10)

        assert result.validation.error_kind == ErrorKind.LENGTH
        assert result.validation.message == "Invalid CCYYMMDD length: 6 (expected 8)"

    def test_qualifier_component(self, lookup, valid_orders_edifact_string):
        result = lookup.lookup(valid_orders_edifact_string, 4, 5)

        assert result.label == "DTM-01-01"
        assert result.value == "137"
        assert result.element.id == "2005"
        assert result.translation == "Document/message date/time"

    def test_single_value_composite(self, lookup, valid_orders_edifact_string):
        result = lookup.lookup(valid_orders_edifact_string, 3, 5)

        assert result.label == "BGM-01"
        assert result.coordinate.component is None
        assert result.composite.id == "C002"
        assert result.component_ref.elementId == "1001"
        assert result.translation == "Order"

    def test_escaped_value(self, lookup, valid_orders_edifact_string):
        result = lookup.lookup(valid_orders_edifact_string, 6, 15)

        assert result.label == "FTX-04"
        assert result.value == "Price + tax included"
