import pytest
import json
from pathlib import Path

from cdm import Dialect
from schema_manager import FileSchemaSource, InMemorySchemaSource, SchemaManager

@pytest.fixture
def tmp_schema_dir(tmp_path: Path) -> Path:
    """Create a temporary schema tree with one good version and one damaged version."""
    good = tmp_path / "x12" / "005010"
    good.mkdir(parents=True)
    (good / "segments.json").write_text(json.dumps({
        "REF": {"name": "Reference Information", "elements": [
            {"position": "01", "name": "Reference Identification Qualifier", "requirement": "M", "type": "128"},
            {"position": "02", "name": "Reference Identification", "requirement": "X", "elementId": 127},
        ]},
    }))
    (good / "elements.json").write_text(json.dumps({
        "128": {"name": "Reference Identification Qualifier", "dataType": "ID", "minLength": 2, "maxLength": 3,
                "codes": [{"code": "PO", "description": "Purchase Order Number"}, {"code": 12, "description": "Billing Account"}]},
        "127": {"name": "Reference Identification", "minLength": 1, "maxLength": 50},
        "bad-type": "not an object",
        "bad-bounds": {"name": "Broken", "minLength": "many"},
    }))

    damaged = tmp_path / "x12" / "004010"
    damaged.mkdir(parents=True)
    (damaged / "segments.json").write_text("{'invalid_json':}")
    (damaged / "elements.json").write_text(json.dumps(["not", "a", "table"]))

    (tmp_path / "edifact" / "d01b").mkdir(parents=True)
    return tmp_path

def test_load_version(tmp_schema_dir: Path):
    manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
    schemas = manager.load(Dialect.X12, "005010")
    assert set(schemas.segments) == {"REF"}
    assert set(schemas.elements) == {"128", "127"}  # Malformed entries are skipped
    assert schemas.composites == {}
    assert manager.is_loaded(Dialect.X12, "005010")

def test_definitions_are_typed(tmp_schema_dir: Path):
    manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
    segment = manager.get_segment(Dialect.X12, "005010", "REF")
    assert segment.code == "REF"
    assert segment.elements[0].is_mandatory
    assert not segment.elements[1].is_mandatory
    assert segment.elements[1].type == "127"

    element = manager.get_element(Dialect.X12, "005010", "128")
    assert element.id == "128"
    assert element.dataType == "ID"
    assert [c.code for c in element.codes] == ["PO", "12"]
    assert element.describe_code("PO") == "Purchase Order Number"
    assert element.describe_code("ZZ") is None

    defaults = manager.get_element(Dialect.X12, "005010", "127")
    assert defaults.dataType == "AN"
    assert defaults.codes is None

def test_unknown_codes_are_none(tmp_schema_dir: Path):
    manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
    assert manager.get_segment(Dialect.X12, "005010", "ZZZ") is None
    assert manager.get_element(Dialect.X12, "005010", "9999") is None
    assert manager.get_composite(Dialect.EDIFACT, "d01b", "C507") is None

def test_damaged_tables_load_as_empty(tmp_schema_dir: Path):
    manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
    schemas = manager.load(Dialect.X12, "004010")
    assert schemas.segments == {}
    assert schemas.elements == {}

def test_missing_version_loads_as_empty(tmp_schema_dir: Path):
    manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
    schemas = manager.load(Dialect.EDIFACT, "d96a")
    assert schemas.segments == {}
    assert manager.get_segment(Dialect.EDIFACT, "d96a", "UNH") is None

def test_load_is_idempotent(tmp_schema_dir: Path):
    manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
    first = manager.load(Dialect.X12, "005010")
    second = manager.load(Dialect.X12, "005010")
    assert first is second
    assert manager.loaded_versions() == [(Dialect.X12, "005010")]

def test_reload_drops_the_cache(tmp_schema_dir: Path):
    manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
    manager.load(Dialect.X12, "005010")
    manager.reload()
    assert manager.loaded_versions() == []
    assert manager.get_segment(Dialect.X12, "005010", "REF") is not None

def test_list_versions(tmp_schema_dir: Path):
    manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
    assert manager.list_versions(Dialect.X12) == ["004010", "005010"]
    assert manager.list_versions(Dialect.EDIFACT) == ["d01b"]
    assert SchemaManager(schema_base_path=str(tmp_schema_dir / "missing")).list_versions(Dialect.X12) == []

class TestResolveVersion:

    def test_detected_version_when_present(self, tmp_schema_dir: Path):
        manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
        assert manager.resolve_version(Dialect.X12, "005010") == "005010"
        assert manager.resolve_version(Dialect.EDIFACT, "D01B") == "d01b"

    def test_first_available_fallback(self, tmp_schema_dir: Path):
        manager = SchemaManager(schema_base_path=str(tmp_schema_dir))
        # 004010 precedes 005010 in the fallback order and exists (even though damaged).
        assert manager.resolve_version(Dialect.X12, "003050") == "004010"
        assert manager.resolve_version(Dialect.EDIFACT, None) == "d01b"

    def test_first_fallback_when_nothing_exists(self, tmp_path: Path):
        manager = SchemaManager(schema_base_path=str(tmp_path))
        assert manager.resolve_version(Dialect.X12, "003050") == "004010"
        assert manager.resolve_version(Dialect.EDIFACT, "d12a") == "d96a"

class TestSchemaSources:

    def test_file_source_paths(self, tmp_path: Path):
        source = FileSchemaSource(str(tmp_path))
        assert source.version_path(Dialect.EDIFACT, "d96a") == tmp_path / "edifact" / "d96a"
        assert source.load_table(Dialect.EDIFACT, "d96a", "segments") is None

    def test_in_memory_source(self):
        manager = SchemaManager(source=InMemorySchemaSource({
            "edifact": {"d96a": {
                "segments": {"DTM": {"name": "Date/time/period", "elements": [
                    {"position": "010", "name": "Date/time/period", "requirement": "M", "type": "C507"}]}},
                "composites": {"C507": {"name": "Date/time/period", "components": [
                    {"position": "010", "elementId": "2005", "name": "Qualifier", "requirement": "M"}]}},
            }},
        }))
        assert manager.list_versions(Dialect.EDIFACT) == ["d96a"]
        assert manager.resolve_version(Dialect.EDIFACT, "d96a") == "d96a"
        composite = manager.get_composite(Dialect.EDIFACT, "d96a", "C507")
        assert composite.id == "C507"
        assert composite.components[0].elementId == "2005"
        assert composite.components[0].is_mandatory
        assert manager.get_segment(Dialect.EDIFACT, "d96a", "DTM").elements[0].names_composite

    def test_x12_has_no_composite_table(self):
        source = InMemorySchemaSource({"x12": {"004010": {"composites": {"C001": {"name": "Composite"}}}}})
        manager = SchemaManager(source=source)
        assert manager.get_composite(Dialect.X12, "004010", "C001") is None

    def test_bundled_fixtures(self, schema_manager: SchemaManager):
        schemas = schema_manager.load(Dialect.EDIFACT, "d96a")
        assert "C507" in schemas.composites
        assert schema_manager.get_element(Dialect.X12, "004010", "143").describe_code("850") == "Purchase Order"
