import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from cdm import Dialect
from edi_schema_models import CompositeDefinition, ElementDefinition, SegmentDefinition, VersionSchemas

logger = logging.getLogger(__name__)

SEGMENTS_TABLE = "segments"
ELEMENTS_TABLE = "elements"
COMPOSITES_TABLE = "composites"

TABLES_BY_DIALECT: Dict[Dialect, Tuple[str, ...]] = {
    Dialect.X12: (SEGMENTS_TABLE, ELEMENTS_TABLE),
    Dialect.EDIFACT: (SEGMENTS_TABLE, ELEMENTS_TABLE, COMPOSITES_TABLE),
}

FALLBACK_VERSIONS: Dict[Dialect, List[str]] = {
    Dialect.X12: ["004010", "005010", "008010", "003070", "003060", "003010", "007020"],
    Dialect.EDIFACT: ["d96a", "d01b", "d03a", "d98b", "d21a"],
}

ModelT = TypeVar("ModelT", bound=BaseModel)

class FileSchemaSource:
    """
    Reads schema tables from `<base>/<dialect>/<version>/<table>.json`.
    Each table is a JSON object mapping a code to its definition.
    """

    def __init__(self, schema_base_path: str = "schemas"):
        self.schema_base_path = Path(schema_base_path)

    def version_path(self, dialect: Dialect, version: str) -> Path:
        return self.schema_base_path / dialect.value / version

    def has_version(self, dialect: Dialect, version: str) -> bool:
        return self.version_path(dialect, version).is_dir()

    def list_versions(self, dialect: Dialect) -> List[str]:
        dialect_dir = self.schema_base_path / dialect.value
        if not dialect_dir.is_dir():
            return []
        return sorted(p.name for p in dialect_dir.iterdir() if p.is_dir())

    def load_table(self, dialect: Dialect, version: str, table: str) -> Optional[Dict[str, Any]]:
        table_path = self.version_path(dialect, version) / f"{table}.json"
        if not table_path.exists():
            logger.debug(f"Schema table not present: {table_path}")
            return None
        try:
            with open(table_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load schema table {table_path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Schema table {table_path} is not a JSON object; ignoring it.")
            return None
        return data

class InMemorySchemaSource:
    """Serves schema tables from nested dicts: {dialect: {version: {table: {code: definition}}}}."""

    def __init__(self, tables: Optional[Dict[Any, Dict[str, Dict[str, Dict[str, Any]]]]] = None):
        self._tables: Dict[Dialect, Dict[str, Dict[str, Dict[str, Any]]]] = {}
        for dialect, versions in (tables or {}).items():
            self._tables[Dialect(dialect)] = versions

    def has_version(self, dialect: Dialect, version: str) -> bool:
        return version in self._tables.get(dialect, {})

    def list_versions(self, dialect: Dialect) -> List[str]:
        return sorted(self._tables.get(dialect, {}).keys())

    def load_table(self, dialect: Dialect, version: str, table: str) -> Optional[Dict[str, Any]]:
        return self._tables.get(dialect, {}).get(version, {}).get(table)

class SchemaManager:
    """
    Version-qualified schema store.
    Loads segment, element and composite tables on demand from a schema source and keeps them
    for the lifetime of this instance. Unknown codes are reported as None, never as errors.
    """

    def __init__(self, source: Any = None, schema_base_path: str = "schemas"):
        self.source = source if source is not None else FileSchemaSource(schema_base_path)
        self._schemas: Dict[Tuple[Dialect, str], VersionSchemas] = {}

    def _parse_table(self, raw: Optional[Dict[str, Any]], model: Type[ModelT], id_field: str, label: str) -> Dict[str, ModelT]:
        parsed: Dict[str, ModelT] = {}
        for code, data in (raw or {}).items():
            if not isinstance(data, dict):
                logger.warning(f"Skipping {label} '{code}': definition is not an object.")
                continue
            try:
                parsed[code] = model.model_validate({id_field: code, **data})
            except ValidationError as e:
                logger.warning(f"Skipping {label} '{code}': {e.error_count()} validation error(s).")
        return parsed

    def load(self, dialect: Dialect, version: str) -> VersionSchemas:
        """Load the tables for (dialect, version). Repeated calls are no-ops."""
        key = (dialect, version)
        if key in self._schemas:
            return self._schemas[key]

        logger.info(f"Loading {dialect.value.upper()} {version} schemas...")
        tables = TABLES_BY_DIALECT[dialect]
        schemas = VersionSchemas(
            dialect=dialect,
            version=version,
            segments=self._parse_table(self.source.load_table(dialect, version, SEGMENTS_TABLE), SegmentDefinition, "code", "segment"),
            elements=self._parse_table(self.source.load_table(dialect, version, ELEMENTS_TABLE), ElementDefinition, "id", "element"),
            composites=self._parse_table(
                self.source.load_table(dialect, version, COMPOSITES_TABLE) if COMPOSITES_TABLE in tables else None,
                CompositeDefinition, "id", "composite",
            ),
        )
        logger.info(
            f"Loaded {len(schemas.segments)} segments, {len(schemas.elements)} elements, "
            f"{len(schemas.composites)} composites for {dialect.value.upper()} {version}"
        )
        # Last writer wins; concurrent loads of the same version produce identical values.
        self._schemas[key] = schemas
        return schemas

    def is_loaded(self, dialect: Dialect, version: str) -> bool:
        return (dialect, version) in self._schemas

    def loaded_versions(self) -> List[Tuple[Dialect, str]]:
        return list(self._schemas.keys())

    def list_versions(self, dialect: Dialect) -> List[str]:
        return self.source.list_versions(dialect)

    def resolve_version(self, dialect: Dialect, detected_version: Optional[str]) -> str:
        """
        Pick the schema version to validate against.

        The detected version wins when the source has it; otherwise the first available fallback,
        otherwise the first fallback unconditionally (everything then reads as unknown).
        """
        fallbacks = FALLBACK_VERSIONS[dialect]
        if detected_version:
            version = detected_version.lower()
            if self.is_loaded(dialect, version) or self.source.has_version(dialect, version):
                return version
            logger.info(f"Version {version} not found, trying fallbacks...")
        for fallback in fallbacks:
            if self.source.has_version(dialect, fallback):
                logger.info(f"Using fallback version: {fallback}")
                return fallback
        logger.warning(f"No {dialect.value.upper()} schemas available; using {fallbacks[0]} with empty tables.")
        return fallbacks[0]

    def _tables(self, dialect: Dialect, version: str) -> VersionSchemas:
        return self._schemas.get((dialect, version)) or self.load(dialect, version)

    def get_segment(self, dialect: Dialect, version: str, code: str) -> Optional[SegmentDefinition]:
        return self._tables(dialect, version).segments.get(code)

    def get_element(self, dialect: Dialect, version: str, element_id: str) -> Optional[ElementDefinition]:
        return self._tables(dialect, version).elements.get(element_id)

    def get_composite(self, dialect: Dialect, version: str, composite_id: str) -> Optional[CompositeDefinition]:
        return self._tables(dialect, version).composites.get(composite_id)

    def reload(self):
        """Drop every cached version; the next lookup reloads from the source."""
        self._schemas.clear()
