from pydantic import BaseModel, Field, AliasChoices, field_validator
from typing import List, Optional, Dict, Any

from cdm import Dialect

# Version-specific schema definitions as delivered by a schema source.
# Field names follow the camelCase keys of the schema tables.

MANDATORY_REQUIREMENTS = {"M", "MANDATORY", "R", "REQUIRED"}

def _to_str(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value

class CodeDefinition(BaseModel):
    code: str
    description: str = ""

    coerce_code = field_validator("code", mode="before")(_to_str)

class ElementRef(BaseModel):
    """A slot in a segment: position label, requirement and the element or composite id it refers to."""
    position: str
    name: str = ""
    requirement: str = "C"
    type: str = Field(validation_alias=AliasChoices("type", "elementId", "id"))
    definition: Optional[str] = None

    coerce_to_str = field_validator("position", "type", mode="before")(_to_str)

    @property
    def is_mandatory(self) -> bool:
        return self.requirement.strip().upper() in MANDATORY_REQUIREMENTS

    @property
    def names_composite(self) -> bool:
        # EDIFACT convention: C = composite data element, S = service composite.
        return self.type[:1] in ("C", "S")

class SegmentDefinition(BaseModel):
    code: str = Field(validation_alias=AliasChoices("code", "id"))
    name: str = ""
    description: str = ""
    elements: List[ElementRef] = Field(default_factory=list)

class ElementDefinition(BaseModel):
    id: str = Field(validation_alias=AliasChoices("id", "elementNumber"))
    name: str = ""
    definition: str = ""
    dataType: str = "AN"
    minLength: int = 0
    maxLength: int = 0
    codes: Optional[List[CodeDefinition]] = None

    coerce_id = field_validator("id", mode="before")(_to_str)

    @field_validator("minLength", "maxLength", mode="before")
    @classmethod
    def none_is_unbounded(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("dataType", mode="before")
    @classmethod
    def default_type(cls, value: Any) -> Any:
        return value or "AN"

    def describe_code(self, value: str) -> Optional[str]:
        for code in self.codes or []:
            if code.code == value:
                return code.description
        return None

class ComponentRef(BaseModel):
    position: str
    elementId: str
    name: str = ""
    requirement: str = "C"

    coerce_to_str = field_validator("position", "elementId", mode="before")(_to_str)

    @property
    def is_mandatory(self) -> bool:
        return self.requirement.strip().upper() in MANDATORY_REQUIREMENTS

class CompositeDefinition(BaseModel):
    id: str = Field(validation_alias=AliasChoices("id", "elementNumber"))
    name: str = ""
    definition: str = ""
    components: List[ComponentRef] = Field(default_factory=list)

class VersionSchemas(BaseModel):
    """All tables loaded for one (dialect, version) pair."""
    dialect: Dialect
    version: str
    segments: Dict[str, SegmentDefinition] = Field(default_factory=dict)
    elements: Dict[str, ElementDefinition] = Field(default_factory=dict)
    composites: Dict[str, CompositeDefinition] = Field(default_factory=dict)
