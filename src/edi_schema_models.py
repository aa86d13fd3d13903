from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from code_tables import CODE_TABLES

# Segments that open or close a hierarchy level. They are never looked up in a
# document's allowed segment set.
BOUNDARY_SEGMENTS = frozenset({"ISA", "IEA", "GS", "GE", "ST", "SE"})


class DataKind(str, Enum):
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    TIME = "time"
    IDENTIFIER = "identifier"
    TEXT = "text"


# X12 data element type codes accepted as aliases in schema files.
_X12_TYPE_ALIASES = {
    "N0": DataKind.INTEGER,
    "N": DataKind.INTEGER,
    "N1": DataKind.DECIMAL,
    "N2": DataKind.DECIMAL,
    "R": DataKind.DECIMAL,
    "DT": DataKind.DATE,
    "TM": DataKind.TIME,
    "ID": DataKind.IDENTIFIER,
    "AN": DataKind.TEXT,
}


class FieldRule(BaseModel):
    """Declarative content rule for one element position of a segment."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    data_kind: DataKind = Field(validation_alias=AliasChoices("data_kind", "dataKind", "dataType"))
    min_len: int = Field(0, ge=0, validation_alias=AliasChoices("min_len", "minLength"))
    max_len: int = Field(..., ge=0, validation_alias=AliasChoices("max_len", "maxLength"))
    required: bool = False
    name: Optional[str] = None
    code_table: Optional[str] = Field(None, validation_alias=AliasChoices("code_table", "codeTable"))
    valid_codes: Optional[FrozenSet[str]] = Field(None, validation_alias=AliasChoices("valid_codes", "validCodes"))

    @field_validator("data_kind", mode="before")
    @classmethod
    def _accept_x12_type_codes(cls, value: Any) -> Any:
        if isinstance(value, str) and value.upper() in _X12_TYPE_ALIASES:
            return _X12_TYPE_ALIASES[value.upper()]
        return value

    @model_validator(mode="before")
    @classmethod
    def _resolve_code_table(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        table_name = data.get("code_table") or data.get("codeTable")
        if table_name and not (data.get("valid_codes") or data.get("validCodes")):
            if table_name not in CODE_TABLES:
                raise ValueError(f"Unknown code table '{table_name}'.")
            data = dict(data)
            data["valid_codes"] = frozenset(CODE_TABLES[table_name])
        return data

    @model_validator(mode="after")
    def _check_bounds(self) -> "FieldRule":
        if self.max_len < self.min_len:
            raise ValueError(f"max_len {self.max_len} is smaller than min_len {self.min_len}.")
        return self


def required_field_count(rules: Tuple[FieldRule, ...]) -> int:
    """Number of element positions a segment must carry to reach its last required rule."""
    for index in range(len(rules) - 1, -1, -1):
        if rules[index].required:
            return index + 1
    return 0


class SchemaEntry(BaseModel):
    """Legal segments and field rules for one document type (e.g. '810')."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    document_type_code: str = Field(validation_alias=AliasChoices("document_type_code", "documentTypeCode"))
    name: str = ""
    description: Optional[str] = None
    allowed_segments: Tuple[str, ...] = Field(validation_alias=AliasChoices("allowed_segments", "allowedSegments"))
    segment_rules: Dict[str, Tuple[FieldRule, ...]] = Field(
        default_factory=dict, validation_alias=AliasChoices("segment_rules", "segmentRules"))

    @field_validator("allowed_segments", mode="before")
    @classmethod
    def _normalize_allowed(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            seen = []
            for segment_id in value:
                segment_id = str(segment_id).upper()
                if segment_id not in seen:
                    seen.append(segment_id)
            return tuple(seen)
        return value

    @field_validator("segment_rules", mode="before")
    @classmethod
    def _normalize_rule_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(key).upper(): rules for key, rules in value.items()}
        return value

    @model_validator(mode="after")
    def _rules_refer_to_known_segments(self) -> "SchemaEntry":
        unknown = [seg_id for seg_id in self.segment_rules
                   if seg_id not in self.allowed_segments and seg_id not in BOUNDARY_SEGMENTS]
        if unknown:
            raise ValueError(f"Rules defined for segments outside the allowed set: {', '.join(unknown)}")
        return self

    def allows(self, segment_id: str) -> bool:
        return segment_id in self.allowed_segments

    def rules_for(self, segment_id: str) -> Optional[Tuple[FieldRule, ...]]:
        return self.segment_rules.get(segment_id)
