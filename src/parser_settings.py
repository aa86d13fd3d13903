import json
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class UnexpectedSegmentPolicy(str, Enum):
    """What to do with a segment id the document's schema does not allow."""
    REPORT = "report"
    WARN = "warn"
    IGNORE = "ignore"


class ParserSettings(BaseModel):
    """Read-only settings consumed by the parser and the processing service."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    delimiter: str = Field('*', description="Element delimiter, a single character.")
    segment_terminator: Optional[str] = Field('~', alias="segmentTerminator",
                                              description="Trailing segment terminator stripped from each line.")
    unexpected_segment_policy: UnexpectedSegmentPolicy = Field(UnexpectedSegmentPolicy.REPORT,
                                                               alias="unexpectedSegmentPolicy")
    validate_control_segments: bool = Field(False, alias="validateControlSegments")
    detect_delimiter: bool = Field(False, alias="detectDelimiter",
                                   description="Take the element delimiter from the fourth character of each ISA.")
    schema_dir: Optional[str] = Field(None, alias="schemaDir")

    @field_validator("delimiter")
    @classmethod
    def _single_character(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("delimiter must be exactly one character")
        if value.isalnum() or value in ('\r', '\n'):
            raise ValueError(f"'{value}' cannot be used as an element delimiter")
        return value

    @field_validator("segment_terminator")
    @classmethod
    def _empty_terminator_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


def load_settings(settings_file: Union[str, Path]) -> ParserSettings:
    """Loads ParserSettings from a JSON file."""
    settings_path = Path(settings_file)
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with open(settings_path, 'r') as f:
        data = json.load(f)
    try:
        settings = ParserSettings.model_validate(data)
    except ValidationError as e:
        logger.error(f"Invalid settings in {settings_path}: {e}")
        raise
    logger.info(f"Loaded settings from {settings_path}")
    return settings
