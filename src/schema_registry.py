import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from edi_errors import SchemaLoadError
from edi_schema_models import FieldRule, SchemaEntry

logger = logging.getLogger(__name__)

BUILTIN_SCHEMA_PATH = Path(__file__).parent / "schemas"


def _rule(kind: str, min_len: int, max_len: int, name: str) -> FieldRule:
    return FieldRule(data_kind=kind, min_len=min_len, max_len=max_len, required=True, name=name)


# Envelope and group control segments. Only applied when control segment
# validation is switched on in the parser settings.
CONTROL_SEGMENT_RULES: Dict[str, Tuple[FieldRule, ...]] = {
    "ISA": (
        _rule("ID", 2, 2, "Authorization Information Qualifier"),
        _rule("AN", 10, 10, "Authorization Information"),
        _rule("ID", 2, 2, "Security Information Qualifier"),
        _rule("AN", 10, 10, "Security Information"),
        _rule("ID", 2, 2, "Interchange ID Qualifier"),
        _rule("AN", 15, 15, "Interchange Sender ID"),
        _rule("ID", 2, 2, "Interchange ID Qualifier"),
        _rule("AN", 15, 15, "Interchange Receiver ID"),
        _rule("DT", 6, 6, "Interchange Date"),
        _rule("TM", 4, 4, "Interchange Time"),
        _rule("ID", 1, 1, "Repetition Separator"),
        _rule("ID", 5, 5, "Interchange Control Version Number"),
        _rule("N0", 9, 9, "Interchange Control Number"),
        _rule("ID", 1, 1, "Acknowledgment Requested"),
        _rule("ID", 1, 1, "Usage Indicator"),
        _rule("AN", 1, 1, "Component Element Separator"),
    ),
    "GS": (
        _rule("ID", 2, 2, "Functional Identifier Code"),
        _rule("AN", 2, 15, "Application Sender's Code"),
        _rule("AN", 2, 15, "Application Receiver's Code"),
        _rule("DT", 8, 8, "Date"),
        _rule("TM", 4, 6, "Time"),
        _rule("N0", 1, 9, "Group Control Number"),
        _rule("ID", 1, 2, "Responsible Agency Code"),
        _rule("AN", 1, 12, "Version / Release / Industry Identifier Code"),
    ),
    "GE": (
        _rule("N0", 1, 6, "Number of Transaction Sets Included"),
        _rule("N0", 1, 9, "Group Control Number"),
    ),
    "IEA": (
        _rule("N0", 1, 5, "Number of Included Functional Groups"),
        _rule("N0", 9, 9, "Interchange Control Number"),
    ),
}


def load_schema_file(schema_file: Union[str, Path]) -> SchemaEntry:
    """Reads one JSON schema file into a SchemaEntry."""
    schema_file = Path(schema_file)
    try:
        with open(schema_file, 'r') as f:
            schema_data = json.load(f)
        return SchemaEntry.model_validate(schema_data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise SchemaLoadError(f"Failed to load schema {schema_file.name}: {e}") from e


@lru_cache(maxsize=1)
def _builtin_entries() -> Tuple[SchemaEntry, ...]:
    entries = []
    for schema_file in sorted(BUILTIN_SCHEMA_PATH.glob("*.json")):
        entries.append(load_schema_file(schema_file))
    logger.debug(f"Loaded {len(entries)} built-in document schemas from {BUILTIN_SCHEMA_PATH}")
    return tuple(entries)


class DocumentSchemaRegistry:
    """
    Maps a document type code (ST01) to its SchemaEntry.

    A document type without a registered schema is not an error: the parser
    falls back to structural validation only. New document types are added by
    registering an entry or dropping a JSON file into a schema directory.
    """

    def __init__(self, schema_dir: Optional[Union[str, Path]] = None, include_builtin: bool = True):
        self._schemas: Dict[str, SchemaEntry] = {}
        if include_builtin:
            for entry in _builtin_entries():
                self._schemas[entry.document_type_code] = entry
        if schema_dir is not None:
            self.load_directory(schema_dir)

    def schema_for(self, document_type_code: str) -> Optional[SchemaEntry]:
        return self._schemas.get(document_type_code)

    def rules_for(self, document_type_code: str, segment_id: str) -> Optional[Tuple[FieldRule, ...]]:
        schema = self.schema_for(document_type_code)
        if schema is None:
            return None
        return schema.rules_for(segment_id)

    def register(self, entry: SchemaEntry) -> None:
        if entry.document_type_code in self._schemas:
            logger.info(f"Replacing registered schema for document type {entry.document_type_code}")
        self._schemas[entry.document_type_code] = entry

    def load_directory(self, schema_dir: Union[str, Path]) -> int:
        """
        Registers every ``*.json`` schema found in ``schema_dir``.

        Files that fail to load are logged and skipped.

        Returns:
            The number of schemas registered.
        """
        schema_path = Path(schema_dir)
        if not schema_path.exists():
            logger.warning(f"Schema directory does not exist: {schema_path}")
            return 0

        logger.info(f"Loading document schemas from: {schema_path}")
        loaded = 0
        for schema_file in sorted(schema_path.glob("*.json")):
            try:
                entry = load_schema_file(schema_file)
            except SchemaLoadError as e:
                logger.error(str(e))
                continue
            self.register(entry)
            loaded += 1
            logger.info(f"Loaded schema for document type {entry.document_type_code}: {schema_file.name}")
        return loaded

    def document_types(self) -> List[str]:
        return sorted(self._schemas.keys())

    def __contains__(self, document_type_code: str) -> bool:
        return document_type_code in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)


def default_registry() -> DocumentSchemaRegistry:
    """A fresh registry holding the built-in document schemas (810 invoice, 824 application advice)."""
    return DocumentSchemaRegistry()
