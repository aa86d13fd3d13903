from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Parsed representation of one inbound transmission.
# Entities are frozen: the parser builds them from private builders and
# hands the finished tree to collaborators.


class IssueLevel(str, Enum):
    TRANSMISSION = "transmission"
    ENVELOPE = "envelope"
    GROUP = "group"
    TRANSACTION = "transaction"
    SEGMENT = "segment"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class IssueKind(str, Enum):
    MALFORMED_SEGMENT = "MalformedSegmentError"
    STRUCTURAL = "StructuralError"
    FIELD_TYPE = "FieldTypeError"
    FIELD_LENGTH = "FieldLengthError"
    MANDATORY_FIELD = "MandatoryFieldError"
    SCHEMA_ARITY = "SchemaArityError"
    UNEXPECTED_SEGMENT = "UnexpectedSegmentError"
    UNTERMINATED_ENTITY = "UnterminatedEntityError"
    INVALID_CODE = "InvalidCodeError"


class ValidationIssue(BaseModel):
    """Represents one problem found while parsing or validating."""
    model_config = ConfigDict(frozen=True)

    level: IssueLevel
    subject_id: str
    severity: Severity = Severity.ERROR
    kind: IssueKind
    message: str
    line_number: Optional[int] = None
    segment_id: Optional[str] = None
    element_position: Optional[int] = None


class Segment(BaseModel):
    """Represents a single EDI segment. Field 0 is the segment identifier."""
    model_config = ConfigDict(frozen=True)

    fields: Tuple[str, ...]
    line_number: Optional[int] = None

    @property
    def segment_id(self) -> str:
        return self.fields[0]

    @property
    def field_count(self) -> int:
        return len(self.fields)

    def get_element(self, position: int) -> Optional[str]:
        """Retrieves the value of an element by its position (1-based index)."""
        if 1 <= position < len(self.fields):
            return self.fields[position]
        return None

    def raw(self, delimiter: str = "*") -> str:
        return delimiter.join(self.fields)


class TransactionSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    control_number: str
    trailer_control_number: Optional[str] = None
    document_type_code: str
    stated_segment_count: Optional[int] = None
    actual_segment_count: int = 0
    segments: Tuple[Segment, ...] = ()
    issues: Tuple[ValidationIssue, ...] = ()
    terminated: bool = False
    group_control_number: str = ""

    @property
    def is_valid(self) -> bool:
        return (self.control_number == self.trailer_control_number
                and self.stated_segment_count == self.actual_segment_count)

    @property
    def header(self) -> Segment:
        return self.segments[0]

    @property
    def trailer(self) -> Optional[Segment]:
        return self.segments[-1] if self.terminated else None


class FunctionalGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    control_number: str
    trailer_control_number: Optional[str] = None
    functional_id_code: str
    application_sender: Optional[str] = None
    application_receiver: Optional[str] = None
    version: Optional[str] = None
    stated_transaction_count: Optional[int] = None
    actual_transaction_count: int = 0
    transactions: Tuple[TransactionSet, ...] = ()
    issues: Tuple[ValidationIssue, ...] = ()
    terminated: bool = False
    # Back reference to the owning envelope by key, not by object.
    envelope_control_number: str = ""

    @property
    def is_valid(self) -> bool:
        return (self.control_number == self.trailer_control_number
                and self.stated_transaction_count == self.actual_transaction_count)


class Envelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    control_number: str
    trailer_control_number: Optional[str] = None
    sender_id: str = ""
    receiver_id: str = ""
    timestamp: Optional[datetime] = None
    stated_group_count: Optional[int] = None
    actual_group_count: int = 0
    groups: Tuple[FunctionalGroup, ...] = ()
    issues: Tuple[ValidationIssue, ...] = ()
    terminated: bool = False

    @property
    def is_valid(self) -> bool:
        return (self.control_number == self.trailer_control_number
                and self.stated_group_count == self.actual_group_count)

    @property
    def transaction_count(self) -> int:
        return sum(len(group.transactions) for group in self.groups)


class ParseResult(BaseModel):
    """The parsed envelope tree together with the flat validation report."""
    model_config = ConfigDict(frozen=True)

    envelopes: Tuple[Envelope, ...] = ()
    issues: Tuple[ValidationIssue, ...] = Field(default=(), description="Every issue, in the order it was found.")
    lines_read: int = 0

    @property
    def total_group_count(self) -> int:
        return sum(len(envelope.groups) for envelope in self.envelopes)

    @property
    def total_transaction_count(self) -> int:
        return sum(envelope.transaction_count for envelope in self.envelopes)

    @property
    def is_valid(self) -> bool:
        return not any(issue.severity == Severity.ERROR for issue in self.issues)

    def issues_of_kind(self, kind: IssueKind) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.kind == kind]

    def issues_at(self, level: IssueLevel) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.level == level]

    def iter_transactions(self):
        for envelope in self.envelopes:
            for group in envelope.groups:
                yield from group.transactions
