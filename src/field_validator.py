import logging
import re
from datetime import datetime
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from edi_models import IssueKind, IssueLevel, Segment, Severity, ValidationIssue
from edi_schema_models import DataKind, FieldRule, required_field_count

logger = logging.getLogger(__name__)

_INTEGER_RE = re.compile(r'[+-]?[0-9]+')
_DECIMAL_RE = re.compile(r'[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?')
_DIGITS_RE = re.compile(r'[0-9]+')


class ParsedValue(BaseModel):
    """Outcome of reading an element as its declared kind."""
    model_config = ConfigDict(frozen=True)

    ok: bool
    value: Any = None
    reason: Optional[str] = None


def _failed(reason: str) -> ParsedValue:
    return ParsedValue(ok=False, reason=reason)


def _parse_date(value: str, as_of: datetime) -> ParsedValue:
    if not (_DIGITS_RE.fullmatch(value) and len(value) in (6, 8)):
        return _failed("Date must be 6 (YYMMDD) or 8 (CCYYMMDD) digits.")
    date_format = '%y%m%d' if len(value) == 6 else '%Y%m%d'
    try:
        parsed = datetime.strptime(value, date_format).date()
    except ValueError:
        return _failed(f"'{value}' is not a valid calendar date.")
    if parsed > as_of.date():
        return _failed(f"Date {parsed.isoformat()} is later than {as_of.date().isoformat()}.")
    return ParsedValue(ok=True, value=parsed)


def _parse_time(value: str) -> ParsedValue:
    if not (_DIGITS_RE.fullmatch(value) and len(value) in (4, 6)):
        return _failed("Time must be 4 (HHMM) or 6 (HHMMSS) digits.")
    hours, minutes = int(value[:2]), int(value[2:4])
    seconds = int(value[4:6]) if len(value) == 6 else 0
    if hours > 23 or minutes > 59 or seconds > 59:
        return _failed(f"'{value}' is not a valid time of day.")
    return ParsedValue(ok=True, value=(hours, minutes, seconds))


def parse_as(value: str, kind: DataKind, as_of: Optional[datetime] = None) -> ParsedValue:
    """Reads ``value`` as ``kind`` and returns a tagged result instead of raising."""
    if kind == DataKind.INTEGER:
        if _INTEGER_RE.fullmatch(value):
            return ParsedValue(ok=True, value=int(value))
        return _failed(f"'{value}' is not an integer.")
    if kind == DataKind.DECIMAL:
        if _DECIMAL_RE.fullmatch(value):
            return ParsedValue(ok=True, value=float(value))
        return _failed(f"'{value}' is not a number.")
    if kind == DataKind.DATE:
        return _parse_date(value, as_of or datetime.now())
    if kind == DataKind.TIME:
        return _parse_time(value)
    # Identifiers and free text carry no type constraint.
    return ParsedValue(ok=True, value=value)


def validate_segment(segment: Segment, rules: Sequence[FieldRule], as_of: Optional[datetime] = None,
                     subject_id: Optional[str] = None) -> List[ValidationIssue]:
    """
    Checks one segment's elements against its rule set.

    Rule ``i`` applies to element ``i + 1``. Every element is checked
    independently, so a single segment can produce several issues.
    """
    as_of = as_of or datetime.now()
    segment_id = segment.segment_id
    subject = subject_id or segment_id
    issues: List[ValidationIssue] = []

    def add_issue(kind: IssueKind, message: str, position: Optional[int] = None):
        issues.append(ValidationIssue(
            level=IssueLevel.SEGMENT, subject_id=subject, severity=Severity.ERROR, kind=kind,
            message=message, line_number=segment.line_number, segment_id=segment_id,
            element_position=position,
        ))

    needed = required_field_count(tuple(rules))
    present = segment.field_count - 1
    if present < needed:
        add_issue(IssueKind.SCHEMA_ARITY,
                  f"Segment '{segment_id}' has {present} elements but its rules require at least {needed}.")
        logger.debug(f"        [FAIL] {segment_id} (line {segment.line_number}): arity {present} < {needed}")
        return issues

    for index, rule in enumerate(rules):
        position = index + 1
        element_ref = f"{segment_id}{position:02d}"
        value = segment.get_element(position) or ""

        if not value:
            # Optional empty elements are not checked at all.
            if rule.required:
                add_issue(IssueKind.MANDATORY_FIELD, f"Element '{element_ref}' is mandatory but empty.", position)
                if rule.min_len > 0:
                    add_issue(IssueKind.FIELD_LENGTH,
                              f"Element '{element_ref}': Value is shorter than min length {rule.min_len}.", position)
            continue

        parsed = parse_as(value, rule.data_kind, as_of)
        if not parsed.ok:
            add_issue(IssueKind.FIELD_TYPE,
                      f"Element '{element_ref}': {parsed.reason} Expected {rule.data_kind.value}.", position)

        if len(value) < rule.min_len:
            add_issue(IssueKind.FIELD_LENGTH,
                      f"Element '{element_ref}': Value is shorter than min length {rule.min_len}.", position)
        elif len(value) > rule.max_len:
            add_issue(IssueKind.FIELD_LENGTH,
                      f"Element '{element_ref}': Value is longer than max length {rule.max_len}.", position)

        if rule.valid_codes and value not in rule.valid_codes:
            add_issue(IssueKind.INVALID_CODE,
                      f"Element '{element_ref}': Invalid code value '{value}'.", position)

    if issues:
        logger.debug(f"        [FAIL] {segment_id} (line {segment.line_number}): {[i.message for i in issues]}")
    else:
        logger.debug(f"        [PASS] {segment_id} (line {segment.line_number})")
    return issues
