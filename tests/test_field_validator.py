import pytest
from datetime import date, datetime

from edi_models import IssueKind, IssueLevel, Severity
from edi_schema_models import DataKind, FieldRule
from field_validator import parse_as, validate_segment
from segment_tokenizer import tokenize

pytestmark = pytest.mark.unit


def _rule(kind: str, min_len: int, max_len: int, required: bool = False, **extra) -> FieldRule:
    return FieldRule(data_kind=kind, min_len=min_len, max_len=max_len, required=required, **extra)


BIG_RULES = (
    _rule("DT", 8, 8, required=True),
    _rule("AN", 1, 22, required=True),
    _rule("DT", 8, 8),
    _rule("AN", 1, 22),
)


class TestParseAs:
    """Reading element values as their declared kind."""

    def test_integer(self):
        assert parse_as("1234", DataKind.INTEGER).ok
        assert parse_as("1234", DataKind.INTEGER).value == 1234
        assert parse_as("-7", DataKind.INTEGER).ok
        assert not parse_as("12a3", DataKind.INTEGER).ok
        assert not parse_as("12.0", DataKind.INTEGER).ok
        assert not parse_as(" 12", DataKind.INTEGER).ok

    def test_decimal(self):
        assert parse_as("12.34", DataKind.DECIMAL).ok
        assert parse_as("12", DataKind.DECIMAL).ok
        assert parse_as("-.5", DataKind.DECIMAL).ok
        assert parse_as("1E3", DataKind.DECIMAL).value == 1000.0
        assert not parse_as("1.2.3", DataKind.DECIMAL).ok
        assert not parse_as("12,50", DataKind.DECIMAL).ok

    def test_date_formats(self, as_of: datetime):
        assert parse_as("20240715", DataKind.DATE, as_of).value == date(2024, 7, 15)
        assert parse_as("240715", DataKind.DATE, as_of).value == date(2024, 7, 15)
        assert parse_as("20240731", DataKind.DATE, as_of).ok

    def test_date_rejects_impossible_values(self, as_of: datetime):
        assert not parse_as("99999999", DataKind.DATE, as_of).ok
        assert not parse_as("20240230", DataKind.DATE, as_of).ok
        assert not parse_as("2024071", DataKind.DATE, as_of).ok
        assert not parse_as("2024-07-15", DataKind.DATE, as_of).ok

    def test_date_after_processing_time_is_rejected(self, as_of: datetime):
        result = parse_as("20240801", DataKind.DATE, as_of)
        assert not result.ok
        assert "later than" in result.reason

    def test_time(self):
        assert parse_as("0930", DataKind.TIME).value == (9, 30, 0)
        assert parse_as("235959", DataKind.TIME).ok
        assert not parse_as("2400", DataKind.TIME).ok
        assert not parse_as("1260", DataKind.TIME).ok
        assert not parse_as("235960", DataKind.TIME).ok
        assert not parse_as("930", DataKind.TIME).ok

    def test_text_and_identifier_accept_anything(self):
        assert parse_as("ACME RETAIL #1", DataKind.TEXT).ok
        assert parse_as("ZZ", DataKind.IDENTIFIER).ok


class TestValidateSegment:
    """Per-segment checks against a rule set."""

    def test_valid_segment_has_no_issues(self, as_of: datetime):
        segment = tokenize("BIG*20240715*INV1001*20240701*PO5501", line_number=4)
        assert validate_segment(segment, BIG_RULES, as_of) == []

    def test_optional_empty_element_is_skipped(self, as_of: datetime):
        segment = tokenize("BIG*20240715*INV1001**PO5501")
        assert validate_segment(segment, BIG_RULES, as_of) == []

    def test_elements_beyond_rules_are_ignored(self, as_of: datetime):
        segment = tokenize("BIG*20240715*INV1001*20240701*PO5501*EXTRA*MORE")
        assert validate_segment(segment, BIG_RULES, as_of) == []

    def test_too_few_elements_is_a_single_arity_issue(self, as_of: datetime):
        segment = tokenize("BIG*20240715", line_number=4)
        issues = validate_segment(segment, BIG_RULES, as_of)
        assert len(issues) == 1
        assert issues[0].kind == IssueKind.SCHEMA_ARITY
        assert issues[0].line_number == 4

    def test_optional_trailing_elements_may_be_omitted(self, as_of: datetime):
        segment = tokenize("BIG*20240715*INV1001")
        assert validate_segment(segment, BIG_RULES, as_of) == []

    def test_empty_mandatory_element(self, as_of: datetime):
        segment = tokenize("BIG**INV1001")
        issues = validate_segment(segment, BIG_RULES, as_of)
        assert [i.kind for i in issues] == [IssueKind.MANDATORY_FIELD, IssueKind.FIELD_LENGTH]
        assert all(i.element_position == 1 for i in issues)
        assert "BIG01" in issues[0].message

    def test_empty_mandatory_element_also_fails_min_length(self, as_of: datetime):
        rules = (_rule("N0", 4, 9, required=True), _rule("AN", 1, 5, required=True))
        issues = validate_segment(tokenize("XX**AB"), rules, as_of)
        assert [(i.kind, i.element_position) for i in issues] == [
            (IssueKind.MANDATORY_FIELD, 1),
            (IssueKind.FIELD_LENGTH, 1),
        ]
        assert "shorter than min length 4" in issues[1].message

    def test_empty_mandatory_element_without_min_length(self, as_of: datetime):
        rules = (_rule("AN", 0, 9, required=True),)
        issues = validate_segment(tokenize("XX*"), rules, as_of)
        assert [i.kind for i in issues] == [IssueKind.MANDATORY_FIELD]

    def test_integer_type_error(self, as_of: datetime):
        rules = (_rule("N0", 1, 6, required=True),)
        issues = validate_segment(tokenize("CTT*12a3"), rules, as_of)
        assert [i.kind for i in issues] == [IssueKind.FIELD_TYPE]

    def test_short_value_is_length_error(self, as_of: datetime):
        rules = (_rule("AN", 4, 9, required=True),)
        issues = validate_segment(tokenize("REF*AB"), rules, as_of)
        assert len(issues) == 1
        assert issues[0].kind == IssueKind.FIELD_LENGTH
        assert "shorter" in issues[0].message

    def test_long_value_is_length_error(self, as_of: datetime):
        rules = (_rule("N0", 1, 6, required=True),)
        issues = validate_segment(tokenize("CTT*1234567"), rules, as_of)
        assert [i.kind for i in issues] == [IssueKind.FIELD_LENGTH]
        assert "longer" in issues[0].message

    def test_type_and_length_reported_together(self, as_of: datetime):
        rules = (_rule("N0", 1, 6, required=True),)
        issues = validate_segment(tokenize("CTT*12a3456"), rules, as_of)
        assert {i.kind for i in issues} == {IssueKind.FIELD_TYPE, IssueKind.FIELD_LENGTH}

    def test_several_elements_fail_independently(self, as_of: datetime):
        segment = tokenize("BIG*2024071X*")
        issues = validate_segment(segment, BIG_RULES, as_of)
        assert [(i.kind, i.element_position) for i in issues] == [
            (IssueKind.FIELD_TYPE, 1),
            (IssueKind.MANDATORY_FIELD, 2),
            (IssueKind.FIELD_LENGTH, 2),
        ]

    def test_future_date_is_type_error(self, as_of: datetime):
        segment = tokenize("BIG*20240801*INV1001")
        issues = validate_segment(segment, BIG_RULES, as_of)
        assert [i.kind for i in issues] == [IssueKind.FIELD_TYPE]

    def test_code_outside_table(self, as_of: datetime):
        rules = (
            _rule("ID", 2, 3, required=True, code_table="entity_identifier"),
            _rule("AN", 1, 60),
        )
        assert validate_segment(tokenize("N1*BT*ACME"), rules, as_of) == []
        issues = validate_segment(tokenize("N1*XX*ACME"), rules, as_of)
        assert [i.kind for i in issues] == [IssueKind.INVALID_CODE]

    def test_issue_fields(self, as_of: datetime):
        segment = tokenize("BIG**INV1001", line_number=9)
        issue = validate_segment(segment, BIG_RULES, as_of, subject_id="0001")[0]
        assert issue.level == IssueLevel.SEGMENT
        assert issue.severity == Severity.ERROR
        assert issue.subject_id == "0001"
        assert issue.segment_id == "BIG"
        assert issue.line_number == 9
