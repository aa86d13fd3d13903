import logging
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from edi_errors import InputUnavailableError, MalformedSegmentError
from edi_models import (Envelope, FunctionalGroup, IssueKind, IssueLevel, ParseResult, Segment, Severity,
                        TransactionSet, ValidationIssue)
from edi_schema_models import SchemaEntry
from field_validator import validate_segment
from parser_settings import ParserSettings, UnexpectedSegmentPolicy
from schema_registry import CONTROL_SEGMENT_RULES, DocumentSchemaRegistry, default_registry
from segment_tokenizer import detect_delimiter, tokenize
from structural_validator import (describe_mismatch, parse_count, validate_envelope, validate_group,
                                  validate_transaction)

logger = logging.getLogger(__name__)

TRANSMISSION_SUBJECT = "transmission"


class ParserState(str, Enum):
    IDLE = "Idle"
    IN_ENVELOPE = "InEnvelope"
    IN_GROUP = "InGroup"
    IN_TRANSACTION = "InTransaction"


# --- In-progress entities ---
# Builders are owned by the parser while their level is open. Closing a level
# freezes the builder into its model and hands it to the parent builder.

class _TransactionBuilder:
    def __init__(self, header: Segment, group_control_number: str, schema: Optional[SchemaEntry]):
        self.control_number = header.get_element(2) or ""
        self.document_type_code = header.get_element(1) or ""
        self.group_control_number = group_control_number
        self.schema = schema
        self.segments: List[Segment] = [header]
        self.issues: List[ValidationIssue] = []

    def build(self, trailer: Optional[Segment]) -> TransactionSet:
        return TransactionSet(
            control_number=self.control_number,
            trailer_control_number=trailer.get_element(2) if trailer else None,
            document_type_code=self.document_type_code,
            stated_segment_count=parse_count(trailer.get_element(1)) if trailer else None,
            actual_segment_count=len(self.segments),
            segments=tuple(self.segments),
            issues=tuple(self.issues),
            terminated=trailer is not None,
            group_control_number=self.group_control_number,
        )


class _GroupBuilder:
    def __init__(self, header: Segment, envelope_control_number: str):
        self.control_number = header.get_element(6) or ""
        self.functional_id_code = header.get_element(1) or ""
        self.application_sender = header.get_element(2)
        self.application_receiver = header.get_element(3)
        self.version = header.get_element(8)
        self.envelope_control_number = envelope_control_number
        self.transactions: List[TransactionSet] = []
        self.actual_transaction_count = 0
        self.issues: List[ValidationIssue] = []

    def build(self, trailer: Optional[Segment]) -> FunctionalGroup:
        return FunctionalGroup(
            control_number=self.control_number,
            trailer_control_number=trailer.get_element(2) if trailer else None,
            functional_id_code=self.functional_id_code,
            application_sender=self.application_sender,
            application_receiver=self.application_receiver,
            version=self.version,
            stated_transaction_count=parse_count(trailer.get_element(1)) if trailer else None,
            actual_transaction_count=self.actual_transaction_count,
            transactions=tuple(self.transactions),
            issues=tuple(self.issues),
            terminated=trailer is not None,
            envelope_control_number=self.envelope_control_number,
        )


class _EnvelopeBuilder:
    def __init__(self, header: Segment):
        self.control_number = header.get_element(13) or ""
        self.sender_id = (header.get_element(6) or "").strip()
        self.receiver_id = (header.get_element(8) or "").strip()
        self.timestamp = _interchange_timestamp(header.get_element(9), header.get_element(10))
        self.groups: List[FunctionalGroup] = []
        self.actual_group_count = 0
        self.issues: List[ValidationIssue] = []

    def build(self, trailer: Optional[Segment]) -> Envelope:
        return Envelope(
            control_number=self.control_number,
            trailer_control_number=trailer.get_element(2) if trailer else None,
            sender_id=self.sender_id,
            receiver_id=self.receiver_id,
            timestamp=self.timestamp,
            stated_group_count=parse_count(trailer.get_element(1)) if trailer else None,
            actual_group_count=self.actual_group_count,
            groups=tuple(self.groups),
            issues=tuple(self.issues),
            terminated=trailer is not None,
        )


def _interchange_timestamp(date_value: Optional[str], time_value: Optional[str]) -> Optional[datetime]:
    if not date_value or not time_value:
        return None
    try:
        return datetime.strptime(date_value + time_value, '%y%m%d%H%M')
    except ValueError:
        logger.debug(f"ISA09/ISA10 '{date_value}'/'{time_value}' do not form a valid timestamp.")
        return None


class TransmissionParser:
    """
    Single-pass state machine that rebuilds the ISA/GS/ST hierarchy from a
    sequence of lines and validates it as it goes.

    Problems are recorded as ValidationIssues on the most specific open entity
    and parsing carries on with the next line. Use one parser per
    transmission: ``feed`` lines, then ``finish`` to obtain the result.
    Stopping early and calling ``finish`` still yields a usable tree.
    """

    def __init__(self, registry: Optional[DocumentSchemaRegistry] = None,
                 settings: Optional[ParserSettings] = None, as_of: Optional[datetime] = None):
        self.settings = settings or ParserSettings()
        self.registry = registry if registry is not None else default_registry()
        self.as_of = as_of or datetime.now()
        self.delimiter = self.settings.delimiter

        self.current_envelope: Optional[_EnvelopeBuilder] = None
        self.current_group: Optional[_GroupBuilder] = None
        self.current_transaction: Optional[_TransactionBuilder] = None

        self._envelopes: List[Envelope] = []
        self._issues: List[ValidationIssue] = []
        self._lines_read = 0
        self._finished = False

    @property
    def state(self) -> ParserState:
        if self.current_transaction is not None:
            return ParserState.IN_TRANSACTION
        if self.current_group is not None:
            return ParserState.IN_GROUP
        if self.current_envelope is not None:
            return ParserState.IN_ENVELOPE
        return ParserState.IDLE

    # --- Public API ---

    def parse(self, lines: Iterable[str]) -> ParseResult:
        """
        Consumes every line and returns the finished result.

        Raises:
            InputUnavailableError: ``lines`` is None, yields nothing, or fails while being read.
        """
        if lines is None:
            raise InputUnavailableError("No line sequence was supplied for this run.")
        try:
            for line in lines:
                self.feed(line)
        except OSError as e:
            raise InputUnavailableError(f"Transmission could not be read: {e}") from e
        if self._lines_read == 0:
            raise InputUnavailableError("Transmission contains no lines.")
        return self.finish()

    def feed(self, line: str, line_number: Optional[int] = None) -> None:
        if self._finished:
            raise RuntimeError("Parser has already finished; use a new TransmissionParser per transmission.")
        self._lines_read += 1
        line_number = line_number if line_number is not None else self._lines_read

        if self.settings.detect_delimiter and line.lstrip()[:3].upper() == 'ISA':
            self.delimiter = detect_delimiter(line, default=self.settings.delimiter)

        try:
            segment = tokenize(line, self.delimiter, line_number=line_number,
                               segment_terminator=self.settings.segment_terminator)
        except MalformedSegmentError as e:
            logger.warning(f"[LINE {line_number}] Skipping malformed line: {e}")
            self._record_on_innermost(IssueKind.MALFORMED_SEGMENT, str(e), line_number=line_number)
            return

        logger.debug(f"[LINE {line_number}] {self.state.value}: '{segment.segment_id}'")
        handler = self._handlers.get(segment.segment_id, TransmissionParser._on_body_segment)
        handler(self, segment)

    def finish(self) -> ParseResult:
        """Closes every open level as unterminated and returns the tree with its issues."""
        if not self._finished:
            if self.current_envelope is not None:
                logger.warning(f"End of input reached in state {self.state.value}; closing open levels.")
                self._close_envelope(None)
            self._finished = True
            self._log_summary()
        return ParseResult(envelopes=tuple(self._envelopes), issues=tuple(self._issues),
                           lines_read=self._lines_read)

    # --- Issue bookkeeping ---

    def _record(self, target, level: IssueLevel, subject_id: str, kind: IssueKind, message: str,
                segment: Optional[Segment] = None, severity: Severity = Severity.ERROR,
                line_number: Optional[int] = None) -> ValidationIssue:
        issue = ValidationIssue(
            level=level, subject_id=subject_id, severity=severity, kind=kind, message=message,
            line_number=segment.line_number if segment else line_number,
            segment_id=segment.segment_id if segment else None,
        )
        self._attach(target, [issue])
        return issue

    def _attach(self, target, issues: List[ValidationIssue]) -> None:
        if target is not None:
            target.issues.extend(issues)
        self._issues.extend(issues)

    def _record_on_innermost(self, kind: IssueKind, message: str, segment: Optional[Segment] = None,
                             line_number: Optional[int] = None) -> None:
        if self.current_transaction is not None:
            tx = self.current_transaction
            self._record(tx, IssueLevel.TRANSACTION, tx.control_number, kind, message, segment, line_number=line_number)
        elif self.current_group is not None:
            group = self.current_group
            self._record(group, IssueLevel.GROUP, group.control_number, kind, message, segment, line_number=line_number)
        elif self.current_envelope is not None:
            env = self.current_envelope
            self._record(env, IssueLevel.ENVELOPE, env.control_number, kind, message, segment, line_number=line_number)
        else:
            self._record(None, IssueLevel.TRANSMISSION, TRANSMISSION_SUBJECT, kind, message, segment,
                         line_number=line_number)

    def _validate_control_segment(self, segment: Segment, target, subject_id: str) -> None:
        if not self.settings.validate_control_segments:
            return
        rules = CONTROL_SEGMENT_RULES.get(segment.segment_id)
        if rules:
            self._attach(target, validate_segment(segment, rules, self.as_of, subject_id=subject_id))

    # --- Transitions ---

    def _on_isa(self, segment: Segment) -> None:
        if self.current_envelope is not None:
            previous = self.current_envelope
            logger.warning(f"[LINE {segment.line_number}] ISA found while envelope {previous.control_number} is still open.")
            self._record(previous, IssueLevel.ENVELOPE, previous.control_number, IssueKind.STRUCTURAL,
                         f"Orphan/duplicate envelope: ISA at line {segment.line_number} opened before envelope "
                         f"'{previous.control_number}' was closed by IEA.", segment)
            self._close_envelope(None)

        self.current_envelope = _EnvelopeBuilder(segment)
        logger.debug(f"  -> Opened envelope {self.current_envelope.control_number}")
        self._validate_control_segment(segment, self.current_envelope, self.current_envelope.control_number)

    def _on_gs(self, segment: Segment) -> None:
        if self.current_envelope is None:
            logger.warning(f"[LINE {segment.line_number}] Orphan GS outside any envelope; discarded.")
            self._record(None, IssueLevel.TRANSMISSION, TRANSMISSION_SUBJECT, IssueKind.STRUCTURAL,
                         "Orphan group: GS segment found outside an envelope.", segment)
            return

        if self.current_group is not None:
            previous = self.current_group
            self._record(previous, IssueLevel.GROUP, previous.control_number, IssueKind.STRUCTURAL,
                         f"GS at line {segment.line_number} opened before group '{previous.control_number}' "
                         f"was closed by GE.", segment)
            self._close_group(None)

        self.current_group = _GroupBuilder(segment, self.current_envelope.control_number)
        logger.debug(f"  -> Opened functional group {self.current_group.control_number} ({self.current_group.functional_id_code})")
        self._validate_control_segment(segment, self.current_group, self.current_group.control_number)

    def _on_st(self, segment: Segment) -> None:
        if self.current_group is None:
            logger.warning(f"[LINE {segment.line_number}] Orphan ST outside any functional group; discarded.")
            self._record_on_innermost(IssueKind.STRUCTURAL,
                                      "Orphan transaction: ST segment found outside a functional group.", segment)
            return

        if self.current_transaction is not None:
            previous = self.current_transaction
            self._record(previous, IssueLevel.TRANSACTION, previous.control_number, IssueKind.STRUCTURAL,
                         f"ST at line {segment.line_number} opened before transaction set "
                         f"'{previous.control_number}' was closed by SE.", segment)
            self._close_transaction(None)

        document_type = segment.get_element(1) or ""
        schema = self.registry.schema_for(document_type)
        self.current_transaction = _TransactionBuilder(segment, self.current_group.control_number, schema)
        if schema is None:
            logger.debug(f"  -> Opened transaction set {self.current_transaction.control_number} "
                         f"(type {document_type}, no schema: structural validation only)")
        else:
            logger.debug(f"  -> Opened transaction set {self.current_transaction.control_number} "
                         f"(type {document_type}, schema '{schema.name}')")
        self._validate_transaction_segment(segment, boundary=True)

    def _on_se(self, segment: Segment) -> None:
        if self.current_transaction is None:
            logger.warning(f"[LINE {segment.line_number}] SE without a matching ST; discarded.")
            self._record_on_innermost(IssueKind.STRUCTURAL,
                                      "Orphan transaction trailer: SE segment found outside a transaction set.",
                                      segment)
            return
        self.current_transaction.segments.append(segment)
        self._validate_transaction_segment(segment, boundary=True)
        self._close_transaction(segment)

    def _on_ge(self, segment: Segment) -> None:
        if self.current_group is None:
            logger.warning(f"[LINE {segment.line_number}] GE without a matching GS; discarded.")
            self._record_on_innermost(IssueKind.STRUCTURAL,
                                      "Orphan group trailer: GE segment found outside a functional group.", segment)
            return
        self._validate_control_segment(segment, self.current_group, self.current_group.control_number)
        self._close_group(segment)

    def _on_iea(self, segment: Segment) -> None:
        if self.current_envelope is None:
            logger.warning(f"[LINE {segment.line_number}] IEA without a matching ISA; discarded.")
            self._record(None, IssueLevel.TRANSMISSION, TRANSMISSION_SUBJECT, IssueKind.STRUCTURAL,
                         "Segment outside envelope: IEA found with no open envelope.", segment)
            return
        self._validate_control_segment(segment, self.current_envelope, self.current_envelope.control_number)
        self._close_envelope(segment)

    def _on_body_segment(self, segment: Segment) -> None:
        if self.current_transaction is not None:
            self.current_transaction.segments.append(segment)
            self._validate_transaction_segment(segment, boundary=False)
            return

        if self.current_envelope is None:
            logger.warning(f"[LINE {segment.line_number}] '{segment.segment_id}' outside any envelope; discarded.")
            self._record(None, IssueLevel.TRANSMISSION, TRANSMISSION_SUBJECT, IssueKind.STRUCTURAL,
                         f"Segment outside envelope: '{segment.segment_id}' found before ISA.", segment)
            return

        logger.warning(f"[LINE {segment.line_number}] '{segment.segment_id}' outside any transaction set; discarded.")
        self._record_on_innermost(IssueKind.STRUCTURAL,
                                  f"Segment '{segment.segment_id}' found outside a transaction set.", segment)

    _handlers = {
        "ISA": _on_isa,
        "GS": _on_gs,
        "ST": _on_st,
        "SE": _on_se,
        "GE": _on_ge,
        "IEA": _on_iea,
    }

    # --- Schema checks ---

    def _validate_transaction_segment(self, segment: Segment, boundary: bool) -> None:
        tx = self.current_transaction
        schema = tx.schema
        if schema is None:
            return

        if not boundary and not schema.allows(segment.segment_id):
            policy = self.settings.unexpected_segment_policy
            message = (f"Segment '{segment.segment_id}' is not allowed in document type "
                       f"{schema.document_type_code} ({schema.name}).")
            if policy == UnexpectedSegmentPolicy.IGNORE:
                logger.debug(f"        {message} Ignored by policy.")
                return
            severity = Severity.WARNING if policy == UnexpectedSegmentPolicy.WARN else Severity.ERROR
            self._record(tx, IssueLevel.SEGMENT, segment.segment_id, IssueKind.UNEXPECTED_SEGMENT, message,
                         segment, severity=severity)
            return

        rules = schema.rules_for(segment.segment_id)
        if rules:
            self._attach(tx, validate_segment(segment, rules, self.as_of))

    # --- Closing levels ---

    def _close_transaction(self, trailer: Optional[Segment]) -> None:
        tx = self.current_transaction
        group = self.current_group
        if trailer is not None:
            stated = parse_count(trailer.get_element(1))
            trailer_ctl = trailer.get_element(2)
            actual = len(tx.segments)
            if not validate_transaction(tx.control_number, trailer_ctl, stated, actual):
                message = " ".join(describe_mismatch(tx.control_number, trailer_ctl, stated, actual, "ST02", "SE"))
                logger.warning(f"  [STRUCTURAL ERROR] Transaction set {tx.control_number}: {message}")
                self._record(tx, IssueLevel.TRANSACTION, tx.control_number, IssueKind.STRUCTURAL, message, trailer)
        else:
            self._record(tx, IssueLevel.TRANSACTION, tx.control_number, IssueKind.UNTERMINATED_ENTITY,
                         f"Transaction set '{tx.control_number}' was never closed by an SE segment.",
                         line_number=tx.segments[-1].line_number)

        transaction = tx.build(trailer)
        group.transactions.append(transaction)
        if transaction.terminated:
            group.actual_transaction_count += 1
        self.current_transaction = None
        logger.debug(f"  <- Closed transaction set {transaction.control_number} "
                     f"({transaction.actual_segment_count} segments, {len(transaction.issues)} issues)")

    def _close_group(self, trailer: Optional[Segment]) -> None:
        if self.current_transaction is not None:
            self._close_transaction(None)

        group = self.current_group
        if trailer is not None:
            stated = parse_count(trailer.get_element(1))
            trailer_ctl = trailer.get_element(2)
            if not validate_group(group.control_number, trailer_ctl, stated, group.actual_transaction_count):
                message = " ".join(describe_mismatch(group.control_number, trailer_ctl, stated,
                                                     group.actual_transaction_count, "GS06", "GE"))
                logger.warning(f"  [STRUCTURAL ERROR] Functional group {group.control_number}: {message}")
                self._record(group, IssueLevel.GROUP, group.control_number, IssueKind.STRUCTURAL, message, trailer)
        else:
            self._record(group, IssueLevel.GROUP, group.control_number, IssueKind.UNTERMINATED_ENTITY,
                         f"Functional group '{group.control_number}' was never closed by a GE segment.")

        functional_group = group.build(trailer)
        self.current_envelope.groups.append(functional_group)
        if functional_group.terminated:
            self.current_envelope.actual_group_count += 1
        self.current_group = None
        logger.debug(f"  <- Closed functional group {functional_group.control_number} "
                     f"({len(functional_group.transactions)} transaction sets)")

    def _close_envelope(self, trailer: Optional[Segment]) -> None:
        if self.current_group is not None:
            self._close_group(None)

        env = self.current_envelope
        if trailer is not None:
            stated = parse_count(trailer.get_element(1))
            trailer_ctl = trailer.get_element(2)
            if not validate_envelope(env.control_number, trailer_ctl, stated, env.actual_group_count):
                message = " ".join(describe_mismatch(env.control_number, trailer_ctl, stated,
                                                     env.actual_group_count, "ISA13", "IEA"))
                logger.warning(f"  [STRUCTURAL ERROR] Envelope {env.control_number}: {message}")
                self._record(env, IssueLevel.ENVELOPE, env.control_number, IssueKind.STRUCTURAL, message, trailer)
        else:
            self._record(env, IssueLevel.ENVELOPE, env.control_number, IssueKind.UNTERMINATED_ENTITY,
                         f"Envelope '{env.control_number}' was never closed by an IEA segment.")

        envelope = env.build(trailer)
        self._envelopes.append(envelope)
        self.current_envelope = None
        logger.debug(f"  <- Closed envelope {envelope.control_number} ({len(envelope.groups)} groups)")

    def _log_summary(self) -> None:
        if self._issues:
            logger.warning("--- EDI PARSE & VALIDATION SUMMARY: ISSUES FOUND ---")
            logger.warning(f"Total Issues: {len(self._issues)}")
            for issue in self._issues:
                logger.warning(f"  - {issue.level.value} {issue.subject_id} (line {issue.line_number}): "
                               f"[{issue.kind.value}] {issue.message}")
            logger.warning("--- END OF SUMMARY ---")
        else:
            logger.info("--- EDI PARSE & VALIDATION SUMMARY: SUCCESS ---")
            logger.info(f"No issues found in {self._lines_read} lines.")
            logger.info("--- END OF SUMMARY ---")


def parse_transmission(lines: Iterable[str], registry: Optional[DocumentSchemaRegistry] = None,
                       settings: Optional[ParserSettings] = None,
                       as_of: Optional[datetime] = None) -> ParseResult:
    """Parses one transmission with a fresh parser."""
    return TransmissionParser(registry=registry, settings=settings, as_of=as_of).parse(lines)
