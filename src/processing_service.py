import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Union

from edi_errors import InputUnavailableError
from edi_models import ParseResult, Severity
from hierarchy_parser import TransmissionParser
from line_source import read_segments
from parser_settings import ParserSettings
from run_audit import RunAudit, build_run_audit
from schema_registry import DocumentSchemaRegistry

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """Durable storage for per-run audit counts (implemented outside this package)."""

    def record(self, audit: RunAudit) -> None:
        ...


class ReportWriter(Protocol):
    """Renders a human readable log of one processing run."""

    def write(self, result: ParseResult, audit: RunAudit) -> None:
        ...


class InMemoryAuditSink:
    """Keeps audits in memory. Useful for tests and dry runs."""

    def __init__(self):
        self._lock = threading.Lock()
        self.audits: List[RunAudit] = []

    def record(self, audit: RunAudit) -> None:
        with self._lock:
            self.audits.append(audit)


def render_run_log(result: ParseResult, audit: RunAudit) -> List[str]:
    lines = [
        f"Processing run for {audit.source} at {audit.processed_at:%Y-%m-%d %H:%M:%S}",
        f"  Lines read: {audit.lines_read}",
        f"  Envelopes: {audit.envelope_count}  Groups: {audit.group_count}  "
        f"Transaction sets: {audit.transaction_count}",
        f"  Errors: {audit.error_count}  Warnings: {audit.warning_count}",
    ]
    for envelope in result.envelopes:
        lines.append(f"  Envelope {envelope.control_number} from '{envelope.sender_id}' to '{envelope.receiver_id}' "
                     f"- {'valid' if envelope.is_valid else 'INVALID'}")
        for group in envelope.groups:
            lines.append(f"    Group {group.control_number} ({group.functional_id_code}) "
                         f"- {'valid' if group.is_valid else 'INVALID'}")
            for transaction in group.transactions:
                lines.append(f"      Transaction set {transaction.control_number} ({transaction.document_type_code}) "
                             f"- {transaction.actual_segment_count} segments, {len(transaction.issues)} issues")
    for issue in result.issues:
        lines.append(f"  [{issue.severity.value.upper()}] {issue.level.value} {issue.subject_id} "
                     f"(line {issue.line_number}): {issue.kind.value}: {issue.message}")
    return lines


class LoggingReportWriter:
    """Writes the run log through the logging module."""

    def __init__(self, report_logger: Optional[logging.Logger] = None):
        self.report_logger = report_logger or logger

    def write(self, result: ParseResult, audit: RunAudit) -> None:
        level = logging.INFO if audit.is_clean else logging.WARNING
        for line in render_run_log(result, audit):
            self.report_logger.log(level, line)


class ProcessingOutcome:
    """Container for the outcome of one processing run."""
    def __init__(self, source: str, result: Optional[ParseResult] = None, audit: Optional[RunAudit] = None,
                 error: Optional[Exception] = None):
        self.source = source
        self.result = result
        self.audit = audit
        self.error = error

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.result is not None


class TransmissionProcessingService:
    """Runs the parser over a transmission and hands the result to the audit and report collaborators."""

    def __init__(self, settings: Optional[ParserSettings] = None,
                 registry: Optional[DocumentSchemaRegistry] = None,
                 audit_sink: Optional[AuditSink] = None,
                 report_writer: Optional[ReportWriter] = None):
        self.settings = settings or ParserSettings()
        self.registry = registry if registry is not None else DocumentSchemaRegistry(
            schema_dir=self.settings.schema_dir)
        self.audit_sink = audit_sink
        self.report_writer = report_writer or LoggingReportWriter()

    def process(self, lines: Iterable[str], source: str = "transmission",
                as_of: Optional[datetime] = None) -> ProcessingOutcome:
        """
        Parses one transmission and notifies the collaborators.

        Raises:
            InputUnavailableError: the line sequence is missing, empty or unreadable.
        """
        logger.info(f"Starting EDI processing for {source}")
        parser = TransmissionParser(registry=self.registry, settings=self.settings, as_of=as_of)
        try:
            result = parser.parse(lines)
        except InputUnavailableError as e:
            logger.error(f"EDI processing failed for {source}: {e}", exc_info=True)
            raise

        audit = build_run_audit(result, source)
        if self.audit_sink is not None:
            self.audit_sink.record(audit)
        self.report_writer.write(result, audit)

        errors = sum(1 for issue in result.issues if issue.severity == Severity.ERROR)
        logger.info(f"Processing completed for {source}: transactions={result.total_transaction_count}, "
                    f"errors={errors}")
        return ProcessingOutcome(source=source, result=result, audit=audit)

    def process_file(self, path: Union[str, Path], as_of: Optional[datetime] = None) -> ProcessingOutcome:
        try:
            segments = read_segments(path, self.settings.segment_terminator)
        except OSError as e:
            logger.error(f"Could not read transmission file {path}: {e}")
            raise InputUnavailableError(f"Transmission file {path} could not be read: {e}") from e
        return self.process(segments, source=str(path), as_of=as_of)

    def process_batch(self, sources: Mapping[str, Iterable[str]], max_workers: int = 4,
                      as_of: Optional[datetime] = None) -> Dict[str, ProcessingOutcome]:
        """
        Processes independent transmissions in parallel, one parser per source.

        A source that cannot be read yields an outcome carrying the error; the
        other sources are still processed.
        """
        def run(source: str, lines: Iterable[str]) -> ProcessingOutcome:
            try:
                return self.process(lines, source=source, as_of=as_of)
            except InputUnavailableError as e:
                return ProcessingOutcome(source=source, error=e)

        logger.info(f"Processing batch of {len(sources)} transmissions with {max_workers} workers")
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {source: executor.submit(run, source, lines) for source, lines in sources.items()}
            return {source: future.result() for source, future in futures.items()}
