from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from edi_models import IssueLevel, ParseResult, Severity

# Per-entity audit records handed to the persistence collaborator.


class EntityAudit(BaseModel):
    level: IssueLevel
    control_number: str
    trailer_control_number: Optional[str] = None
    type_code: Optional[str] = None
    parent_control_number: Optional[str] = None
    stated_count: Optional[int] = None
    actual_count: int = 0
    issue_count: int = 0
    is_valid: bool = False
    terminated: bool = False


class RunAudit(BaseModel):
    source: str
    processed_at: datetime
    lines_read: int = 0
    envelope_count: int = 0
    group_count: int = 0
    transaction_count: int = 0
    error_count: int = 0
    warning_count: int = 0
    issues_by_kind: Dict[str, int] = Field(default_factory=dict)
    entities: List[EntityAudit] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return self.error_count == 0


def build_run_audit(result: ParseResult, source: str, processed_at: Optional[datetime] = None) -> RunAudit:
    """Flattens a parse result into the counts and control numbers recorded for a run."""
    entities: List[EntityAudit] = []
    for envelope in result.envelopes:
        entities.append(EntityAudit(
            level=IssueLevel.ENVELOPE,
            control_number=envelope.control_number,
            trailer_control_number=envelope.trailer_control_number,
            stated_count=envelope.stated_group_count,
            actual_count=envelope.actual_group_count,
            issue_count=len(envelope.issues),
            is_valid=envelope.is_valid,
            terminated=envelope.terminated,
        ))
        for group in envelope.groups:
            entities.append(EntityAudit(
                level=IssueLevel.GROUP,
                control_number=group.control_number,
                trailer_control_number=group.trailer_control_number,
                type_code=group.functional_id_code,
                parent_control_number=envelope.control_number,
                stated_count=group.stated_transaction_count,
                actual_count=group.actual_transaction_count,
                issue_count=len(group.issues),
                is_valid=group.is_valid,
                terminated=group.terminated,
            ))
            for transaction in group.transactions:
                entities.append(EntityAudit(
                    level=IssueLevel.TRANSACTION,
                    control_number=transaction.control_number,
                    trailer_control_number=transaction.trailer_control_number,
                    type_code=transaction.document_type_code,
                    parent_control_number=group.control_number,
                    stated_count=transaction.stated_segment_count,
                    actual_count=transaction.actual_segment_count,
                    issue_count=len(transaction.issues),
                    is_valid=transaction.is_valid,
                    terminated=transaction.terminated,
                ))

    severities = Counter(issue.severity for issue in result.issues)
    kinds = Counter(issue.kind.value for issue in result.issues)
    return RunAudit(
        source=source,
        processed_at=processed_at or datetime.now(),
        lines_read=result.lines_read,
        envelope_count=len(result.envelopes),
        group_count=result.total_group_count,
        transaction_count=result.total_transaction_count,
        error_count=severities.get(Severity.ERROR, 0),
        warning_count=severities.get(Severity.WARNING, 0),
        issues_by_kind=dict(kinds),
        entities=entities,
    )
