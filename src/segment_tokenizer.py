import logging
from typing import Optional

from edi_errors import MalformedSegmentError
from edi_models import Segment

logger = logging.getLogger(__name__)

DEFAULT_DELIMITER = '*'


def tokenize(line: str, delimiter: str = DEFAULT_DELIMITER, line_number: Optional[int] = None,
             segment_terminator: Optional[str] = None) -> Segment:
    """
    Splits one physical line into a Segment.

    Only the line ending and, when given, a single trailing segment terminator
    are removed. Element values are never trimmed. The segment identifier is
    upper-cased for dispatch; every other element passes through untouched.

    Raises:
        MalformedSegmentError: the line is empty or has a blank identifier.
    """
    content = line.rstrip('\r\n')
    if segment_terminator and content.endswith(segment_terminator):
        content = content[:-len(segment_terminator)]

    if not content:
        raise MalformedSegmentError("Line contains no segment data.", line_number=line_number)

    parts = content.split(delimiter)
    if not parts[0].strip():
        raise MalformedSegmentError(f"Segment identifier is blank in line '{content}'.", line_number=line_number)

    parts[0] = parts[0].upper()
    return Segment(fields=tuple(parts), line_number=line_number)


def detect_delimiter(first_line: str, default: str = DEFAULT_DELIMITER) -> str:
    """Returns the element delimiter declared by an ISA header (its fourth character)."""
    clean = first_line.lstrip()
    if clean[:3].upper() == 'ISA' and len(clean) > 3:
        delimiter = clean[3]
        if not delimiter.isalnum() and delimiter not in ('\r', '\n', ' '):
            logger.debug(f"Element delimiter detected from ISA header: '{delimiter}'")
            return delimiter
        logger.warning(f"ISA header declares an unusable element delimiter '{delimiter}'. Falling back to '{default}'.")
        return default
    logger.debug(f"No ISA header on first line. Using default element delimiter '{default}'.")
    return default
