import logging
from pathlib import Path
from typing import Iterator, List, Optional, Union

logger = logging.getLogger(__name__)

# Helpers for callers that hold a whole transmission rather than a line
# sequence. The parser itself never opens files.


def split_segments(edi_content: str, segment_terminator: Optional[str] = '~') -> List[str]:
    """
    Splits raw transmission text into one string per segment.

    Line breaks are treated as formatting when a non-newline terminator is
    used, so both ``ISA*...~GS*...~`` and one-segment-per-line files work.
    """
    normalized = edi_content.replace('\r\n', '\n').replace('\r', '\n')
    if not segment_terminator or segment_terminator == '\n':
        pieces = normalized.split('\n')
    else:
        pieces = normalized.replace('\n', '').split(segment_terminator)
    segments = [piece for piece in pieces if piece.strip()]
    logger.debug(f"Split transmission into {len(segments)} segments.")
    return segments


def read_lines(path: Union[str, Path], encoding: str = 'utf-8') -> Iterator[str]:
    """Lazily yields the lines of a transmission file without their line endings."""
    with open(path, 'r', encoding=encoding) as f:
        for line in f:
            yield line.rstrip('\r\n')


def read_segments(path: Union[str, Path], segment_terminator: Optional[str] = '~',
                  encoding: str = 'utf-8') -> List[str]:
    """Reads a transmission file and splits it into segments."""
    with open(path, 'r', encoding=encoding) as f:
        edi_content = f.read()
    return split_segments(edi_content, segment_terminator)
