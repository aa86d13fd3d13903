from typing import List, Optional

# Header/trailer checks for the three hierarchy levels. All functions are pure
# and never raise; a stated count that could not be read arrives as None.


def _matches(header_ctl: Optional[str], trailer_ctl: Optional[str],
             stated_count: Optional[int], actual_count: int) -> bool:
    return header_ctl == trailer_ctl and stated_count == actual_count


def validate_transaction(st_control: Optional[str], se_control: Optional[str],
                         stated_count: Optional[int], actual_count: int) -> bool:
    """ST02 must echo SE02 and SE01 must equal the number of segments, ST and SE included."""
    return _matches(st_control, se_control, stated_count, actual_count)


def validate_group(gs_control: Optional[str], ge_control: Optional[str],
                   stated_count: Optional[int], actual_count: int) -> bool:
    """GS06 must echo GE02 and GE01 must equal the number of completed transaction sets."""
    return _matches(gs_control, ge_control, stated_count, actual_count)


def validate_envelope(isa_control: Optional[str], iea_control: Optional[str],
                      stated_count: Optional[int], actual_count: int) -> bool:
    """ISA13 must echo IEA02 and IEA01 must equal the number of completed functional groups."""
    return _matches(isa_control, iea_control, stated_count, actual_count)


def describe_mismatch(header_ctl: Optional[str], trailer_ctl: Optional[str],
                      stated_count: Optional[int], actual_count: int,
                      header_id: str, trailer_id: str) -> List[str]:
    messages = []
    if header_ctl != trailer_ctl:
        messages.append(
            f"Control number mismatch: {header_id} has '{header_ctl}' but {trailer_id} has '{trailer_ctl}'.")
    if stated_count is None:
        messages.append(f"{trailer_id} count is missing or not numeric (actual={actual_count}).")
    elif stated_count != actual_count:
        messages.append(f"Count mismatch in {trailer_id}: stated={stated_count}, actual={actual_count}.")
    return messages


def parse_count(value: Optional[str]) -> Optional[int]:
    """Reads a trailer count element; returns None unless it is a base-10 integer."""
    if value is None:
        return None
    text = value.strip()
    if text.isascii() and text.isdigit():
        return int(text)
    return None
