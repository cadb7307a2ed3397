"""Schedule codec: converts between outliner block text and structured schedule fields.

Pure functions, no I/O. Decoding never raises on user text; a block without a
recognized annotation is simply unscheduled.
"""

from .annotation import (
    decode_schedule,
    encode_schedule_line,
    extract_recurrence_suffix,
    remove_schedule_line,
    replace_schedule_line,
)
from .duration import format_duration_token, parse_duration_token, upsert_duration_token
from .titles import collapse_hierarchical_title, extract_title_line, strip_marker_prefix

__all__ = [
    "collapse_hierarchical_title",
    "decode_schedule",
    "encode_schedule_line",
    "extract_recurrence_suffix",
    "extract_title_line",
    "format_duration_token",
    "parse_duration_token",
    "remove_schedule_line",
    "replace_schedule_line",
    "strip_marker_prefix",
    "upsert_duration_token",
]
