"""GST tax calculation."""

from .calculator import DEFAULT_GST_RATE, calculate_gst
from .states import GST_STATE_CODES, is_same_state, normalize_state, state_code_for, state_name_for

__all__ = [
    "DEFAULT_GST_RATE",
    "GST_STATE_CODES",
    "calculate_gst",
    "is_same_state",
    "normalize_state",
    "state_code_for",
    "state_name_for",
]
