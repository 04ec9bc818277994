"""GSTIN validation and SAC lookup."""

import re

from ..tax.states import GST_STATE_CODES

GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$")

DEFAULT_SAC = "998314"

# Services Accounting Codes for IT services
SAC_CODES: dict[str, str] = {
    "software": "998314",
    "subscription": "998314",
    "consulting": "998313",
    "maintenance": "998315",
    "hosting": "998316",
}


def validate_gstin(gstin: str | None) -> bool:
    """Structural check only; the checksum character is not verified."""
    if not gstin:
        return False
    return GSTIN_PATTERN.match(gstin) is not None


def state_code_from_gstin(gstin: str) -> str:
    """The two-digit state code a GSTIN was registered under."""
    if not validate_gstin(gstin):
        raise ValueError(f"Invalid GSTIN: {gstin}")
    code = gstin[:2]
    if code not in GST_STATE_CODES:
        raise ValueError(f"Unknown GST state code in GSTIN: {code}")
    return code


def get_hsn_sac_code(service_type: str | None = None) -> str:
    if not service_type:
        return DEFAULT_SAC
    return SAC_CODES.get(service_type.strip().lower(), DEFAULT_SAC)


__all__ = [
    "DEFAULT_SAC",
    "GSTIN_PATTERN",
    "SAC_CODES",
    "get_hsn_sac_code",
    "state_code_from_gstin",
    "validate_gstin",
]
