"""
Indian GST state codes.

A state may be given as its GST code ("29"), a short code ("KA") or its
name ("Karnataka"); all three resolve to the same jurisdiction.
"""

GST_STATE_CODES: dict[str, str] = {
    "01": "Jammu and Kashmir",
    "02": "Himachal Pradesh",
    "03": "Punjab",
    "04": "Chandigarh",
    "05": "Uttarakhand",
    "06": "Haryana",
    "07": "Delhi",
    "08": "Rajasthan",
    "09": "Uttar Pradesh",
    "10": "Bihar",
    "11": "Sikkim",
    "12": "Arunachal Pradesh",
    "13": "Nagaland",
    "14": "Manipur",
    "15": "Mizoram",
    "16": "Tripura",
    "17": "Meghalaya",
    "18": "Assam",
    "19": "West Bengal",
    "20": "Jharkhand",
    "21": "Odisha",
    "22": "Chhattisgarh",
    "23": "Madhya Pradesh",
    "24": "Gujarat",
    "26": "Dadra and Nagar Haveli and Daman and Diu",
    "27": "Maharashtra",
    "29": "Karnataka",
    "30": "Goa",
    "31": "Lakshadweep",
    "32": "Kerala",
    "33": "Tamil Nadu",
    "34": "Puducherry",
    "35": "Andaman and Nicobar Islands",
    "36": "Telangana",
    "37": "Andhra Pradesh",
    "38": "Ladakh",
}

STATE_ABBREVIATIONS: dict[str, str] = {
    "JK": "01",
    "HP": "02",
    "PB": "03",
    "CH": "04",
    "UK": "05",
    "UT": "05",
    "HR": "06",
    "DL": "07",
    "RJ": "08",
    "UP": "09",
    "BR": "10",
    "SK": "11",
    "AR": "12",
    "NL": "13",
    "MN": "14",
    "MZ": "15",
    "TR": "16",
    "ML": "17",
    "AS": "18",
    "WB": "19",
    "JH": "20",
    "OD": "21",
    "OR": "21",
    "CG": "22",
    "CT": "22",
    "MP": "23",
    "GJ": "24",
    "DH": "26",
    "DD": "26",
    "MH": "27",
    "KA": "29",
    "GA": "30",
    "LD": "31",
    "KL": "32",
    "TN": "33",
    "PY": "34",
    "AN": "35",
    "TG": "36",
    "TS": "36",
    "AP": "37",
    "LA": "38",
}

_CODES_BY_NAME = {name.casefold(): code for code, name in GST_STATE_CODES.items()}
_CODES_BY_NAME.update(
    {
        "orissa": "21",
        "pondicherry": "34",
        "new delhi": "07",
        "nct of delhi": "07",
    }
)


def state_code_for(state: str | None) -> str | None:
    """Two-digit GST state code, or ``None`` when the state is unknown."""
    if not state:
        return None
    value = state.strip()
    if value in GST_STATE_CODES:
        return value
    if value.upper() in STATE_ABBREVIATIONS:
        return STATE_ABBREVIATIONS[value.upper()]
    return _CODES_BY_NAME.get(value.casefold())


def state_name_for(code: str | None) -> str:
    if not code:
        return "Unknown"
    return GST_STATE_CODES.get(code, "Unknown")


def normalize_state(state: str) -> str:
    """Comparable key for a state: its GST code when known, else the folded text."""
    return state_code_for(state) or state.strip().casefold()


def is_same_state(first: str, second: str) -> bool:
    return normalize_state(first) == normalize_state(second)
