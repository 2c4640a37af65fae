"""Jurisdiction reference data for IFTA reporting.

Jurisdictions are US states (plus DC) and Canadian provinces/territories,
identified by their two-letter postal codes. IFTA membership covers the 48
contiguous US states and the 10 Canadian provinces; the other codes are
still recognized so that trips through them are not misattributed.

Blank or unrecognized inputs normalize to the reserved code UNKNOWN rather
than being dropped, so mileage and fuel totals are conserved.
"""

import re
from typing import Optional

UNKNOWN_JURISDICTION = "UNKNOWN"


# =============================================================================
# UNITED STATES
# =============================================================================

US_JURISDICTIONS = {
    "AL": "Alabama",
    "AK": "Alaska",
    "AZ": "Arizona",
    "AR": "Arkansas",
    "CA": "California",
    "CO": "Colorado",
    "CT": "Connecticut",
    "DE": "Delaware",
    "DC": "District of Columbia",
    "FL": "Florida",
    "GA": "Georgia",
    "HI": "Hawaii",
    "ID": "Idaho",
    "IL": "Illinois",
    "IN": "Indiana",
    "IA": "Iowa",
    "KS": "Kansas",
    "KY": "Kentucky",
    "LA": "Louisiana",
    "ME": "Maine",
    "MD": "Maryland",
    "MA": "Massachusetts",
    "MI": "Michigan",
    "MN": "Minnesota",
    "MS": "Mississippi",
    "MO": "Missouri",
    "MT": "Montana",
    "NE": "Nebraska",
    "NV": "Nevada",
    "NH": "New Hampshire",
    "NJ": "New Jersey",
    "NM": "New Mexico",
    "NY": "New York",
    "NC": "North Carolina",
    "ND": "North Dakota",
    "OH": "Ohio",
    "OK": "Oklahoma",
    "OR": "Oregon",
    "PA": "Pennsylvania",
    "RI": "Rhode Island",
    "SC": "South Carolina",
    "SD": "South Dakota",
    "TN": "Tennessee",
    "TX": "Texas",
    "UT": "Utah",
    "VT": "Vermont",
    "VA": "Virginia",
    "WA": "Washington",
    "WV": "West Virginia",
    "WI": "Wisconsin",
    "WY": "Wyoming",
}

# Not IFTA members
US_NON_MEMBERS = frozenset({"AK", "HI", "DC"})


# =============================================================================
# CANADA
# =============================================================================

CANADIAN_JURISDICTIONS = {
    "AB": "Alberta",
    "BC": "British Columbia",
    "MB": "Manitoba",
    "NB": "New Brunswick",
    "NL": "Newfoundland and Labrador",
    "NS": "Nova Scotia",
    "ON": "Ontario",
    "PE": "Prince Edward Island",
    "QC": "Quebec",
    "SK": "Saskatchewan",
    "NT": "Northwest Territories",
    "NU": "Nunavut",
    "YT": "Yukon",
}

CANADIAN_NON_MEMBERS = frozenset({"NT", "NU", "YT"})


# =============================================================================
# LOOKUPS
# =============================================================================

JURISDICTION_NAMES: dict[str, str] = {**US_JURISDICTIONS, **CANADIAN_JURISDICTIONS}

IFTA_MEMBER_JURISDICTIONS = frozenset(
    code
    for code in JURISDICTION_NAMES
    if code not in US_NON_MEMBERS and code not in CANADIAN_NON_MEMBERS
)

_CODES_BY_NAME = {name.lower(): code for code, name in JURISDICTION_NAMES.items()}
# Common alternate spellings
_CODES_BY_NAME.update({
    "newfoundland": "NL",
    "labrador": "NL",
    "québec": "QC",
    "washington dc": "DC",
    "washington d.c.": "DC",
    "yukon territory": "YT",
})

# "City, ST" as used for dispatch load origins/destinations
_LOCATION_STATE_PATTERN = re.compile(r",\s*([A-Za-z]{2})\b")


def normalize_jurisdiction(value: Optional[str]) -> str:
    """Normalize a jurisdiction code or name to its canonical code.

    Args:
        value: Raw code ("tx", " TX ") or full name ("Texas")

    Returns:
        Uppercase two-letter code, or UNKNOWN for blank/unrecognized input
    """
    if value is None or not isinstance(value, str):
        return UNKNOWN_JURISDICTION

    cleaned = value.strip()
    if not cleaned:
        return UNKNOWN_JURISDICTION

    upper = cleaned.upper()
    if upper in JURISDICTION_NAMES:
        return upper
    if upper == UNKNOWN_JURISDICTION:
        return UNKNOWN_JURISDICTION

    return _CODES_BY_NAME.get(" ".join(cleaned.lower().split()), UNKNOWN_JURISDICTION)


def is_known_jurisdiction(code: str) -> bool:
    """True if the code is a recognized state/province code."""
    return code in JURISDICTION_NAMES


def is_ifta_member(code: str) -> bool:
    """True if the jurisdiction participates in IFTA."""
    return code in IFTA_MEMBER_JURISDICTIONS


def jurisdiction_name(code: str) -> str:
    """Display name for a code; unknown codes are returned unchanged."""
    if code == UNKNOWN_JURISDICTION:
        return "Unknown"
    return JURISDICTION_NAMES.get(code, code)


def extract_jurisdiction(location: Optional[str]) -> str:
    """Extract the jurisdiction from a "City, ST" location string.

    Example:
        >>> extract_jurisdiction("Dallas, TX 75201")
        'TX'
        >>> extract_jurisdiction("Somewhere")
        'UNKNOWN'
    """
    if not location:
        return UNKNOWN_JURISDICTION

    match = _LOCATION_STATE_PATTERN.search(location)
    if match:
        return normalize_jurisdiction(match.group(1))

    # "City, Texas"
    _, _, tail = location.rpartition(",")
    return normalize_jurisdiction(tail)
