"""Restaurant sales tax lookup by US state.

Rates combine state and average local taxes for dining out and are
estimates. They are used to pre-fill a menu's tax rate, which people can
still edit on their cart.
"""

from __future__ import annotations

import logging
from typing import NamedTuple


logger = logging.getLogger(__name__)


class TaxRate(NamedTuple):
    state: str
    rate: float  # decimal, e.g. 0.0825 for 8.25%


TAX_RATES: dict[str, TaxRate] = {
    # No sales tax
    "AK": TaxRate("Alaska", 0.0),
    "DE": TaxRate("Delaware", 0.0),
    "MT": TaxRate("Montana", 0.0),
    "NH": TaxRate("New Hampshire", 0.0),
    "OR": TaxRate("Oregon", 0.0),
    "AL": TaxRate("Alabama", 0.09),
    "AR": TaxRate("Arkansas", 0.0935),
    "AZ": TaxRate("Arizona", 0.083),
    "CA": TaxRate("California", 0.0863),
    "CO": TaxRate("Colorado", 0.077),
    "CT": TaxRate("Connecticut", 0.0635),
    "DC": TaxRate("District of Columbia", 0.06),
    "FL": TaxRate("Florida", 0.07),
    "GA": TaxRate("Georgia", 0.0729),
    "HI": TaxRate("Hawaii", 0.04),
    "IA": TaxRate("Iowa", 0.0694),
    "ID": TaxRate("Idaho", 0.06),
    "IL": TaxRate("Illinois", 0.0894),
    "IN": TaxRate("Indiana", 0.07),
    "KS": TaxRate("Kansas", 0.0865),
    "KY": TaxRate("Kentucky", 0.06),
    "LA": TaxRate("Louisiana", 0.0945),
    "MA": TaxRate("Massachusetts", 0.0625),
    "MD": TaxRate("Maryland", 0.06),
    "ME": TaxRate("Maine", 0.055),
    "MI": TaxRate("Michigan", 0.06),
    "MN": TaxRate("Minnesota", 0.0744),
    "MO": TaxRate("Missouri", 0.0823),
    "MS": TaxRate("Mississippi", 0.07),
    "NC": TaxRate("North Carolina", 0.0698),
    "ND": TaxRate("North Dakota", 0.0694),
    "NE": TaxRate("Nebraska", 0.0694),
    "NJ": TaxRate("New Jersey", 0.0663),
    "NM": TaxRate("New Mexico", 0.0779),
    "NV": TaxRate("Nevada", 0.0823),
    "NY": TaxRate("New York", 0.08),
    "OH": TaxRate("Ohio", 0.0725),
    "OK": TaxRate("Oklahoma", 0.0895),
    "PA": TaxRate("Pennsylvania", 0.06),
    "RI": TaxRate("Rhode Island", 0.07),
    "SC": TaxRate("South Carolina", 0.07),
    "SD": TaxRate("South Dakota", 0.064),
    "TN": TaxRate("Tennessee", 0.0955),
    "TX": TaxRate("Texas", 0.0825),
    "UT": TaxRate("Utah", 0.0727),
    "VA": TaxRate("Virginia", 0.0575),
    "VT": TaxRate("Vermont", 0.06),
    "WA": TaxRate("Washington", 0.092),
    "WI": TaxRate("Wisconsin", 0.054),
    "WV": TaxRate("West Virginia", 0.065),
    "WY": TaxRate("Wyoming", 0.054),
}

# National average, used when the state is missing or unknown
DEFAULT_TAX_RATE = 0.08


def get_tax_rate(state: str | None) -> float:
    """Look up by abbreviation, then full name, then name prefix ("calif")."""
    if not state or not state.strip():
        return DEFAULT_TAX_RATE
    normalized = state.strip().lower()

    by_abbr = TAX_RATES.get(normalized.upper())
    if by_abbr is not None:
        return by_abbr.rate

    for entry in TAX_RATES.values():
        if entry.state.lower() == normalized:
            return entry.rate
    for entry in TAX_RATES.values():
        if entry.state.lower().startswith(normalized):
            return entry.rate

    logger.warning(
        "Could not find tax rate for %r, using default %s", state, DEFAULT_TAX_RATE
    )
    return DEFAULT_TAX_RATE
