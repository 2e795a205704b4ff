"""Free-text country → ISO 3166-1 alpha-2 resolution.

The lookup tables are built once from pycountry at import time and only read
afterwards.
"""

import re
from typing import Optional

import pycountry

# Informal spellings, keyed by their dot-less lowercase form.
ALIASES = {
    "us": "United States",
    "usa": "United States",
    "america": "United States",
    "united states of america": "United States",
    "uk": "United Kingdom",
    "great britain": "United Kingdom",
    "britain": "United Kingdom",
    "uae": "United Arab Emirates",
    "roc": "Taiwan, Province of China",
    "taiwan": "Taiwan, Province of China",
    "russia": "Russian Federation",
    "south korea": "Korea, Republic of",
    "vietnam": "Viet Nam",
    "iran": "Iran, Islamic Republic of",
}


def _build_tables():
    alpha2 = set()
    alpha3_to_alpha2 = {}
    names = {}
    for country in pycountry.countries:
        alpha2.add(country.alpha_2)
        alpha3_to_alpha2[country.alpha_3] = country.alpha_2
        for attr in ("name", "official_name", "common_name"):
            value = getattr(country, attr, None)
            if value:
                names.setdefault(value, country.alpha_2)
    folded = {name.casefold(): code for name, code in names.items()}
    return frozenset(alpha2), alpha3_to_alpha2, names, folded


_ALPHA2, _ALPHA3_TO_ALPHA2, _NAMES, _NAMES_FOLDED = _build_tables()

_WS_RE = re.compile(r"\s+")
_WORD_START_RE = re.compile(r"\b\w")


def _alias_key(text: str) -> str:
    return _WS_RE.sub(" ", text.lower()).replace(".", "").strip()


def _title_case(text: str) -> str:
    # Only upper-cases word starts; "new zealand" -> "New Zealand"
    return _WORD_START_RE.sub(lambda m: m.group(0).upper(), text)


def _lookup_name(name: str, *, fold: bool = False) -> Optional[str]:
    code = _NAMES.get(name)
    if code is None and fold:
        code = _NAMES_FOLDED.get(name.casefold())
    return code


def derive_iso2(country_input: Optional[str]) -> Optional[str]:
    """Map free-text country input to an alpha-2 code, or None if unknown.

    Tried in order, first hit wins: alias table, 2-letter code, 3-letter code,
    exact name, title-cased name.
    """
    if not country_input:
        return None

    raw = _WS_RE.sub(" ", country_input.strip())
    if not raw:
        return None

    alias = ALIASES.get(_alias_key(raw))
    if alias:
        return _lookup_name(alias, fold=True)

    if re.fullmatch(r"[A-Za-z]{2}", raw):
        upper = raw.upper()
        return upper if upper in _ALPHA2 else None

    if re.fullmatch(r"[A-Za-z]{3}", raw):
        return _ALPHA3_TO_ALPHA2.get(raw.upper())

    code = _lookup_name(raw)
    if code:
        return code

    return _lookup_name(_title_case(raw), fold=True)
