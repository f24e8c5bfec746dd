"""
Date parsing for Turkish institution pages.
"""

import re
from datetime import datetime
from typing import Optional

TURKISH_MONTHS = {
    'ocak': 1, 'şubat': 2, 'mart': 3, 'nisan': 4, 'mayıs': 5, 'haziran': 6,
    'temmuz': 7, 'ağustos': 8, 'eylül': 9, 'ekim': 10, 'kasım': 11, 'aralık': 12,
    # ASCII spellings seen on older pages
    'subat': 2, 'mayis': 5, 'agustos': 8, 'eylul': 9, 'kasim': 11, 'aralik': 12,
    # English abbreviations used by some EPDK listings
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

_NAMED_DATE = re.compile(r'(\d{1,2})\s+([^\W\d_]+)\s+(\d{4})', re.UNICODE)
_NUMERIC_DATE = re.compile(r'\b(\d{1,2})\.(\d{1,2})\.(\d{4})\b')


def turkish_lower(text: str) -> str:
    """Lowercase with Turkish dotted/dotless I rules."""
    return text.replace('I', 'ı').replace('İ', 'i').lower()


def parse_turkish_date(text: Optional[str]) -> Optional[datetime]:
    """
    Parse a date as printed on Turkish official sites.

    Tries "15 Mart 2024", then "15.03.2024", then ISO 8601. Returns None
    for anything unparsable; never raises.
    """
    if not text:
        return None
    text = text.strip()

    match = _NAMED_DATE.search(text)
    if match:
        day, month_name, year = match.groups()
        month = TURKISH_MONTHS.get(turkish_lower(month_name))
        if month is not None:
            try:
                return datetime(int(year), month, int(day))
            except ValueError:
                pass

    match = _NUMERIC_DATE.search(text)
    if match:
        day, month, year = match.groups()
        try:
            return datetime(int(year), int(month), int(day))
        except ValueError:
            pass

    iso = text.replace('Z', '+00:00') if text.endswith('Z') else text
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        return None
