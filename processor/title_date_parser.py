"""Strip embedded dates from MySideline card titles.

Card titles often carry the carnival date, e.g. ``"Bondi Masters Carnival
15/08/2025"`` or ``"Country Masters (14-16 Jun 2025)"``. The parser removes
every recognised date span (with the punctuation that framed it) and returns
the earliest date of the most precise kind found.
"""
import logging
import re
from datetime import date
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)


MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

_MONTH = (
    r'(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|'
    r'aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)'
)
_WEEKDAY = (
    r'(?:mon(?:day)?|tue(?:s(?:day)?)?|wed(?:nesday)?|thu(?:r(?:s(?:day)?)?)?|'
    r'fri(?:day)?|sat(?:urday)?|sun(?:day)?)'
)
_ORDINAL = r'(?:st|nd|rd|th)?'
_DASH = r'[\-ââ]'
_WEEKDAY_PREFIX = rf'(?:\b{_WEEKDAY}\.?,?\s+)?'

_DATE_PATTERN = re.compile(
    '|'.join([
        # 14-16 Jun 2025, 14th - 16th June 2025
        rf'{_WEEKDAY_PREFIX}\b(?P<range_day>\d{{1,2}}){_ORDINAL}\s*{_DASH}\s*'
        rf'\d{{1,2}}{_ORDINAL}\s+(?P<range_month>{_MONTH})\.?,?\s+(?P<range_year>\d{{4}})\b',
        # 15/08/2025, 15-08-2025, 15.08.2025
        rf'{_WEEKDAY_PREFIX}\b(?P<num_day>\d{{1,2}})[/.\-](?P<num_month>\d{{1,2}})'
        rf'[/.\-](?P<num_year>\d{{4}})\b',
        # 15 Aug 2025, 15th of August 2025
        rf'{_WEEKDAY_PREFIX}\b(?P<dmy_day>\d{{1,2}}){_ORDINAL}\s+(?:of\s+)?'
        rf'(?P<dmy_month>{_MONTH})\.?,?\s+(?P<dmy_year>\d{{4}})\b',
        # Aug 15, 2025
        rf'\b(?P<mdy_month>{_MONTH})\.?\s+(?P<mdy_day>\d{{1,2}}){_ORDINAL},?\s+'
        rf'(?P<mdy_year>\d{{4}})\b',
        # Aug 2025
        rf'\b(?P<my_month>{_MONTH})\.?,?\s+(?P<my_year>\d{{4}})\b',
        # 2025
        r'(?<![\d/.\-])\b(?P<year>(?:19|20)\d{2})\b(?![/.\-]?\d)',
    ]),
    re.IGNORECASE,
)

# Full dates outrank month-only dates, which outrank bare years.
_PRECISION_DAY = 3
_PRECISION_MONTH = 2
_PRECISION_YEAR = 1

_WHITESPACE = re.compile(r'\s+')
_EMPTY_BRACKETS = re.compile(r'[(\[]\s*[,\-ââ|:]*\s*[)\]]')
_SPACE_BEFORE_COMMA = re.compile(r'\s+,')
_REPEATED_SEPARATORS = re.compile(r'([\-ââ|,])(?:\s*[\-ââ|,])+')
_LEADING_PUNCTUATION = re.compile(r'^[\s,\-ââ|:@]+')
_TRAILING_PUNCTUATION = re.compile(r'[\s,\-ââ|:@]+$')
_DANGLING_TAIL = re.compile(r'\s+(?:on|from)$', re.IGNORECASE)
# Text allowed between two date spans that belong together ("2025 - 2026").
_SPAN_JOINER = re.compile(r'\s*(?:[\-–—/&]|to|and)?\s*', re.IGNORECASE)


class TitleDate(NamedTuple):
    """Clean title and the date lifted out of it."""
    clean_title: str
    extracted_date: Optional[date]


def _month_number(token: str) -> int:
    return MONTHS[token[:3].lower()]


def _build_date(year: str, month: int, day: str) -> Optional[date]:
    try:
        return date(int(year), month, int(day))
    except ValueError:
        return None


def _parse_match(match: re.Match) -> Optional[tuple]:
    """Turn one regex match into ``(precision, date)`` or None if invalid."""
    groups = match.groupdict()

    if groups['range_day']:
        parsed = _build_date(
            groups['range_year'], _month_number(groups['range_month']), groups['range_day']
        )
        return (_PRECISION_DAY, parsed) if parsed else None

    if groups['num_day']:
        month = int(groups['num_month'])
        if not 1 <= month <= 12:
            return None
        parsed = _build_date(groups['num_year'], month, groups['num_day'])
        return (_PRECISION_DAY, parsed) if parsed else None

    if groups['dmy_day']:
        parsed = _build_date(
            groups['dmy_year'], _month_number(groups['dmy_month']), groups['dmy_day']
        )
        return (_PRECISION_DAY, parsed) if parsed else None

    if groups['mdy_day']:
        parsed = _build_date(
            groups['mdy_year'], _month_number(groups['mdy_month']), groups['mdy_day']
        )
        return (_PRECISION_DAY, parsed) if parsed else None

    if groups['my_month']:
        parsed = _build_date(groups['my_year'], _month_number(groups['my_month']), '1')
        return (_PRECISION_MONTH, parsed) if parsed else None

    parsed = _build_date(groups['year'], 1, '1')
    return (_PRECISION_YEAR, parsed) if parsed else None


def _tidy(text: str) -> str:
    """Remove punctuation left dangling after date spans were cut out."""
    text = _WHITESPACE.sub(' ', text)
    text = _EMPTY_BRACKETS.sub(' ', text)
    text = _WHITESPACE.sub(' ', text)
    text = _SPACE_BEFORE_COMMA.sub(',', text)
    text = _REPEATED_SEPARATORS.sub(r'\1', text)
    text = _LEADING_PUNCTUATION.sub('', text)
    text = _TRAILING_PUNCTUATION.sub('', text)
    text = _DANGLING_TAIL.sub('', text)
    return text.strip()


def _merge_spans(text: str, spans: list) -> list:
    """Join date spans separated only by a range joiner, so the joiner goes too."""
    merged = []
    for start, end in sorted(spans):
        if merged and _SPAN_JOINER.fullmatch(text[merged[-1][1]:start]):
            merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def extract_and_strip_date(title: Optional[str]) -> TitleDate:
    """
    Extract the carnival date from a card title and strip it from the title.

    Args:
        title: Raw card title, possibly containing non-breaking spaces

    Returns:
        TitleDate with the cleaned title and the extracted date (or None)
    """
    if not title:
        return TitleDate('', None)

    text = _WHITESPACE.sub(' ', title).strip()

    found = []
    for match in _DATE_PATTERN.finditer(text):
        parsed = _parse_match(match)
        if parsed is None:
            logger.debug(f"Ignoring unparseable date '{match.group(0)}' in title '{text}'")
            continue
        precision, parsed_date = parsed
        found.append((precision, parsed_date, match.span()))

    if not found:
        return TitleDate(title.strip(), None)

    best_precision = max(precision for precision, _, _ in found)
    extracted = min(
        parsed_date for precision, parsed_date, _ in found
        if precision == best_precision
    )

    clean = text
    for start, end in reversed(_merge_spans(text, [span for _, _, span in found])):
        clean = clean[:start] + ' ' + clean[end:]
    clean = _tidy(clean)

    logger.debug(f"Extracted {extracted.isoformat()} from title '{text}' -> '{clean}'")
    return TitleDate(clean, extracted)
