"""Resolve an Australian state or territory code from a free-form address."""
import re
from typing import Optional


AUSTRALIAN_STATES = ['ACT', 'NSW', 'NT', 'QLD', 'SA', 'TAS', 'VIC', 'WA']

STATE_NAMES = {
    'ACT': 'Australian Capital Territory',
    'NSW': 'New South Wales',
    'NT': 'Northern Territory',
    'QLD': 'Queensland',
    'SA': 'South Australia',
    'TAS': 'Tasmania',
    'VIC': 'Victoria',
    'WA': 'Western Australia',
}

# Abbreviations that are also everyday words ("Act", "Sa") only count when
# written in capitals. The rest match in any case ("Qld", "vic.").
_ANY_CASE_ABBREVIATIONS = {'NSW', 'QLD', 'TAS', 'VIC'}


def _dotted(code: str) -> str:
    """Regex for ``code`` with an optional dot after each letter (N.S.W.)."""
    return ''.join(re.escape(letter) + r'\.?' for letter in code)


def _build_pattern() -> re.Pattern:
    alternatives = []
    for code in AUSTRALIAN_STATES:
        name = r'\s+'.join(STATE_NAMES[code].split())
        if code in _ANY_CASE_ABBREVIATIONS:
            variants = [rf'(?i:{name}|{_dotted(code)})']
        else:
            variants = [rf'(?i:{name})', _dotted(code)]
        alternatives.append(rf'(?P<{code}>{"|".join(variants)})')
    return re.compile(r'(?<![A-Za-z])(?:' + '|'.join(alternatives) + r')(?![A-Za-z])')


_STATE_PATTERN = _build_pattern()


def resolve_state(address: Optional[str]) -> Optional[str]:
    """
    Find the state code mentioned in an address.

    Full names match case-insensitively and abbreviations may carry dots.
    Partial words never match ("Vicarage" is not VIC). When several states
    appear, the last one in the string wins.

    Args:
        address: Composed address, e.g. "Geelong VIC 3220"

    Returns:
        State code such as "VIC", or None if no state is mentioned
    """
    if not address:
        return None

    state = None
    for match in _STATE_PATTERN.finditer(address):
        state = match.lastgroup
    return state
