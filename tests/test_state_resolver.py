"""Unit tests for the state resolver."""
import pytest

from processor.state_resolver import resolve_state


class TestResolveState:
    """Test cases for resolve_state."""

    def test_abbreviation_in_comma_separated_address(self):
        assert resolve_state('Sydney Sports Complex, NSW, 2000') == 'NSW'

    def test_abbreviation_before_postcode(self):
        assert resolve_state('Geelong VIC 3220') == 'VIC'

    def test_partial_word_does_not_match(self):
        """Test 'Vicarage' is not taken for VIC."""
        assert resolve_state('Vicarage Lane, London') is None

    @pytest.mark.parametrize('address,expected', [
        ('Suncorp Stadium, Brisbane, Queensland', 'QLD'),
        ('Hobart, tasmania 7000', 'TAS'),
        ('Perth, Western Australia', 'WA'),
        ('Adelaide Oval, South Australia 5006', 'SA'),
        ('Darwin, Northern Territory', 'NT'),
        ('Canberra, Australian Capital Territory', 'ACT'),
        ('Newcastle, New South Wales', 'NSW'),
    ])
    def test_full_names_case_insensitive(self, address, expected):
        assert resolve_state(address) == expected

    @pytest.mark.parametrize('address,expected', [
        ('Townsville Q.L.D. 4810', 'QLD'),
        ('Bathurst N.S.W.', 'NSW'),
        ('Ballarat Vic. 3350', 'VIC'),
        ('Cairns Qld 4870', 'QLD'),
        ('Brisbane qld 4000', 'QLD'),
        ('Hobart tas 7000', 'TAS'),
        ('Penrith nsw 2750', 'NSW'),
        ('Fremantle WA 6160', 'WA'),
        ('Belconnen ACT 2617', 'ACT'),
    ])
    def test_abbreviation_variants(self, address, expected):
        assert resolve_state(address) == expected

    def test_everyday_words_are_not_states(self):
        """Test lower-case words that spell a state code are ignored."""
        assert resolve_state('Community Act Hall, Sa Street') is None

    def test_last_match_wins(self):
        """Test the state nearest the end of the address wins."""
        assert resolve_state('Victoria Park, Albury NSW 2640') == 'NSW'
        assert resolve_state('Queensland Road, Tweed Heads, NSW, then QLD') == 'QLD'

    @pytest.mark.parametrize('address', [None, '', 'Main Street, Auckland'])
    def test_no_state(self, address):
        assert resolve_state(address) is None
