"""
Unit tests for document formatting helpers.
"""

from datetime import date, datetime
from decimal import Decimal
from quotebuilder.utils.formatters import money, percent, date_display


class TestMoney:

    def test_thousands_and_decimals(self):
        assert money(4050) == '4 050,00'
        assert money(Decimal('1234567.5'), 'SEK') == '1 234 567,50 SEK'

    def test_small_and_negative_amounts(self):
        assert money('0.5') == '0,50'
        assert money(Decimal('-1500')) == '-1 500,00'

    def test_missing_or_invalid(self):
        assert money(None) == '-'
        assert money('') == '-'
        assert money('abc') == '-'


class TestPercent:

    def test_trailing_zeros_removed(self):
        assert percent(Decimal('25.00')) == '25 %'
        assert percent('12.50') == '12,5 %'
        assert percent(Decimal('100.00')) == '100 %'
        assert percent(0) == '0 %'

    def test_missing(self):
        assert percent(None) == '-'


def test_date_display():
    assert date_display(date(2026, 3, 9)) == '2026-03-09'
    assert date_display(datetime(2026, 3, 9, 14, 30)) == '2026-03-09'
    assert date_display(None) == '-'
