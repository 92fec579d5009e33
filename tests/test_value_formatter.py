from datetime import date, datetime

import pytest

from slidebind.value_formatter import format_value, to_text


@pytest.mark.parametrize(
    "value, spec, expected",
    [
        (1234.5, "C", "$1,234.50"),
        (-5, "C", "-$5.00"),
        ("1234.5", "C0", "$1,235"),
        (1234.5, "N", "1,234.50"),
        (1234.5, "N0", "1,235"),
        (2.25, "F1", "2.3"),
        (0.125, "P", "12.50%"),
        (0.5, "P0", "50%"),
        (42, "D4", "0042"),
        (-7, "D3", "-007"),
    ],
)
def test_numeric_specifiers(value, spec, expected):
    assert format_value(value, spec) == expected


@pytest.mark.parametrize(
    "value, spec, expected",
    [
        (date(2024, 3, 5), "yyyy-MM-dd", "2024-03-05"),
        (date(2024, 3, 5), "dd MMM yyyy", "05 Mar 2024"),
        (date(2024, 3, 5), "dddd, MMMM d", "Tuesday, March 5"),
        (datetime(2024, 3, 5, 14, 7), "HH:mm", "14:07"),
        ("2024-03-05T14:07:00", "hh:mm tt", "02:07 PM"),
        (date(2024, 3, 5), "yyyy 'Q1'", "2024 Q1"),
    ],
)
def test_date_patterns(value, spec, expected):
    assert format_value(value, spec) == expected


def test_text_specifiers():
    assert format_value("Widget", "U") == "WIDGET"
    assert format_value("Widget", "L") == "widget"
    assert format_value("Quarterly results", "T9") == "Quarterly"


@pytest.mark.parametrize(
    "value, spec",
    [("abc", "N2"), (4.5, "D2"), (True, "C"), ("soon", "yyyy"), ("x", "Z9")],
)
def test_inapplicable_specifier_falls_back_to_plain_text(value, spec):
    assert format_value(value, spec) == to_text(value)


def test_plain_rendering():
    assert format_value(None, "C") == ""
    assert format_value(3.0) == "3"
    assert format_value(2.5) == "2.5"
    assert format_value("text") == "text"
