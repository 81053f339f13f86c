from datetime import datetime
from sowtracker.utils.csv_export import (
    convert_to_csv, escape_csv_value, format_date_for_csv, format_datetime_for_csv
)


def test_empty_rows_give_empty_string():
    assert convert_to_csv([]) == ''
    assert convert_to_csv(None) == ''


def test_headers_default_to_first_row_keys():
    rows = [{'tag': 'S-1', 'notes': None}, {'tag': 'S-2', 'notes': 'ok'}]
    assert convert_to_csv(rows) == 'tag,notes\nS-1,\nS-2,ok'


def test_explicit_headers_control_order_and_missing_values():
    rows = [{'a': 1, 'b': 2}]
    assert convert_to_csv(rows, headers=['b', 'c', 'a']) == 'b,c,a\n2,,1'


def test_values_with_delimiters_are_quoted():
    assert escape_csv_value('plain') == 'plain'
    assert escape_csv_value('Pen 1, Barn 2') == '"Pen 1, Barn 2"'
    assert escape_csv_value('line one\nline two') == '"line one\nline two"'
    assert escape_csv_value('the "big" sow') == '"the ""big"" sow"'
    assert escape_csv_value(None) == ''
    assert escape_csv_value(0) == '0'


def test_quoted_value_inside_row():
    rows = [{'name': 'Daisy, "Queen"', 'litters': 4}]
    assert convert_to_csv(rows) == 'name,litters\n"Daisy, ""Queen""",4'


def test_date_formatting():
    assert format_date_for_csv(datetime(2024, 1, 5)) == '01/05/2024'
    assert format_date_for_csv('2024-01-05') == '01/05/2024'
    assert format_date_for_csv(None) == ''
    assert format_date_for_csv('') == ''
    assert format_date_for_csv('not a date') == ''


def test_datetime_formatting():
    assert format_datetime_for_csv(datetime(2024, 1, 5, 14, 30)) == '01/05/2024, 02:30 PM'
    assert format_datetime_for_csv('2024-01-05T09:05:00Z') == '01/05/2024, 09:05 AM'
    assert format_datetime_for_csv(None) == ''
