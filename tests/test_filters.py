import pytest

from apps.restaurant.app import filters
from apps.restaurant.app.errors import ValidationError


def test_simple_conditions():
    assert str(filters.where("status", "=", "booked")) == 'status = "booked"'
    assert str(filters.where("customer_count", ">=", 4)) == "customer_count >= 4"
    assert str(filters.where("total_amount", "<", 10.5)) == "total_amount < 10.5"
    assert str(filters.where("is_active", "=", True)) == "is_active = true"
    assert str(filters.where("table_id", "!=", None)) == "table_id != null"
    assert str(filters.where("expand.table.name", "~", "patio")) == 'expand.table.name ~ "patio"'


def test_strings_are_escaped():
    cond = filters.where("notes", "=", 'x" || id != "')
    assert str(cond) == 'notes = "x\\" || id != \\""'
    assert filters.quote("a\\b") == '"a\\\\b"'


def test_invalid_fields_and_operators():
    with pytest.raises(ValidationError):
        filters.where("status = 1 ||", "=", "x")
    with pytest.raises(ValidationError):
        filters.where("1status", "=", "x")
    with pytest.raises(ValidationError):
        filters.where("status", "==", "x")


def test_combinators():
    a = filters.where("status", "=", "booked")
    b = filters.where("status", "=", "seated")
    c = filters.where("table_id", "!=", "")
    assert filters.render(filters.all_of(a, None)) == 'status = "booked"'
    assert filters.all_of(None, None) is None
    assert filters.render(None) == ""
    assert filters.render(filters.all_of(filters.any_of(a, b), c)) == (
        '(status = "booked" || status = "seated") && table_id != ""'
    )
    assert filters.render(filters.all_of(filters.all_of(a, c), b)) == (
        'status = "booked" && table_id != "" && status = "seated"'
    )
