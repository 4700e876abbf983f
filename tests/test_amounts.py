from decimal import Decimal

import pytest
from statement_import.amounts import (
    indicator_matches,
    resolve_amount,
    resolve_separate_debit_credit,
)
from statement_import.models import ColumnRole, Direction, RawRow, ReviewFlag


def _row(**cells):
    return RawRow(row_number=7, cells={ColumnRole(k): v for k, v in cells.items()})


# ---- separate debit / credit columns -------------------------------------------


@pytest.mark.parametrize(
    ("debit", "credit", "amount", "direction"),
    [
        ("500", "0", Decimal("500"), Direction.EXPENSE),
        ("500", "", Decimal("500"), Direction.EXPENSE),
        (None, "1,000.00", Decimal("1000.00"), Direction.INCOME),
        ("-500", None, Decimal("500"), Direction.EXPENSE),
        (250.75, 0, Decimal("250.75"), Direction.EXPENSE),
        ("500", "-", Decimal("500"), Direction.EXPENSE),
        ("--", " 1,200 ", Decimal("1200"), Direction.INCOME),
        ("\u2014", "75", Decimal("75"), Direction.INCOME),
    ],
)
def test_debit_credit_exactly_one_nonzero(debit, credit, amount, direction):
    res = resolve_separate_debit_credit(_row(debit=debit, credit=credit))
    assert (res.amount, res.direction, res.flag) == (amount, direction, None)


@pytest.mark.parametrize(
    ("debit", "credit"), [("0", "0"), ("200", "300"), ("", None), ("0.001", "0.003")]
)
def test_debit_credit_both_or_neither_is_ambiguous(debit, credit):
    res = resolve_separate_debit_credit(_row(debit=debit, credit=credit))
    assert res.flag is ReviewFlag.AMBIGUOUS_DIRECTION
    assert res.direction is None


def test_debit_credit_malformed_number_is_missing_amount():
    res = resolve_separate_debit_credit(_row(debit="12,5x", credit="-"))
    assert res.flag is ReviewFlag.MISSING_AMOUNT
    assert res.amount is None


# ---- single amount + indicator column ------------------------------------------


def test_indicator_decides_direction_regardless_of_sign(indicator_profile):
    res = resolve_amount(_row(amount="-250.00", indicator="Cr"), indicator_profile)
    assert res.direction is Direction.INCOME
    assert res.amount == Decimal("250.00")

    res = resolve_amount(_row(amount="250.00", indicator=" DR. "), indicator_profile)
    assert res.direction is Direction.EXPENSE
    assert res.amount == Decimal("250.00")


@pytest.mark.parametrize("indicator", ["", None, "XX", "DR/CR"])
def test_indicator_unknown_or_both_is_ambiguous_keeping_amount(indicator, indicator_profile):
    res = resolve_amount(_row(amount="99", indicator=indicator), indicator_profile)
    assert res.flag is ReviewFlag.AMBIGUOUS_DIRECTION
    assert res.amount == Decimal("99")


@pytest.mark.parametrize("amount", ["", None, "0", "abc", "0.004"])
def test_indicator_without_usable_amount_is_missing(amount, indicator_profile):
    res = resolve_amount(_row(amount=amount, indicator="DR"), indicator_profile)
    assert res.flag is ReviewFlag.MISSING_AMOUNT


def test_indicator_matching_rules():
    assert indicator_matches("CR.", "CR")
    assert indicator_matches("by cr", "CR")
    assert indicator_matches(" d ", "D")
    # Single-character tokens only match exactly.
    assert not indicator_matches("DR", "D")
    assert not indicator_matches("", "DR")


# ---- single amount + description tokens ----------------------------------------


def test_tokens_in_description_decide_direction(tokens_profile):
    res = resolve_amount(
        _row(amount="1500", description="NEFT CR FROM ABC"), tokens_profile
    )
    assert res.direction is Direction.INCOME
    assert res.amount == Decimal("1500")

    res = resolve_amount(_row(amount="-40", description="atm withdrawal"), tokens_profile)
    assert res.direction is Direction.EXPENSE
    assert res.amount == Decimal("40")


@pytest.mark.parametrize("description", ["ATM WITHDRAWAL CR REVERSAL", "UPI PAYMENT", ""])
def test_tokens_both_or_neither_is_ambiguous(description, tokens_profile):
    res = resolve_amount(_row(amount="10", description=description), tokens_profile)
    assert res.flag is ReviewFlag.AMBIGUOUS_DIRECTION
    assert res.amount == Decimal("10")
