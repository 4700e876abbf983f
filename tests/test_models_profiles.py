import pytest
from pydantic import ValidationError
from statement_import.errors import InvalidFormatProfile
from statement_import.models import (
    AmountScheme,
    ColumnRole,
    FormatProfile,
    normalize_label,
    split_tokens,
)
from statement_import.schemas import profile_from_form, resolve_scheme


def test_empty_profile_reports_every_base_field_at_once():
    assert FormatProfile().missing_fields() == [
        "bank_name",
        "date_column",
        "description_column",
        "amount_scheme",
    ]


def test_scheme_specific_fields_are_required():
    profile = FormatProfile(
        bank_name="X",
        date_column="Date",
        description_column="Desc",
        amount_scheme="separate_debit_credit",
    )
    with pytest.raises(InvalidFormatProfile) as exc:
        profile.ensure_valid()
    assert exc.value.missing_fields == ("debit_column", "credit_column")


def test_indicator_scheme_requires_both_token_sets():
    profile = FormatProfile(
        bank_name="X",
        date_column="Date",
        description_column="Desc",
        amount_scheme=AmountScheme.SINGLE_AMOUNT_WITH_INDICATOR,
        amount_column="Amount",
        indicator_column="Type",
        debit_tokens="DR",
    )
    assert profile.missing_fields() == ["credit_tokens"]


def test_blank_strings_become_none():
    profile = FormatProfile(bank_name="   ", date_column="", transaction_id_column=" ")
    assert profile.bank_name is None
    assert profile.date_column is None
    assert profile.transaction_id_column is None


def test_tokens_split_trimmed_and_deduplicated():
    profile = FormatProfile(debit_tokens=" DR, Withdrawal ;dr|  ", credit_tokens=["CR", " cr ", ""])
    assert profile.debit_tokens == ["DR", "Withdrawal"]
    assert profile.credit_tokens == ["CR"]
    assert split_tokens("a\nb\r\nA") == ["a", "b"]


def test_unknown_fields_and_schemes_are_rejected():
    with pytest.raises(ValidationError):
        FormatProfile(bank_name="X", sheet_name="Sheet1")
    with pytest.raises(ValidationError):
        FormatProfile(amount_scheme="signed_amount")


def test_mapped_columns_ignore_fields_the_scheme_does_not_read(indicator_profile):
    stale = indicator_profile.model_copy(update={"debit_column": "Withdrawal"})
    cols = stale.mapped_columns()
    assert ColumnRole.DEBIT not in cols
    assert cols == {
        ColumnRole.DATE: "Date",
        ColumnRole.DESCRIPTION: "Description",
        ColumnRole.AMOUNT: "Amount",
        ColumnRole.INDICATOR: "Dr/Cr",
        ColumnRole.TRANSACTION_ID: "Reference",
    }


def test_tokens_scheme_maps_no_indicator(tokens_profile):
    assert ColumnRole.INDICATOR not in tokens_profile.mapped_columns()


def test_normalize_label_is_case_and_whitespace_insensitive():
    assert normalize_label("  Txn   DATE ") == normalize_label("txn date")
    assert normalize_label(None) == ""


def test_profile_from_form_maps_field_names_and_alias():
    profile = profile_from_form(
        bank_name="HDFC",
        date_col="Date",
        desc_col="Narration",
        amount_format_type="drcr_with_amount",
        amount_col="Amount",
        drcr_col="Dr / Cr",
        debit_texts="DR",
        credit_texts="CR",
        debit_col="",
        trans_id_col="",
    )
    assert profile.amount_scheme is AmountScheme.SINGLE_AMOUNT_WITH_INDICATOR
    assert profile.indicator_column == "Dr / Cr"
    assert profile.debit_column is None
    assert profile.transaction_id_column is None
    assert profile.missing_fields() == []


def test_resolve_scheme_passes_unknown_values_through():
    assert resolve_scheme("") is None
    assert resolve_scheme(" Separate_Debit_Credit ") == "separate_debit_credit"
    assert resolve_scheme("bogus") == "bogus"


def test_without_id_clears_id(indicator_profile):
    stored = indicator_profile.model_copy(update={"id": "abc"})
    assert stored.without_id().id is None
    assert stored.id == "abc"
