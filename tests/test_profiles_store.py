import json

import pytest
from statement_import.errors import (
    FormatProfileNotFound,
    InvalidFormatProfile,
    ProfileStoreCorrupt,
    StatementImportError,
)
from statement_import.models import FormatProfile
from statement_import.profiles import (
    JsonFileProfileStore,
    SqlProfileStore,
    open_profile_store,
)


@pytest.fixture
def json_store(tmp_path):
    return JsonFileProfileStore(tmp_path / "profiles" / "formats.json")


def test_json_store_create_assigns_id_and_persists(json_store, indicator_profile):
    created = json_store.create(indicator_profile)
    assert created.id
    assert created.debit_tokens == ["DR", "Debit"]

    # A fresh instance reads the same file.
    again = JsonFileProfileStore(json_store.path)
    assert again.get(created.id) == created

    doc = json.loads(json_store.path.read_text(encoding="utf-8"))
    assert doc["schema_version"] == 1
    assert [p["id"] for p in doc["profiles"]] == [created.id]
    assert not json_store.path.with_suffix(".json.tmp").exists()


def test_json_store_lists_in_creation_order_and_allows_same_bank_name(
    json_store, indicator_profile
):
    first = json_store.create(indicator_profile)
    second = json_store.create(indicator_profile.model_copy(update={"amount_column": "Amt"}))
    assert first.id != second.id
    assert [p.id for p in json_store.list()] == [first.id, second.id]


def test_json_store_update_and_delete(json_store, indicator_profile):
    created = json_store.create(indicator_profile)
    updated = json_store.update(
        created.id, indicator_profile.model_copy(update={"bank_name": "Renamed"})
    )
    assert updated.id == created.id
    assert json_store.get(created.id).bank_name == "Renamed"

    json_store.delete(created.id)
    assert json_store.list() == []
    with pytest.raises(FormatProfileNotFound):
        json_store.get(created.id)


def test_json_store_unknown_id(json_store, indicator_profile):
    with pytest.raises(FormatProfileNotFound) as exc:
        json_store.delete("nope")
    assert "nope" in str(exc.value)
    with pytest.raises(FormatProfileNotFound):
        json_store.update("nope", indicator_profile)


def test_json_store_rejects_incomplete_profile_without_writing(json_store):
    with pytest.raises(InvalidFormatProfile) as exc:
        json_store.create(FormatProfile(bank_name="Half done", date_column="Date"))
    assert "description_column" in exc.value.missing_fields
    assert not json_store.path.exists()


def test_json_store_missing_or_empty_file_is_empty(json_store):
    assert json_store.list() == []
    json_store.path.parent.mkdir(parents=True)
    json_store.path.write_text("", encoding="utf-8")
    assert json_store.list() == []


@pytest.mark.parametrize(
    "content",
    ['{"profiles": [{"bogus": 1}]}', "{not json", '{"schema_version": 99, "profiles": []}'],
    ids=["bad-profile", "bad-json", "future-version"],
)
def test_json_store_unreadable_file_raises(json_store, content):
    json_store.path.parent.mkdir(parents=True)
    json_store.path.write_text(content, encoding="utf-8")
    with pytest.raises(ProfileStoreCorrupt, match="corrupt") as exc:
        json_store.list()
    assert isinstance(exc.value, StatementImportError)
    assert exc.value.path == str(json_store.path)


def test_sql_store_round_trip(db_url, debit_credit_profile, tokens_profile):
    store = SqlProfileStore(database_url=db_url)
    a = store.create(debit_credit_profile)
    b = store.create(tokens_profile)
    assert a.id == "1"
    assert [p.id for p in store.list()] == [a.id, b.id]

    got = store.get(b.id)
    assert got.debit_tokens == ["DR", "WITHDRAWAL"]
    assert got.amount_scheme == tokens_profile.amount_scheme
    assert got.transaction_id_column is None

    store.update(a.id, debit_credit_profile.model_copy(update={"date_format": "%d/%m/%Y"}))
    assert store.get(a.id).date_format == "%d/%m/%Y"

    store.delete(a.id)
    assert [p.id for p in store.list()] == [b.id]


def test_sql_store_unknown_and_malformed_ids(db_url, tokens_profile):
    store = SqlProfileStore(database_url=db_url)
    for bad in ("42", "abc"):
        with pytest.raises(FormatProfileNotFound):
            store.get(bad)
    with pytest.raises(FormatProfileNotFound):
        store.update("42", tokens_profile)
    with pytest.raises(FormatProfileNotFound):
        store.delete("42")


def test_sql_store_validates_before_writing(db_url):
    store = SqlProfileStore(database_url=db_url)
    with pytest.raises(InvalidFormatProfile):
        store.create(FormatProfile(bank_name="X"))
    assert store.list() == []


def test_sql_store_requires_amount_scheme(db_url, tokens_profile):
    store = SqlProfileStore(database_url=db_url)
    created = store.create(tokens_profile)
    with pytest.raises(InvalidFormatProfile) as exc:
        store.update(created.id, tokens_profile.model_copy(update={"amount_scheme": None}))
    assert "amount_scheme" in exc.value.missing_fields
    assert store.get(created.id).amount_scheme == tokens_profile.amount_scheme


def test_open_profile_store_selects_backend(tmp_path):
    assert isinstance(open_profile_store("sql", database_url="sqlite://"), SqlProfileStore)
    store = open_profile_store(str(tmp_path / "f.json"))
    assert isinstance(store, JsonFileProfileStore)
    assert store.path == tmp_path / "f.json"
