from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from statement_import.config import ImportSettings
from statement_import.models import DuplicateWarning
from statement_import.profiles import JsonFileProfileStore
from statement_import.web import PROBLEM_JSON, create_app

from tests.helpers.ledger_stub import LedgerStub
from tests.helpers.workbooks import csv_bytes

FORM = {
    "bank_name": "Indicator Bank",
    "date_col": "Date",
    "desc_col": "Description",
    "amount_format_type": "drcr_with_amount",
    "amount_col": "Amount",
    "drcr_col": "Dr/Cr",
    "debit_texts": "DR, Debit",
    "credit_texts": "CR, Credit",
    "trans_id_col": "Reference",
}


def _statement() -> bytes:
    return csv_bytes(
        [
            ["Date", "Description", "Reference", "Amount", "Dr/Cr"],
            ["01/03/2024", "BIG BASKET", "R1", "1,250.00", "DR"],
            ["02/03/2024", "SALARY MARCH", "R2", "50000", "CR"],
            ["03/03/2024", "MYSTERY", "R3", "10", "??"],
        ]
    )


@pytest.fixture
def ledger() -> LedgerStub:
    return LedgerStub(existing_ids=["R2"])


@pytest.fixture
def store(tmp_path: Path) -> JsonFileProfileStore:
    return JsonFileProfileStore(tmp_path / "formats.json")


@pytest.fixture
def client(tmp_path: Path, store, ledger) -> TestClient:
    settings = ImportSettings(
        profile_store=str(tmp_path / "formats.json"),
        commit_concurrency=2,
        max_upload_bytes=4096,
    )
    app = create_app(settings, profile_store=store, ledger=ledger)
    return TestClient(app, raise_server_exceptions=False)


def _upload(data: bytes = b"", name: str = "statement.csv"):
    return {"file": (name, data or _statement(), "text/csv")}


def _assert_problem(resp, status_code: int) -> dict:
    assert resp.status_code == status_code
    assert resp.headers["content-type"].startswith(PROBLEM_JSON)
    body = resp.json()
    assert body["status"] == status_code
    assert body["type"] == "about:blank"
    assert body["instance"]
    return body


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------


def test_parse_with_inline_fields(client):
    resp = client.post("/statements/parse", data={**FORM, "account_id": "7"}, files=_upload())
    assert resp.status_code == 200
    body = resp.json()
    assert body["version"] == 1
    assert body["bank_name"] == "Indicator Bank"
    assert body["account_id"] == 7
    assert body["count"] == 3
    assert body["flagged"] == 1
    assert body["ready"] is False

    grocery, salary, mystery = body["transactions"]
    assert grocery["amount"] == "1250.00"
    assert grocery["direction"] == "expense"
    assert grocery["date"] == "2024-03-01"
    assert salary["duplicate"] == DuplicateWarning.ALREADY_COMMITTED.value
    assert mystery["review_flag"] == "ambiguous_direction"
    assert mystery["direction"] is None


def test_parse_without_account_is_a_preview(client, ledger):
    resp = client.post("/statements/parse", data=FORM, files=_upload())
    assert resp.status_code == 200
    body = resp.json()
    assert body["account_id"] is None
    # No ledger lookup without an account, so nothing is flagged as committed.
    assert all(t["duplicate"] is None for t in body["transactions"])


def test_parse_with_stored_profile(client):
    created = client.post(
        "/statement-formats",
        json={
            "bank_name": "Indicator Bank",
            "date_column": "Date",
            "description_column": "Description",
            "amount_scheme": "single_amount_with_indicator",
            "amount_column": "Amount",
            "indicator_column": "Dr/Cr",
            "debit_tokens": "DR",
            "credit_tokens": ["CR"],
        },
    )
    assert created.status_code == 201
    pid = created.json()["profile"]["id"]

    resp = client.post("/statements/parse", data={"profile_id": pid}, files=_upload())
    assert resp.status_code == 200
    assert resp.json()["count"] == 3


def test_unknown_profile_id_is_404(client):
    body = _assert_problem(
        client.post("/statements/parse", data={"profile_id": "nope"}, files=_upload()), 404
    )
    assert "nope" in body["detail"]


def test_incomplete_profile_lists_missing_fields(client):
    form = {k: v for k, v in FORM.items() if k not in ("drcr_col", "desc_col")}
    body = _assert_problem(client.post("/statements/parse", data=form, files=_upload()), 422)
    assert set(body["missing_fields"]) == {"description_column", "indicator_column"}


def test_unknown_scheme_is_rejected(client):
    form = {**FORM, "amount_format_type": "sideways"}
    body = _assert_problem(client.post("/statements/parse", data=form, files=_upload()), 422)
    assert body["errors"]


def test_unreadable_upload_is_400(client):
    resp = client.post(
        "/statements/parse", data=FORM, files=_upload(b"\x00\x01\x02binary", "x.bin")
    )
    _assert_problem(resp, 400)


def test_missing_columns_are_listed(client):
    data = csv_bytes([["Date", "Description", "Amount"], ["01/03/2024", "x", "1"]])
    body = _assert_problem(
        client.post("/statements/parse", data=FORM, files=_upload(data)), 422
    )
    assert set(body["missing_columns"]) == {"Dr/Cr", "Reference"}


def test_oversized_upload_is_413(client):
    big = csv_bytes([["Date", "Description"]] + [["01/03/2024", "x" * 100]] * 100)
    body = _assert_problem(
        client.post("/statements/parse", data=FORM, files=_upload(big)), 413
    )
    assert body["max_bytes"] == 4096


def test_non_numeric_account_is_400(client):
    _assert_problem(
        client.post("/statements/parse", data={**FORM, "account_id": "abc"}, files=_upload()),
        400,
    )


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------


def _row(n, **kw):
    row = {
        "row_number": n,
        "date": "2024-03-01",
        "description": f"row {n}",
        "amount": "12.50",
        "direction": "expense",
        "category": 3,
    }
    row.update(kw)
    return row


def test_commit_reports_per_row_outcomes(client, ledger):
    ledger.fail_on = ("row 3",)
    resp = client.post(
        "/statements/commit",
        json={
            "account_id": 7,
            "rows": [_row(2), _row(3), _row(4, direction="income", note="refund")],
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["version"] == 1
    assert (body["committed"], body["failed"], body["not_dispatched"]) == (2, 1, 0)
    assert [o["status"] for o in body["outcomes"]] == ["committed", "failed", "committed"]
    assert body["retry_rows"] == [3]
    assert {e.description for e in ledger.entries} >= {"row 4 - refund"}


def test_commit_refuses_unresolved_rows(client, ledger):
    resp = client.post(
        "/statements/commit",
        json={"account_id": 7, "rows": [_row(2), _row(5, category=None), _row(6, direction=None)]},
    )
    body = _assert_problem(resp, 422)
    assert body["row_numbers"] == [5, 6]
    assert ledger.entries == []


def test_commit_rejects_repeated_row_numbers(client):
    resp = client.post("/statements/commit", json={"account_id": 7, "rows": [_row(2), _row(2)]})
    body = _assert_problem(resp, 422)
    assert body["errors"]


@pytest.mark.parametrize("amount", ["0", "0.004", "-3"])
def test_commit_rejects_amounts_below_a_cent(client, ledger, amount):
    resp = client.post(
        "/statements/commit", json={"account_id": 7, "rows": [_row(2, amount=amount)]}
    )
    body = _assert_problem(resp, 422)
    assert body["errors"]
    assert ledger.entries == []


# ---------------------------------------------------------------------------
# Profile CRUD
# ---------------------------------------------------------------------------


def test_profile_crud_round_trip(client):
    profile = {
        "bank_name": "Token Bank",
        "date_column": "Date",
        "description_column": "Particulars",
        "amount_scheme": "single_amount_with_tokens",
        "amount_column": "Amount",
        "debit_tokens": ["DR"],
        "credit_tokens": ["CR"],
    }
    created = client.post("/statement-formats", json=profile).json()["profile"]
    pid = created["id"]

    listed = client.get("/statement-formats").json()
    assert listed["version"] == 1
    assert listed["count"] == 1
    assert listed["profiles"][0]["id"] == pid

    updated = client.put(
        f"/statement-formats/{pid}", json={**profile, "bank_name": "Token Bank 2"}
    )
    assert updated.status_code == 200
    assert client.get(f"/statement-formats/{pid}").json()["profile"]["bank_name"] == "Token Bank 2"

    assert client.delete(f"/statement-formats/{pid}").status_code == 204
    _assert_problem(client.get(f"/statement-formats/{pid}"), 404)


def test_create_incomplete_profile_is_422(client):
    body = _assert_problem(
        client.post("/statement-formats", json={"bank_name": "x", "amount_scheme": "separate_debit_credit"}),
        422,
    )
    assert "debit_column" in body["missing_fields"]
