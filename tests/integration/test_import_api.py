import asyncio
from datetime import date

import pytest
from httpx import AsyncClient

from spendsort.core.config import settings
from spendsort.domain.imports import services as import_services

BANK_CSV = (
    "Date,Description,Amount,Merchant,Notes\n"
    "2026-03-01,Morning coffee,-4.50,Blue Bottle,\n"
    "2026-03-02,Monthly rent,-1200.00,Landlord,March\n"
    "2026-03-03,Paycheck,3000.00,ACME Corp,\n"
).encode("utf-8")

DEFAULT_MAPPING = {
    "Date": "date",
    "Description": "description",
    "Amount": "amount",
    "Merchant": "merchant",
    "Notes": "notes",
}


async def _upload(client: AsyncClient, content: bytes = BANK_CSV, filename: str = "bank.csv"):
    return await client.post("/api/import", files={"file": (filename, content, "text/csv")})


async def _validated_batch(client: AsyncClient, content: bytes = BANK_CSV) -> str:
    response = await _upload(client, content)
    assert response.status_code == 201
    batch_id = response.json()["batch_id"]
    response = await client.put(f"/api/import/{batch_id}/mapping", json={"mapping": DEFAULT_MAPPING})
    assert response.status_code == 200
    response = await client.post(f"/api/import/{batch_id}/validate")
    assert response.status_code == 200
    return batch_id


@pytest.mark.asyncio
async def test_full_import_flow(client: AsyncClient):
    response = await _upload(client)
    assert response.status_code == 201
    upload = response.json()
    assert upload["state"] == "uploaded"
    assert upload["columns"] == ["Date", "Description", "Amount", "Merchant", "Notes"]
    assert upload["total_rows"] == 3
    assert upload["suggested_mapping"] == DEFAULT_MAPPING
    batch_id = upload["batch_id"]

    response = await client.put(
        f"/api/import/{batch_id}/mapping", json={"mapping": upload["suggested_mapping"]}
    )
    assert response.status_code == 200
    assert response.json()["state"] == "mapped"
    assert response.json()["unmapped_columns"] == []

    response = await client.post(f"/api/import/{batch_id}/validate")
    validation = response.json()
    assert validation["state"] == "validated"
    assert validation["valid_count"] == 3
    assert validation["error_count"] == 0
    assert [row["transaction_type"] for row in validation["valid_rows"]] == ["expense", "expense", "income"]

    response = await client.post(f"/api/import/{batch_id}/commit")
    assert response.status_code == 200
    commit = response.json()
    assert commit["state"] == "committed"
    assert commit["imported"] == 3
    assert commit["failed"] == 0
    assert len(commit["transaction_ids"]) == 3

    listing = (await client.get("/api/transactions")).json()
    assert listing["total"] == 3
    assert {item["description"] for item in listing["items"]} == {"Morning coffee", "Monthly rent", "Paycheck"}

    status = (await client.get(f"/api/import/{batch_id}")).json()
    assert status["state"] == "committed"
    assert status["valid_count"] == 3


@pytest.mark.asyncio
async def test_commit_applies_rules(client: AsyncClient, make_category, make_rule):
    dining = await make_category("Dining")
    housing = await make_category("Housing")
    await make_rule(dining.id, field="merchant", operator="contains", value="bottle")
    await make_rule(housing.id, field="amount", operator="lessThan", value="-1000")

    batch_id = await _validated_batch(client)
    validation = (await client.get(f"/api/import/{batch_id}")).json()
    assert validation["state"] == "validated"

    commit = (await client.post(f"/api/import/{batch_id}/commit")).json()
    assert commit["categorized"] == 2

    by_description = {
        item["description"]: item["category_name"]
        for item in (await client.get("/api/transactions")).json()["items"]
    }
    assert by_description == {"Morning coffee": "Dining", "Monthly rent": "Housing", "Paycheck": None}


@pytest.mark.asyncio
async def test_commit_without_rules(client: AsyncClient, make_category, make_rule):
    dining = await make_category("Dining")
    await make_rule(dining.id, value="coffee")

    batch_id = await _validated_batch(client)
    commit = (await client.post(f"/api/import/{batch_id}/commit", json={"apply_rules": False})).json()
    assert commit["imported"] == 3
    assert commit["categorized"] == 0


@pytest.mark.asyncio
async def test_category_column_wins_over_rules(client: AsyncClient, make_category, make_rule):
    travel = await make_category("Travel")
    dining = await make_category("Dining")
    await make_rule(dining.id, value="coffee")

    content = b"Date,Description,Amount,Category\n2026-03-01,Airport coffee,-6.00,travel\n"
    response = await _upload(client, content)
    batch_id = response.json()["batch_id"]
    await client.put(
        f"/api/import/{batch_id}/mapping",
        json={"mapping": {"Date": "date", "Description": "description", "Amount": "amount", "Category": "category"}},
    )
    validation = (await client.post(f"/api/import/{batch_id}/validate")).json()
    row = validation["valid_rows"][0]
    assert row["category_id"] == travel.id
    assert row["suggested_category_id"] == dining.id

    await client.post(f"/api/import/{batch_id}/commit")
    item = (await client.get("/api/transactions")).json()["items"][0]
    assert item["category_name"] == "Travel"


@pytest.mark.asyncio
async def test_invalid_rows_are_reported_and_skipped(client: AsyncClient):
    content = (
        b"Date,Description,Amount\n"
        b"2026-03-01,Groceries,-52.10\n"
        b"not-a-date,Broken date,-1.00\n"
        b"2026-03-03,,-2.00\n"
        b"2026-03-04,Broken amount,abc\n"
        b"03/05/2026,Pharmacy,\"-12,30\"\n"
    )
    batch_id = (await _upload(client, content)).json()["batch_id"]
    await client.put(
        f"/api/import/{batch_id}/mapping",
        json={"mapping": {"Date": "date", "Description": "description", "Amount": "amount"}},
    )
    validation = (await client.post(f"/api/import/{batch_id}/validate")).json()

    assert validation["total_rows"] == 5
    assert validation["valid_count"] == 2
    assert validation["error_count"] == 3
    assert [row["row_number"] for row in validation["invalid_rows"]] == [2, 3, 4]
    assert validation["invalid_rows"][0]["errors"] == ["Unrecognized date format 'not-a-date'."]
    assert validation["invalid_rows"][1]["errors"] == ["Missing description"]

    commit = (await client.post(f"/api/import/{batch_id}/commit")).json()
    assert commit["imported"] == 2
    assert commit["failed"] == 3
    assert (await client.get("/api/transactions")).json()["total"] == 2


@pytest.mark.asyncio
async def test_steps_out_of_order_conflict(client: AsyncClient):
    batch_id = (await _upload(client)).json()["batch_id"]

    assert (await client.post(f"/api/import/{batch_id}/validate")).status_code == 409
    assert (await client.post(f"/api/import/{batch_id}/commit")).status_code == 409

    await client.put(f"/api/import/{batch_id}/mapping", json={"mapping": DEFAULT_MAPPING})
    assert (await client.post(f"/api/import/{batch_id}/commit")).status_code == 409

    await client.post(f"/api/import/{batch_id}/validate")
    assert (await client.post(f"/api/import/{batch_id}/commit")).status_code == 200

    assert (await client.post(f"/api/import/{batch_id}/commit")).status_code == 409
    assert (await client.put(f"/api/import/{batch_id}/mapping", json={"mapping": DEFAULT_MAPPING})).status_code == 409
    assert (await client.get("/api/transactions")).json()["total"] == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "mapping",
    [
        {"Date": "date", "Description": "description"},
        {"Date": "date", "Description": "description", "Amount": "amount", "Merchant": "description"},
        {"Date": "date", "Description": "description", "Amount": "amount", "Balance": "notes"},
        {"Date": "date", "Description": "description", "Amount": "price"},
    ],
)
async def test_bad_mapping_rejected(client: AsyncClient, mapping):
    batch_id = (await _upload(client)).json()["batch_id"]
    response = await client.put(f"/api/import/{batch_id}/mapping", json={"mapping": mapping})
    assert response.status_code == 422
    assert (await client.get(f"/api/import/{batch_id}")).json()["state"] == "uploaded"


@pytest.mark.asyncio
async def test_remapping_resets_validation(client: AsyncClient):
    batch_id = await _validated_batch(client)
    response = await client.put(f"/api/import/{batch_id}/mapping", json={"mapping": DEFAULT_MAPPING})
    assert response.json()["state"] == "mapped"
    status = (await client.get(f"/api/import/{batch_id}")).json()
    assert status["valid_count"] is None


@pytest.mark.asyncio
async def test_rejects_unsupported_uploads(client: AsyncClient):
    response = await _upload(client, BANK_CSV, filename="bank.xlsx")
    assert response.status_code == 400

    response = await _upload(client, b"")
    assert response.status_code == 400

    response = await _upload(client, b"Date,Date\n2026-01-01,2026-01-02\n")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_duplicates_flagged_and_optionally_skipped(client: AsyncClient, make_transaction):
    await make_transaction(description="Morning coffee", amount=-4.5, transaction_date=date(2026, 3, 1))

    content = BANK_CSV + b"2026-03-03,Paycheck,3000.00,ACME Corp,\n"
    batch_id = await _validated_batch(client, content)
    status = (await client.get(f"/api/import/{batch_id}")).json()
    assert status["valid_count"] == 4

    validation = (await client.post(f"/api/import/{batch_id}/validate")).json()
    assert validation["duplicate_count"] == 2
    flagged = [row["description"] for row in validation["valid_rows"] if row["duplicate"]]
    assert flagged == ["Morning coffee", "Paycheck"]

    commit = (await client.post(f"/api/import/{batch_id}/commit", json={"skip_duplicates": True})).json()
    assert commit["imported"] == 2
    assert commit["skipped_duplicates"] == 2
    assert (await client.get("/api/transactions")).json()["total"] == 3


@pytest.mark.asyncio
async def test_discard_and_unknown_batch(client: AsyncClient):
    batch_id = (await _upload(client)).json()["batch_id"]

    assert (await client.delete(f"/api/import/{batch_id}")).status_code == 204
    assert (await client.get(f"/api/import/{batch_id}")).status_code == 404
    assert (await client.delete(f"/api/import/{batch_id}")).status_code == 404
    assert (await client.post("/api/import/missing/validate")).status_code == 404


@pytest.mark.asyncio
async def test_upload_rate_limited(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_MAX", 2)
    assert (await _upload(client)).status_code == 201
    assert (await _upload(client)).status_code == 201
    assert (await _upload(client)).status_code == 429


@pytest.mark.asyncio
async def test_steps_refused_while_validation_in_flight(client: AsyncClient, session_factory, monkeypatch):
    batch_id = await _validated_batch(client)

    entered = asyncio.Event()
    release = asyncio.Event()
    real_load_active_rules = import_services.load_active_rules

    async def held_load_active_rules(db):
        entered.set()
        await release.wait()
        return await real_load_active_rules(db)

    monkeypatch.setattr(import_services, "load_active_rules", held_load_active_rules)

    async with session_factory() as session:
        validation = asyncio.create_task(import_services.validate_batch(session, batch_id))
        await entered.wait()

        try:
            response = await client.post(f"/api/import/{batch_id}/commit")
            assert response.status_code == 409
            assert "validating" in response.json()["detail"]
            response = await client.put(f"/api/import/{batch_id}/mapping", json={"mapping": DEFAULT_MAPPING})
            assert response.status_code == 409
            assert (await client.post(f"/api/import/{batch_id}/validate")).status_code == 409
        finally:
            release.set()
        result = await validation

    assert result.state == "validated"
    assert (await client.post(f"/api/import/{batch_id}/commit")).status_code == 200
    assert (await client.post(f"/api/import/{batch_id}/commit")).status_code == 409
    assert (await client.get("/api/transactions")).json()["total"] == 3


@pytest.mark.asyncio
async def test_failed_validation_releases_batch(client: AsyncClient, session_factory, monkeypatch):
    batch_id = (await _upload(client)).json()["batch_id"]
    await client.put(f"/api/import/{batch_id}/mapping", json={"mapping": DEFAULT_MAPPING})

    async def broken_load_active_rules(db):
        raise RuntimeError("database went away")

    with monkeypatch.context() as patched:
        patched.setattr(import_services, "load_active_rules", broken_load_active_rules)
        async with session_factory() as session:
            with pytest.raises(RuntimeError):
                await import_services.validate_batch(session, batch_id)

    assert (await client.get(f"/api/import/{batch_id}")).json()["state"] == "mapped"
    assert (await client.post(f"/api/import/{batch_id}/validate")).status_code == 200


@pytest.mark.asyncio
async def test_rule_suggestion_not_shown_as_category(client: AsyncClient, make_category, make_rule):
    dining = await make_category("Dining")
    await make_rule(dining.id, value="coffee")

    batch_id = await _validated_batch(client)
    validation = (await client.post(f"/api/import/{batch_id}/validate")).json()
    coffee = validation["valid_rows"][0]
    assert coffee["suggested_category_id"] == dining.id
    assert coffee["category_id"] is None
    assert coffee["category_name"] is None

    await client.post(f"/api/import/{batch_id}/commit", json={"apply_rules": False})
    items = (await client.get("/api/transactions")).json()["items"]
    assert all(item["category_id"] is None for item in items)
