from datetime import date

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_list_filters(client: AsyncClient, make_category, make_transaction):
    groceries = await make_category("Groceries")
    await make_transaction(description="Whole Foods", transaction_date=date(2026, 2, 1), category_id=groceries.id)
    await make_transaction(description="Coffee", merchant="Blue Bottle", transaction_date=date(2026, 2, 10))
    await make_transaction(description="Salary", amount=3000.0, transaction_date=date(2026, 1, 31))

    everything = (await client.get("/api/transactions")).json()
    assert everything["total"] == 3
    assert [item["description"] for item in everything["items"]] == ["Coffee", "Whole Foods", "Salary"]

    uncategorized = (await client.get("/api/transactions", params={"uncategorized": "true"})).json()
    assert {item["description"] for item in uncategorized["items"]} == {"Coffee", "Salary"}

    by_category = (await client.get("/api/transactions", params={"category_id": groceries.id})).json()
    assert by_category["items"][0]["category_name"] == "Groceries"

    search = (await client.get("/api/transactions", params={"search": "blue"})).json()
    assert [item["description"] for item in search["items"]] == ["Coffee"]

    february = (
        await client.get("/api/transactions", params={"date_from": "2026-02-01", "date_to": "2026-02-28"})
    ).json()
    assert february["total"] == 2

    paged = (await client.get("/api/transactions", params={"limit": 1, "offset": 1})).json()
    assert paged["total"] == 3
    assert [item["description"] for item in paged["items"]] == ["Whole Foods"]


@pytest.mark.asyncio
async def test_assign_and_clear_category(client: AsyncClient, make_category, make_transaction):
    category = await make_category("Dining")
    transaction = await make_transaction()

    response = await client.put(f"/api/transactions/{transaction.id}", json={"category_id": category.id})
    assert response.status_code == 200
    assert response.json()["category_name"] == "Dining"

    response = await client.put(f"/api/transactions/{transaction.id}", json={"category_id": None})
    assert response.status_code == 200
    assert response.json()["category_id"] is None
    assert response.json()["category_name"] is None


@pytest.mark.asyncio
async def test_update_rejects_unknown_category(client: AsyncClient, make_transaction):
    transaction = await make_transaction()
    response = await client.put(f"/api/transactions/{transaction.id}", json={"category_id": 999})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_amount_change_updates_type(client: AsyncClient, make_transaction):
    transaction = await make_transaction(amount=-10.0)
    response = await client.put(f"/api/transactions/{transaction.id}", json={"amount": 10.0, "notes": "refund"})
    body = response.json()
    assert body["transaction_type"] == "income"
    assert body["notes"] == "refund"


@pytest.mark.asyncio
async def test_get_and_delete(client: AsyncClient, make_transaction):
    transaction = await make_transaction()
    assert (await client.get(f"/api/transactions/{transaction.id}")).status_code == 200
    assert (await client.delete(f"/api/transactions/{transaction.id}")).status_code == 204
    assert (await client.get(f"/api/transactions/{transaction.id}")).status_code == 404


@pytest.mark.asyncio
async def test_categorize_uses_active_rules(client: AsyncClient, make_category, make_rule, make_transaction):
    dining = await make_category("Dining")
    other = await make_category("Other")
    await make_rule(dining.id, value="coffee", priority=1)
    await make_rule(other.id, value="coffee", priority=0, is_active=False)

    matching = await make_transaction(description="Morning coffee")
    await make_transaction(description="Rent")
    already = await make_transaction(description="Coffee beans", category_id=other.id)

    response = await client.post("/api/transactions/categorize")
    assert response.json() == {"examined": 2, "categorized": 1}
    assert (await client.get(f"/api/transactions/{matching.id}")).json()["category_id"] == dining.id
    assert (await client.get(f"/api/transactions/{already.id}")).json()["category_id"] == other.id

    response = await client.post("/api/transactions/categorize", json={"overwrite": True})
    assert response.json() == {"examined": 3, "categorized": 1}
    assert (await client.get(f"/api/transactions/{already.id}")).json()["category_id"] == dining.id


@pytest.mark.asyncio
async def test_deleted_rule_stops_matching(client: AsyncClient, make_category, make_rule, make_transaction):
    category = await make_category()
    rule = await make_rule(category.id, value="gym")
    transaction = await make_transaction(description="City Gym")

    assert (await client.delete(f"/api/rules/{rule.id}")).status_code == 204
    response = await client.post("/api/transactions/categorize")
    assert response.json()["categorized"] == 0
    assert (await client.get(f"/api/transactions/{transaction.id}")).json()["category_id"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["transaction_date", "description", "amount", "transaction_type"])
async def test_required_fields_cannot_be_cleared(client: AsyncClient, make_transaction, field):
    transaction = await make_transaction()
    response = await client.put(f"/api/transactions/{transaction.id}", json={field: None})
    assert response.status_code == 422
    assert (await client.get(f"/api/transactions/{transaction.id}")).json()["transaction_type"] == "expense"


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(client: AsyncClient, make_transaction):
    await make_transaction(description="100% refund")
    await make_transaction(description="1000 refund")
    await make_transaction(description="ATM_FEE")
    await make_transaction(description="ATMXFEE")

    percent = (await client.get("/api/transactions", params={"search": "0%"})).json()
    assert [item["description"] for item in percent["items"]] == ["100% refund"]

    underscore = (await client.get("/api/transactions", params={"search": "atm_"})).json()
    assert [item["description"] for item in underscore["items"]] == ["ATM_FEE"]
