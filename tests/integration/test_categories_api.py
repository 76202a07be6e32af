import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_and_list_categories(client: AsyncClient):
    response = await client.post("/api/categories", json={"name": " Groceries ", "type": "expense", "color": "#FF9800"})
    assert response.status_code == 201
    created = response.json()
    assert created["name"] == "Groceries"

    await client.post("/api/categories", json={"name": "Salary", "type": "income"})

    response = await client.get("/api/categories")
    assert response.status_code == 200
    names = [item["name"] for item in response.json()]
    assert names == ["Groceries", "Salary"]


@pytest.mark.asyncio
async def test_duplicate_name_conflicts(client: AsyncClient, make_category):
    await make_category("Rent")
    response = await client.post("/api/categories", json={"name": "rent"})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_invalid_payload_rejected(client: AsyncClient):
    response = await client.post("/api/categories", json={"name": "", "type": "expense"})
    assert response.status_code == 422
    response = await client.post("/api/categories", json={"name": "X", "type": "savings"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_category(client: AsyncClient, make_category):
    category = await make_category("Dining")
    response = await client.put(f"/api/categories/{category.id}", json={"name": "Restaurants", "color": "#112233"})
    assert response.status_code == 200
    assert response.json()["name"] == "Restaurants"
    assert response.json()["color"] == "#112233"

    other = await make_category("Transport")
    response = await client.put(f"/api/categories/{other.id}", json={"name": "Restaurants"})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_delete_blocked_while_referenced(client: AsyncClient, make_category, make_transaction, make_rule):
    used_by_transaction = await make_category("Groceries")
    used_by_rule = await make_category("Coffee")
    unused = await make_category("Unused")
    await make_transaction(category_id=used_by_transaction.id)
    await make_rule(used_by_rule.id)

    assert (await client.delete(f"/api/categories/{used_by_transaction.id}")).status_code == 409
    assert (await client.delete(f"/api/categories/{used_by_rule.id}")).status_code == 409
    assert (await client.delete(f"/api/categories/{unused.id}")).status_code == 204
    assert (await client.delete(f"/api/categories/{unused.id}")).status_code == 404


@pytest.mark.asyncio
async def test_reassign_then_delete(client: AsyncClient, make_category, make_transaction, make_rule):
    old = await make_category("Old")
    new = await make_category("New")
    await make_transaction(description="A", category_id=old.id)
    await make_transaction(description="B", category_id=old.id)
    await make_rule(old.id)

    response = await client.post(f"/api/categories/{old.id}/reassign", json={"new_category_id": new.id})
    assert response.status_code == 200
    assert response.json() == {"moved_transactions": 2, "moved_rules": 1}

    response = await client.get("/api/transactions", params={"category_id": new.id})
    assert response.json()["total"] == 2
    assert (await client.delete(f"/api/categories/{old.id}")).status_code == 204
