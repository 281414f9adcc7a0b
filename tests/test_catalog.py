import pytest
from datetime import datetime
from sqlalchemy.future import select

from farmshop import cache, models

pytestmark = pytest.mark.anyio

NEW_PRODUCT = {"name": "Avocado Box", "description": "Hass avocados", "price": 450, "stock": 20}


async def test_public_product_listing(client, products):
    res = await client.get("/api/products")
    assert res.status_code == 200
    assert [p["name"] for p in res.json()] == ["Sukuma Wiki Bunch", "Free Range Eggs"]
    assert res.json()[0]["categoryId"] is not None


async def test_get_product_not_found(client):
    res = await client.get("/api/products/999")
    assert res.status_code == 404
    assert res.json()["code"] == "NOT_FOUND"


async def test_admin_creates_product(admin_client):
    res = await admin_client.post("/api/products", json=NEW_PRODUCT)
    assert res.status_code == 201
    body = res.json()
    assert body["price"] == 450
    assert body["version"] == 1


async def test_customer_cannot_create_product(alice_client):
    res = await alice_client.post("/api/products", json=NEW_PRODUCT)
    assert res.status_code == 403


@pytest.mark.parametrize("field,value", [("price", 0), ("price", -5), ("stock", -1), ("name", "")])
async def test_product_validation(admin_client, field, value):
    res = await admin_client.post("/api/products", json={**NEW_PRODUCT, field: value})
    assert res.status_code == 400
    assert res.json()["errors"][0]["field"] == field


async def test_product_with_unknown_category(admin_client):
    res = await admin_client.post("/api/products", json={**NEW_PRODUCT, "categoryId": 77})
    assert res.status_code == 400
    assert res.json()["errors"][0]["field"] == "categoryId"


async def test_update_product_refreshes_updated_at(admin_client, products):
    before = (await admin_client.get("/api/products/1")).json()

    res = await admin_client.put("/api/products/1", json={"price": 550, "stock": 4})
    assert res.status_code == 200

    after = (await admin_client.get("/api/products/1")).json()
    assert after["price"] == 550
    assert after["stock"] == 4
    assert after["name"] == before["name"]
    assert after["version"] == before["version"] + 1
    assert datetime.fromisoformat(after["updatedAt"]) > datetime.fromisoformat(before["updatedAt"])


async def test_update_product_rejects_null_price(admin_client, products):
    res = await admin_client.put("/api/products/1", json={"price": None})
    assert res.status_code == 400


async def test_update_missing_product(admin_client):
    res = await admin_client.put("/api/products/404", json={"price": 10})
    assert res.status_code == 404


async def test_search_matches_name_and_description_case_insensitively(client, products):
    by_name = await client.get("/api/products", params={"q": "EGGS"})
    assert [p["id"] for p in by_name.json()] == [2]

    by_description = await client.get("/api/products", params={"q": "organic"})
    assert [p["id"] for p in by_description.json()] == [1]

    assert (await client.get("/api/products", params={"q": "goat"})).json() == []


async def test_search_treats_wildcards_literally(client, products):
    res = await client.get("/api/products", params={"q": "%"})
    assert res.json() == []


async def test_filter_and_sort(client, products):
    in_category = await client.get("/api/products", params={"categoryId": 1})
    assert [p["id"] for p in in_category.json()] == [1]

    cheapest_first = await client.get("/api/products", params={"sortByPrice": "asc"})
    assert [p["id"] for p in cheapest_first.json()] == [2, 1]

    bad = await client.get("/api/products", params={"sortByPrice": "sideways"})
    assert bad.status_code == 400


async def test_delete_product(admin_client, products):
    assert (await admin_client.delete("/api/products/2")).status_code == 200
    assert (await admin_client.get("/api/products/2")).status_code == 404


async def test_delete_ordered_product_conflicts(admin_client, alice_client, products):
    checkout = {
        "totalAmount": 300, "deliveryAddress": "123 Farm Rd", "contactPhone": "0712345678",
        "items": [{"productId": 2, "quantity": 1, "unitPrice": 300}],
    }
    assert (await alice_client.post("/api/orders", json=checkout)).status_code == 201

    res = await admin_client.delete("/api/products/2")
    assert res.status_code == 409


async def test_category_crud(admin_client, client):
    res = await admin_client.post("/api/categories", json={"name": "Dairy"})
    assert res.status_code == 201
    category_id = res.json()["id"]

    res = await admin_client.put(f"/api/categories/{category_id}", json={"description": "Milk and cheese"})
    assert res.json() == {"id": category_id, "name": "Dairy", "description": "Milk and cheese"}

    listed = await client.get("/api/categories")
    assert [c["name"] for c in listed.json()] == ["Dairy"]


async def test_deleting_category_uncategorises_products(admin_client, client, products, session_factory):
    assert [p["id"] for p in (await client.get("/api/categories/1/products")).json()] == [1]

    res = await admin_client.delete("/api/categories/1")
    assert res.status_code == 200

    assert (await client.get("/api/categories/1")).status_code == 404
    product = (await client.get("/api/products/1")).json()
    assert product["categoryId"] is None


async def test_category_writes_need_admin(alice_client, products):
    assert (await alice_client.delete("/api/categories/1")).status_code == 403


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value

    def delete(self, key):
        self.store.pop(key, None)


async def test_product_list_is_cached_and_invalidated(admin_client, client, products, monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(cache, "cache", fake)

    first = await client.get("/api/products")
    assert cache.PRODUCTS_KEY in fake.store
    assert (await client.get("/api/products")).json() == first.json()

    await admin_client.post("/api/products", json=NEW_PRODUCT)
    assert cache.PRODUCTS_KEY not in fake.store
    assert len((await client.get("/api/products")).json()) == 3


async def test_price_that_rounds_to_zero_is_rejected(admin_client, client, products):
    res = await admin_client.post("/api/products", json={**NEW_PRODUCT, "price": 0.004})
    assert res.status_code == 400
    assert res.json()["errors"][0]["field"] == "price"

    res = await admin_client.put("/api/products/1", json={"price": 0.004})
    assert res.status_code == 400

    listing = await client.get("/api/products")
    assert listing.status_code == 200
    assert [p["price"] for p in listing.json()] == [500, 300]


async def test_one_cent_is_a_valid_price(admin_client):
    res = await admin_client.post("/api/products", json={**NEW_PRODUCT, "price": 0.01})
    assert res.status_code == 201
    assert res.json()["price"] == 0.01
