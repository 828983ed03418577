from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.config import settings
from storefront.context import StorefrontContext
from storefront.db import Base
from storefront.main import app, get_context, get_db
from storefront.store import SqlRecordStore


def _make_client() -> TestClient:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    context = StorefrontContext(SqlRecordStore(TestingSessionLocal))
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_context] = lambda: context
    return TestClient(app)


def _create_item(client: TestClient, **overrides) -> dict:
    payload = {
        "name": "Siomai",
        "category": "dim-sum",
        "base_price": "120.00",
        "track_inventory": True,
        "stock_quantity": 3,
        "low_stock_threshold": 1,
        "variations": [{"name": "Large", "price_delta": "30.00"}],
        "add_ons": [{"name": "Chili Oil", "category": "sauce", "price": "10.00"}],
    }
    payload.update(overrides)
    resp = client.post("/api/v1/menu-items", json=payload)
    assert resp.status_code == 200
    return resp.json()["data"]


def test_menu_item_create_and_list_flow() -> None:
    client = _make_client()
    with client:
        item = _create_item(client, is_on_discount=True, discount_price="100.00")
        assert item["effective_price"] == "100.00"
        assert item["price_label"] == f"{settings.currency_symbol}100.00"
        assert item["show_discount"] is True
        assert item["stock_notice"] == "3 available in stock"

        _create_item(client, name="Congee", category="rice", track_inventory=False)

        fetched = client.get(f"/api/v1/menu-items/{item['menu_item_id']}")
        assert fetched.status_code == 200
        assert fetched.json()["data"]["variations"][0]["price_delta"] == "30.00"

        listed = client.get("/api/v1/menu-items", params={"q": "rice"})
        assert [row["name"] for row in listed.json()["data"]] == ["Congee"]

        grouped = client.get("/api/v1/menu-items", params={"grouped": True})
        assert sorted(grouped.json()["data"]) == ["dim-sum", "rice"]

        missing = client.get("/api/v1/menu-items/nope")
        assert missing.status_code == 404


def test_cart_pricing_and_stock_admission_flow() -> None:
    client = _make_client()
    with client:
        item = _create_item(client)
        large_id = item["variations"][0]["variation_id"]
        chili_id = item["add_ons"][0]["add_on_id"]

        cart_id = client.post("/api/v1/carts").json()["data"]["cart_id"]
        lines_url = f"/api/v1/carts/{cart_id}/lines"

        resp = client.post(
            lines_url,
            json={
                "menu_item_id": item["menu_item_id"],
                "variation_id": large_id,
                "add_on_ids": [chili_id, chili_id],
            },
        )
        assert resp.status_code == 200
        cart = resp.json()["data"]
        line = cart["lines"][0]
        assert line["unit_price"] == "170.00"
        assert line["add_ons"][0]["quantity"] == 2
        assert line["add_ons_label"] == "Chili Oil x2"

        resp = client.post(lines_url, json={"menu_item_id": item["menu_item_id"], "quantity": 2})
        assert resp.status_code == 200
        assert resp.json()["data"]["total_item_count"] == 3
        assert resp.json()["data"]["total_price"] == "410.00"
        assert resp.json()["data"]["total_label"] == f"{settings.currency_symbol}410.00"

        rejected = client.post(lines_url, json={"menu_item_id": item["menu_item_id"]})
        assert rejected.status_code == 409
        assert rejected.json()["detail"] == "Only 3 units available in stock."

        too_many = client.patch(f"{lines_url}/{line['line_id']}", json={"quantity": 2})
        assert too_many.status_code == 409

        removed = client.patch(f"{lines_url}/{line['line_id']}", json={"quantity": 0})
        assert removed.status_code == 200
        assert removed.json()["data"]["total_item_count"] == 2

        cleared = client.delete(lines_url)
        assert cleared.json()["data"]["lines"] == []

        bad_variation = client.post(
            lines_url, json={"menu_item_id": item["menu_item_id"], "variation_id": "nope"}
        )
        assert bad_variation.status_code == 400

        assert client.get("/api/v1/carts/unknown").status_code == 404


def test_unavailable_item_cannot_be_added() -> None:
    client = _make_client()
    with client:
        item = _create_item(client, available=False)
        cart_id = client.post("/api/v1/carts").json()["data"]["cart_id"]

        resp = client.post(
            f"/api/v1/carts/{cart_id}/lines", json={"menu_item_id": item["menu_item_id"]}
        )
        assert resp.status_code == 409


def test_inventory_edit_and_commit_flow() -> None:
    client = _make_client()
    with client:
        siomai = _create_item(client, stock_quantity=2, low_stock_threshold=5)
        congee = _create_item(client, name="Congee", category="rice", track_inventory=False)

        rows = client.get("/api/v1/inventory").json()["data"]
        by_name = {row["item"]["name"]: row for row in rows}
        assert by_name["Siomai"]["availability"]["status"] == "low stock"
        assert by_name["Congee"]["availability"]["status"] == "not tracking"

        resp = client.put(
            f"/api/v1/inventory/{siomai['menu_item_id']}/adjustment",
            json={"kind": "in", "quantity": "10"},
        )
        assert resp.status_code == 200
        client.put(
            f"/api/v1/inventory/{siomai['menu_item_id']}/adjustment",
            json={"kind": "out", "quantity": "3"},
        )
        row = client.get("/api/v1/inventory", params={"q": "siomai"}).json()["data"][0]
        assert row["item"]["stock_quantity"] == 2
        assert row["adjustment"] == {"goods_in": 10, "goods_out": 3}

        resp = client.patch(
            f"/api/v1/inventory/{congee['menu_item_id']}", json={"track_inventory": True}
        )
        assert resp.json()["data"]["availability"]["status"] == "low stock"
        resp = client.post(f"/api/v1/inventory/{congee['menu_item_id']}/adjust", json={"delta": 4})
        assert resp.json()["data"]["item"]["stock_quantity"] == 4
        assert resp.json()["meta"]["modified_count"] == 2

        committed = client.post("/api/v1/inventory/commit")
        assert committed.status_code == 200
        report = committed.json()["data"]
        assert report["all_succeeded"] is True
        assert len(report["succeeded"]) == 2

        stored = client.get(f"/api/v1/menu-items/{siomai['menu_item_id']}").json()["data"]
        assert stored["stock_quantity"] == 9
        assert stored["available"] is True

        stored = client.get(f"/api/v1/menu-items/{congee['menu_item_id']}").json()["data"]
        assert stored["track_inventory"] is True
        assert stored["stock_quantity"] == 4
        assert stored["available"] is True

        after = client.get("/api/v1/inventory")
        assert after.json()["meta"]["modified_count"] == 0


def test_inventory_discard_and_unknown_item() -> None:
    client = _make_client()
    with client:
        item = _create_item(client)
        client.post(f"/api/v1/inventory/{item['menu_item_id']}/adjust", json={"delta": -1})

        discarded = client.delete("/api/v1/inventory/pending")
        assert discarded.json()["meta"]["modified_count"] == 0

        missing = client.patch("/api/v1/inventory/nope", json={"available": False})
        assert missing.status_code == 404
