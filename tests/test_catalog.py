from tests.conftest import auth_headers

PRODUCT = {
    "name": "Solar Fence Energizer",
    "description": "12V energizer for 5 acres",
    "price": 4200,
    "category": "electrical",
    "stock": 4,
}


def test_product_crud(client, admin, customer):
    assert client.post("/products", json=PRODUCT, headers=auth_headers(customer)).status_code == 403

    res = client.post("/products", json=PRODUCT, headers=auth_headers(admin))
    assert res.status_code == 201
    product = res.json()
    assert product["image"] == "default-product.jpg"
    assert product["low_stock_alert"] == 10

    res = client.put(f"/products/{product['id']}", json={"price": 3999}, headers=auth_headers(admin))
    assert res.json()["price"] == 3999
    assert client.get(f"/products/{product['id']}").json()["name"] == PRODUCT["name"]

    assert client.delete(f"/products/{product['id']}", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"/products/{product['id']}").status_code == 404


def test_product_validation(client, admin):
    bad = dict(PRODUCT, category="toys")
    assert client.post("/products", json=bad, headers=auth_headers(admin)).status_code == 422
    bad = dict(PRODUCT, price=-1)
    assert client.post("/products", json=bad, headers=auth_headers(admin)).status_code == 422
    assert client.get("/products/not-an-id").status_code == 400


def test_listing_filters_and_pages(client, make_product):
    make_product(name="Drip Kit", category="agri-tech")
    make_product(name="Hose Clamp", category="hardware")
    make_product(name="Drip Emitter", category="agri-tech")

    res = client.get("/products", params={"category": "agri-tech"}).json()
    assert res["total"] == 2

    res = client.get("/products", params={"search": "drip", "limit": 1, "sort": "name:asc"}).json()
    assert res["total"] == 2
    assert res["count"] == 1
    assert res["data"][0]["name"] == "Drip Emitter"
    assert res["pagination"]["has_next"] is True


def test_categories_and_suggestions(client, make_product):
    make_product(name="Drip Kit", category="agri-tech")
    make_product(name="Copper Wire", category="electrical")
    assert client.get("/products/categories").json() == ["agri-tech", "electrical"]
    assert client.get("/products/suggestions", params={"q": "WIRE"}).json() == ["Copper Wire"]
    assert client.get("/products/suggestions", params={"q": " "}).json() == []


def test_listing_is_cached_until_expiry(client, make_product):
    make_product(name="Drip Kit")
    assert client.get("/products").json()["total"] == 1
    make_product(name="Hose Clamp", category="hardware")
    assert client.get("/products").json()["total"] == 1


def test_service_type_lifecycle(client, admin):
    headers = auth_headers(admin)
    body = {"name": "Pump Repair", "description": "On-site pump repair", "base_price": 499, "estimated_duration": 2}
    res = client.post("/service-types", json=body, headers=headers)
    assert res.status_code == 201
    st_id = res.json()["id"]
    assert client.post("/service-types", json=body, headers=headers).status_code == 400

    other = dict(body, name="Wiring Check")
    other_id = client.post("/service-types", json=other, headers=headers).json()["id"]
    assert client.put(f"/service-types/{other_id}", json={"name": "Pump Repair"}, headers=headers).status_code == 400

    assert [s["name"] for s in client.get("/service-types").json()] == ["Pump Repair", "Wiring Check"]
    assert client.delete(f"/service-types/{st_id}", headers=headers).status_code == 200
    assert [s["name"] for s in client.get("/service-types").json()] == ["Wiring Check"]
    # soft deleted, still readable by id
    assert client.get(f"/service-types/{st_id}").json()["is_active"] is False


def test_equipment_type_lifecycle(client, admin, customer):
    body = {"name": "Solar Pump", "description": "DC submersible", "category": "Solar"}
    assert client.post("/equipment-types", json=body, headers=auth_headers(customer)).status_code == 403
    res = client.post("/equipment-types", json=body, headers=auth_headers(admin))
    eq_id = res.json()["id"]
    res = client.put(f"/equipment-types/{eq_id}", json={"category": "Agri-Tech"}, headers=auth_headers(admin))
    assert res.json()["category"] == "Agri-Tech"
    assert client.delete(f"/equipment-types/{eq_id}", headers=auth_headers(admin)).status_code == 200
    assert client.get("/equipment-types").json() == []
