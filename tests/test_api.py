import pytest
from fastapi.testclient import TestClient

from backoffice.database import get_db
from backoffice.main import app
from backoffice.models.invoice import InvoiceStatus


def _create_customer(client, name="Max Mustermann"):
    r = client.post("/api/v1/customers", json={"name": name, "city": "Hamburg"})
    assert r.status_code == 201
    return r.json()


def _create_product(client, stock=5, name="Candle"):
    r = client.post("/api/v1/products", json={"name": name, "selling_price": "9.90", "stock_current": stock})
    assert r.status_code == 201
    return r.json()


def _create_invoice(client, customer_id, product_id=None, quantity=1):
    item = {"title": "Candle", "quantity": quantity, "unit_price": "9.90"}
    if product_id:
        item["product_id"] = product_id
    return client.post("/api/v1/invoices", json={"customer_id": customer_id, "items": [item]})


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_business_routes_require_login(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        r = TestClient(app).get("/api/v1/products")
    finally:
        app.dependency_overrides.clear()
    assert r.status_code == 401


def test_product_crud(client):
    product = _create_product(client, stock=3)
    assert product["stock_current"] == 3
    assert product["is_low_stock"] is False

    r = client.patch(f"/api/v1/products/{product['id']}", json={"stock_minimum": 5})
    assert r.json()["is_low_stock"] is True
    assert [p["id"] for p in client.get("/api/v1/products/low-stock").json()] == [product["id"]]

    assert client.get(f"/api/v1/products/{product['id']}").status_code == 200
    assert client.delete(f"/api/v1/products/{product['id']}").status_code == 204
    r = client.get(f"/api/v1/products/{product['id']}")
    assert r.status_code == 404
    assert r.json() == {"detail": "Product not found", "code": "not_found"}


def test_duplicate_sku(client):
    client.post("/api/v1/products", json={"name": "A", "sku": "FF-1"})
    r = client.post("/api/v1/products", json={"name": "B", "sku": "FF-1"})
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


def test_stock_adjust_endpoint(client):
    product = _create_product(client, stock=2)
    r = client.post(f"/api/v1/products/{product['id']}/stock", json={"quantity": 4, "reason": "Purchase", "reference": "PO-1"})
    assert r.status_code == 200
    assert r.json()["stock_current"] == 6

    r = client.post(f"/api/v1/products/{product['id']}/stock", json={"quantity": -10})
    assert r.status_code == 409
    assert r.json()["code"] == "insufficient_stock"
    assert r.json()["available"] == 6
    assert r.json()["needed"] == 10

    r = client.post(f"/api/v1/products/{product['id']}/stock", json={"quantity": -1, "reason": "Sale"})
    assert r.status_code == 400

    movements = client.get(f"/api/v1/products/{product['id']}/movements").json()
    assert [(m["quantity"], m["reason"]) for m in movements] == [(4, "Purchase"), (2, "StockTake")]


def test_customer_crud_and_invoice_guard(client):
    customer = _create_customer(client)
    assert client.get("/api/v1/customers", params={"q": "muster"}).json()["total"] == 1

    r = client.patch(f"/api/v1/customers/{customer['id']}", json={"email": "max@example.com"})
    assert r.json()["email"] == "max@example.com"

    assert _create_invoice(client, customer["id"]).status_code == 201
    assert client.get(f"/api/v1/customers/{customer['id']}").json()["invoice_count"] == 1
    r = client.delete(f"/api/v1/customers/{customer['id']}")
    assert r.status_code == 409
    assert r.json()["code"] == "referential_conflict"


def test_invoice_lifecycle_over_http(client):
    customer = _create_customer(client)
    product = _create_product(client, stock=5)

    preview = client.get("/api/v1/invoices/number-preview").json()["next_invoice_number"]
    r = _create_invoice(client, customer["id"], product["id"], quantity=3)
    assert r.status_code == 201
    invoice = r.json()
    assert invoice["invoice_number"] == preview
    assert invoice["status"] == InvoiceStatus.DRAFT.value
    assert invoice["customer_name"] == "Max Mustermann"
    assert invoice["total"] == 29.7

    r = client.post(f"/api/v1/invoices/{invoice['id']}/finalize")
    assert r.status_code == 200
    assert r.json()["status"] == "Sent"
    assert client.get(f"/api/v1/products/{product['id']}").json()["stock_current"] == 2

    r = client.post(f"/api/v1/invoices/{invoice['id']}/finalize")
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_state"

    assert client.post(f"/api/v1/invoices/{invoice['id']}/paid").json()["status"] == "Paid"
    assert client.post(f"/api/v1/invoices/{invoice['id']}/cancel").json()["status"] == "Cancelled"
    assert client.get(f"/api/v1/products/{product['id']}").json()["stock_current"] == 5

    audit = client.get(f"/api/v1/invoices/{invoice['id']}/audit").json()
    assert len(audit) == 4

    assert client.delete(f"/api/v1/invoices/{invoice['id']}").status_code == 409


def test_finalize_insufficient_stock_over_http(client):
    customer = _create_customer(client)
    product = _create_product(client, stock=2, name="Vase")
    invoice = _create_invoice(client, customer["id"], product["id"], quantity=5).json()

    r = client.post(f"/api/v1/invoices/{invoice['id']}/finalize")
    assert r.status_code == 409
    assert r.json()["detail"] == 'Insufficient stock for "Vase": available 2, needed 5'
    assert client.get(f"/api/v1/invoices/{invoice['id']}").json()["status"] == "Draft"


def test_invoice_without_items_is_rejected(client):
    customer = _create_customer(client)
    r = client.post("/api/v1/invoices", json={"customer_id": customer["id"], "items": []})
    assert r.status_code == 400


def test_replace_items_and_delete_draft(client):
    customer = _create_customer(client)
    invoice = _create_invoice(client, customer["id"]).json()

    r = client.put(
        f"/api/v1/invoices/{invoice['id']}/items",
        json={"items": [{"title": "Workshop", "quantity": 2, "unit_price": "45.00"}]},
    )
    assert r.status_code == 200
    assert r.json()["total"] == 90.0

    assert client.delete(f"/api/v1/invoices/{invoice['id']}").status_code == 204
    assert client.get("/api/v1/invoices/number-preview").json()["next_invoice_number"] == invoice["invoice_number"]


def test_invoice_list(client):
    customer = _create_customer(client)
    _create_invoice(client, customer["id"])
    _create_invoice(client, customer["id"])
    body = client.get("/api/v1/invoices", params={"status": "Draft"}).json()
    assert body["total"] == 2
    assert client.get("/api/v1/invoices", params={"status": "Paid"}).json()["total"] == 0


def test_invoice_pdf_endpoint(client):
    customer = _create_customer(client)
    invoice = _create_invoice(client, customer["id"]).json()
    r = client.get(f"/api/v1/invoices/{invoice['id']}/pdf")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")


def test_settings_roundtrip(client):
    r = client.patch("/api/v1/settings", json={"invoice_prefix": "RE", "invoice_year": 2030, "vat_enabled": True})
    assert r.status_code == 200
    body = r.json()
    assert body["next_invoice_number"] == "RE-2030-0001"
    assert body["vat_enabled"] is True
    assert client.get("/api/v1/settings").json()["invoice_prefix"] == "RE"


def test_dashboard(client):
    customer = _create_customer(client)
    product = _create_product(client, stock=0)
    invoice = _create_invoice(client, customer["id"]).json()
    client.post(f"/api/v1/invoices/{invoice['id']}/finalize")
    client.post(f"/api/v1/invoices/{invoice['id']}/paid")

    body = client.get("/api/v1/reports/dashboard").json()
    assert body["total_customers"] == 1
    assert body["revenue"] == 9.9
    assert body["open_invoices"] == 0
    assert body["low_stock_count"] == 1
    assert body["low_stock"][0]["id"] == product["id"]
    assert body["recent_invoices"][0]["invoice_number"] == invoice["invoice_number"]


def test_movement_report(client):
    product = _create_product(client, stock=4)
    rows = client.get("/api/v1/reports/movements", params={"product_id": product["id"]}).json()
    assert rows[0]["reason"] == "StockTake"
    assert rows[0]["product_name"] == "Candle"


@pytest.mark.parametrize("body", [{"invoice_prefix": None}, {"vat_enabled": None}, {"company_name": None}])
def test_settings_reject_null_for_required_fields(client, body):
    before = client.get("/api/v1/settings").json()
    r = client.patch("/api/v1/settings", json=body)
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"
    assert client.get("/api/v1/settings").json() == before


def test_product_and_customer_reject_null_name(client):
    product = _create_product(client)
    r = client.patch(f"/api/v1/products/{product['id']}", json={"name": None})
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"
    assert client.get(f"/api/v1/products/{product['id']}").json()["name"] == "Candle"

    customer = _create_customer(client)
    r = client.patch(f"/api/v1/customers/{customer['id']}", json={"name": None})
    assert r.status_code == 400
    assert client.get(f"/api/v1/customers/{customer['id']}").json()["name"] == "Max Mustermann"


def test_null_sku_clears_it(client):
    product = client.post("/api/v1/products", json={"name": "Lamp", "sku": "FF-9"}).json()
    r = client.patch(f"/api/v1/products/{product['id']}", json={"sku": None})
    assert r.status_code == 200
    assert r.json()["sku"] is None


def test_movement_limit(client):
    product = _create_product(client, stock=2)
    client.post(f"/api/v1/products/{product['id']}/stock", json={"quantity": 1, "reason": "Purchase"})
    url = f"/api/v1/products/{product['id']}/movements"
    assert len(client.get(url, params={"limit": 1}).json()) == 1
    assert client.get(url, params={"limit": 0}).status_code == 422
