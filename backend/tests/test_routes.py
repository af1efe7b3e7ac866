"""
HTTP API tests.

Requests run in their own app context and session, so tests expire the
fixture session before reading rows back.
"""

import pytest

from tradeops.models import Product, PurchaseOrder, StockMovement
from tradeops.time_utils import current_year


def test_health(client, db_session):
    res = client.get("/health")

    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["details"]["dialect"] == "sqlite"


@pytest.mark.parametrize(
    "method,url",
    [
        ("post", "/api/orders"),
        ("patch", "/api/orders/1"),
        ("patch", "/api/orders/1/status"),
        ("post", "/api/orders/1/payment"),
        ("post", "/api/products"),
        ("post", "/api/products/1/adjust"),
        ("post", "/api/suppliers"),
        ("post", "/api/purchase-orders"),
        ("post", "/api/purchase-orders/1/receive"),
        ("post", "/api/purchase-orders/1/payment"),
        ("post", "/api/shipments"),
        ("patch", "/api/shipments/1"),
        ("delete", "/api/shipments/1"),
        ("patch", "/api/shipments/1/status"),
        ("post", "/api/shipments/1/payment"),
        ("post", "/api/shipping-companies"),
    ],
)
def test_mutations_require_actor(client, db_session, method, url):
    res = getattr(client, method)(url, json={})

    assert res.status_code == 400
    assert "X-Actor-Id" in res.get_json()["error"]


def test_blank_actor_is_rejected(client, db_session):
    res = client.post("/api/orders", json={}, headers={"X-Actor-Id": "   "})

    assert res.status_code == 400


def test_order_lifecycle_over_http(client, db_session, actor_headers, make_product):
    product = make_product(stock=10, price_cents=1500)

    res = client.post(
        "/api/orders",
        json={
            "type": "online",
            "customer_name": "Maria Lopez",
            "customer_email": "maria@example.com",
            "items": [{"product_id": product.id, "quantity": 3}],
            "shipping_fee_cents": 700,
        },
        headers=actor_headers,
    )
    assert res.status_code == 201
    order = res.get_json()["order"]
    assert order["order_number"] == f"ORD-{current_year()}-001"
    assert order["total_cents"] == 5200
    assert order["items"][0]["unit_price_cents"] == 1500
    order_id = order["id"]

    res = client.patch(f"/api/orders/{order_id}/status", json={"status": "confirmed"}, headers=actor_headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["order"]["status"] == "confirmed"
    assert [(m["type"], m["quantity"]) for m in body["movements"]] == [("out", -3)]
    assert body["movements"][0]["created_by"] == actor_headers["X-Actor-Id"]

    db_session.expire_all()
    assert db_session.get(Product, product.id).current_stock == 7

    res = client.post(f"/api/orders/{order_id}/payment", json={"amount_cents": 5200}, headers=actor_headers)
    assert res.status_code == 201
    assert res.get_json()["order"]["payment_status"] == "paid"

    res = client.get(f"/api/orders/{order_id}/payments")
    assert res.get_json()["count"] == 1

    res = client.patch(f"/api/orders/{order_id}/status", json={"status": "cancelled"}, headers=actor_headers)
    assert res.status_code == 200
    assert res.get_json()["movements"][0]["reason"] == "return"

    db_session.expire_all()
    assert db_session.get(Product, product.id).current_stock == 10


def test_order_errors_map_to_status_codes(client, db_session, actor_headers, make_product, make_order):
    product = make_product(stock=1)
    order = make_order([(product, 2)])

    res = client.patch(f"/api/orders/{order.id}/status", json={"status": "confirmed"}, headers=actor_headers)
    assert res.status_code == 400
    body = res.get_json()
    assert body["code"] == "insufficient_stock"
    assert body["details"]["shortfall"] == 1

    res = client.patch(f"/api/orders/{order.id}/status", json={"status": "shipped"}, headers=actor_headers)
    assert res.status_code == 400
    assert res.get_json()["code"] == "illegal_transition"

    res = client.patch("/api/orders/9999/status", json={"status": "confirmed"}, headers=actor_headers)
    assert res.status_code == 404

    res = client.patch(f"/api/orders/{order.id}/status", json={}, headers=actor_headers)
    assert res.status_code == 400

    db_session.expire_all()
    assert db_session.query(StockMovement).count() == 0


def test_overpayment_over_http(client, db_session, actor_headers, make_product, make_order):
    order = make_order([(make_product(price_cents=100), 1)])

    assert client.post(
        f"/api/orders/{order.id}/payment", json={"amount_cents": 40}, headers=actor_headers
    ).status_code == 201
    res = client.post(f"/api/orders/{order.id}/payment", json={"amount_cents": 70}, headers=actor_headers)

    assert res.status_code == 400
    assert res.get_json()["code"] == "overpayment_rejected"


def test_order_listing_and_editing(client, db_session, actor_headers, make_product, make_order):
    order = make_order([(make_product(price_cents=1000), 1)])

    res = client.patch(f"/api/orders/{order.id}", json={"discount_cents": 250}, headers=actor_headers)
    assert res.status_code == 200
    assert res.get_json()["order"]["total_cents"] == 750

    res = client.patch(f"/api/orders/{order.id}", json={"status": "confirmed"}, headers=actor_headers)
    assert res.status_code == 400

    res = client.get("/api/orders?status=pending")
    assert [o["id"] for o in res.get_json()["items"]] == [order.id]
    assert client.get(f"/api/orders/{order.id}").status_code == 200
    assert client.get("/api/orders/4242").status_code == 404


def test_product_catalog_endpoints(client, db_session, actor_headers, supplier):
    res = client.post(
        "/api/products",
        json={
            "sku": "MUG-BLUE",
            "name": "Blue mug",
            "supplier_id": supplier.id,
            "price_cents": 899,
            "opening_stock": 24,
            "reorder_level": 6,
        },
        headers=actor_headers,
    )
    assert res.status_code == 201
    product = res.get_json()["product"]
    assert product["current_stock"] == 24

    dup = client.post("/api/products", json={"sku": "MUG-BLUE", "name": "Again"}, headers=actor_headers)
    assert dup.status_code == 409

    bad = client.post("/api/products", json={"sku": "X", "name": "X", "price_cents": "9.99"}, headers=actor_headers)
    assert bad.status_code == 400

    res = client.patch(f"/api/products/{product['id']}", json={"current_stock": 99}, headers=actor_headers)
    assert res.status_code == 400

    res = client.patch(f"/api/products/{product['id']}", json={"price_cents": 999}, headers=actor_headers)
    assert res.status_code == 200
    assert res.get_json()["product"]["price_cents"] == 999

    assert client.get("/api/products").get_json()["count"] == 1
    assert client.get("/api/products/777").status_code == 404


def test_stock_adjustment_endpoints(client, db_session, actor_headers, make_product):
    product = make_product(stock=5, reorder_level=4)

    res = client.post(
        f"/api/products/{product.id}/adjust",
        json={"quantity": -2, "reason": "damage", "notes": "dropped by forklift"},
        headers=actor_headers,
    )
    assert res.status_code == 201
    body = res.get_json()
    assert body["product"]["current_stock"] == 3
    assert body["movement"]["type"] == "out"

    res = client.post(
        f"/api/products/{product.id}/adjust",
        json={"quantity": 1, "reason": "found", "notes": "x"},
        headers=actor_headers,
    )
    assert res.status_code == 400
    assert res.get_json()["code"] == "invalid_stock_adjustment"

    res = client.post(
        f"/api/products/{product.id}/adjust",
        json={"quantity": 1.5, "reason": "found", "notes": "half a box"},
        headers=actor_headers,
    )
    assert res.status_code == 400

    res = client.get(f"/api/products/{product.id}/movements?type=out")
    assert res.get_json()["count"] == 1

    res = client.get(f"/api/products/{product.id}/movements?reference_type=Invoice&reference_id=1")
    assert res.status_code == 400

    res = client.get(f"/api/products/{product.id}/reconcile")
    assert res.get_json()["reconciliation"]["in_sync"] is True
    assert client.get("/api/products/999/reconcile").status_code == 404

    res = client.get("/api/products/low-stock")
    assert [row["id"] for row in res.get_json()["items"]] == [product.id]


def test_supplier_endpoints(client, db_session, actor_headers):
    res = client.post("/api/suppliers", json={"name": "Ningbo Textiles", "country": "CN"}, headers=actor_headers)
    assert res.status_code == 201

    dup = client.post("/api/suppliers", json={"name": "Ningbo Textiles"}, headers=actor_headers)
    assert dup.status_code == 409

    missing = client.post("/api/suppliers", json={"country": "VN"}, headers=actor_headers)
    assert missing.status_code == 400

    assert client.get("/api/suppliers").get_json()["count"] == 1


def test_purchase_order_endpoints(client, db_session, actor_headers, supplier, make_product):
    product = make_product(stock=0)

    res = client.post(
        "/api/purchase-orders",
        json={
            "supplier_id": supplier.id,
            "items": [{"product_id": product.id, "quantity": 50, "unit_cost_cents": 120, "landed_cost_cents": 150}],
        },
        headers=actor_headers,
    )
    assert res.status_code == 201
    po = res.get_json()["purchase_order"]
    item_id = po["items"][0]["id"]

    res = client.patch(f"/api/purchase-orders/{po['id']}/status", json={"status": "shipped"}, headers=actor_headers)
    assert res.status_code == 400

    for status in ("sent", "confirmed", "producing", "shipped"):
        res = client.patch(f"/api/purchase-orders/{po['id']}/status", json={"status": status}, headers=actor_headers)
        assert res.status_code == 200

    res = client.post(
        f"/api/purchase-orders/{po['id']}/receive",
        json={"received": {str(item_id): 48}},
        headers=actor_headers,
    )
    assert res.status_code == 200
    body = res.get_json()
    assert body["purchase_order"]["status"] == "received"
    assert body["purchase_order"]["received_by"] == actor_headers["X-Actor-Id"]
    assert [(m["reason"], m["quantity"]) for m in body["movements"]] == [("shipment_received", 48)]

    db_session.expire_all()
    received = db_session.get(Product, product.id)
    assert received.current_stock == 48
    assert received.landed_cost_cents == 150

    assert client.get(f"/api/purchase-orders/{po['id']}").status_code == 200
    assert client.get("/api/purchase-orders?status=received").get_json()["count"] == 1
    assert client.get("/api/purchase-orders/31337").status_code == 404


def test_report_endpoints(client, db_session, make_product, make_order):
    make_order([(make_product(stock=10, price_cents=500, landed_cost_cents=300), 2)])

    revenue = client.get("/api/reports/revenue").get_json()
    assert revenue["revenue_cents"] == 1000

    profit = client.get("/api/reports/profit").get_json()
    assert profit["gross_profit_cents"] == 400

    stock = client.get("/api/reports/stock-value").get_json()
    assert stock["stock_value_cents"] == 3000

    assert client.get("/api/reports/revenue?start=soon").status_code == 400


def test_purchase_order_payment_endpoint(client, db_session, actor_headers, make_product, make_po):
    po = make_po([(make_product(), 4, 250)])

    res = client.post(f"/api/purchase-orders/{po.id}/payment", json={"amount_cents": 400}, headers=actor_headers)
    assert res.status_code == 201
    body = res.get_json()["purchase_order"]
    assert (body["paid_amount_cents"], body["payment_status"], body["balance_due_cents"]) == (400, "partial", 600)

    res = client.post(f"/api/purchase-orders/{po.id}/payment", json={"amount_cents": 601}, headers=actor_headers)
    assert res.status_code == 400
    assert res.get_json()["code"] == "overpayment_rejected"

    res = client.post(f"/api/purchase-orders/{po.id}/payment", json={"amount_cents": "600"}, headers=actor_headers)
    assert res.get_json()["code"] == "invalid_amount"

    res = client.post("/api/purchase-orders/8080/payment", json={"amount_cents": 1}, headers=actor_headers)
    assert res.status_code == 404


def test_shipping_company_endpoints(client, db_session, actor_headers):
    res = client.post(
        "/api/shipping-companies",
        json={"name": "Kestrel Air Cargo", "rate_per_kg_cents": 650, "min_charge_cents": 4000},
        headers=actor_headers,
    )
    assert res.status_code == 201
    company = res.get_json()["shipping_company"]
    assert company["is_active"] is True

    assert client.post(
        "/api/shipping-companies", json={"name": "Kestrel Air Cargo"}, headers=actor_headers
    ).status_code == 409
    assert client.post(
        "/api/shipping-companies", json={"name": "Cheap Co", "rate_per_kg_cents": -5}, headers=actor_headers
    ).status_code == 400
    assert client.post(
        "/api/shipping-companies", json={"name": "Cheap Co", "rate_per_kg_cents": 1.5}, headers=actor_headers
    ).status_code == 400

    assert client.get("/api/shipping-companies").get_json()["count"] == 1
    assert client.get(f"/api/shipping-companies/{company['id']}").status_code == 200
    assert client.get("/api/shipping-companies/77").status_code == 404


def test_shipment_lifecycle_over_http(client, db_session, actor_headers, make_product, make_po):
    product = make_product(stock=2, landed_cost_cents=500)
    po = make_po([(product, 8, 500)])
    for status in ("sent", "confirmed", "producing"):
        assert client.patch(
            f"/api/purchase-orders/{po.id}/status", json={"status": status}, headers=actor_headers
        ).status_code == 200
    company = client.post(
        "/api/shipping-companies",
        json={"name": "Harbour Line", "rate_per_cbm_cents": 10000},
        headers=actor_headers,
    ).get_json()["shipping_company"]

    quote = client.post(
        "/api/shipments/calculate-cost",
        json={"shipping_company_id": company["id"], "method": "sea", "total_volume_cbm": 0.4},
    )
    assert quote.status_code == 200
    assert quote.get_json()["cost_cents"] == 4000
    bad_quote = client.post(
        "/api/shipments/calculate-cost",
        json={"shipping_company_id": company["id"], "method": "air", "total_weight_kg": 10},
    )
    assert bad_quote.get_json()["code"] == "invalid_shipment_data"

    res = client.post(
        "/api/shipments",
        json={
            "purchase_order_id": po.id,
            "shipping_company_id": company["id"],
            "method": "sea",
            "total_volume_cbm": "0.4",
            "estimated_arrival": "2026-12-01",
        },
        headers=actor_headers,
    )
    assert res.status_code == 201
    shipment = res.get_json()["shipment"]
    assert shipment["shipment_number"] == f"SHIP-{current_year()}-001"
    assert shipment["total_cost_cents"] == 4000
    assert shipment["estimated_arrival"] == "2026-12-01T00:00:00Z"

    res = client.post(
        f"/api/purchase-orders/{po.id}/receive", json={}, headers=actor_headers
    )
    assert res.status_code == 400

    res = client.patch(f"/api/shipments/{shipment['id']}/status", json={"status": "customs"}, headers=actor_headers)
    assert res.get_json()["code"] == "illegal_transition"

    for status in ("in_transit", "customs", "delivered"):
        res = client.patch(
            f"/api/shipments/{shipment['id']}/status", json={"status": status}, headers=actor_headers
        )
        assert res.status_code == 200
    body = res.get_json()
    assert body["shipment"]["status"] == "delivered"
    assert [(m["reference_type"], m["quantity"]) for m in body["movements"]] == [("Shipment", 8)]

    db_session.expire_all()
    received = db_session.get(Product, product.id)
    assert received.current_stock == 10
    # unit landed 500 + 4000 / 8 = 1000; (2 * 500 + 8 * 1000) / 10 = 900
    assert received.landed_cost_cents == 900
    assert db_session.get(PurchaseOrder, po.id).status == "received"

    res = client.post(f"/api/shipments/{shipment['id']}/payment", json={"amount_cents": 4000}, headers=actor_headers)
    assert res.status_code == 201
    assert res.get_json()["shipment"]["payment_status"] == "paid"

    detail = client.get(f"/api/shipments/{shipment['id']}").get_json()
    assert detail["purchase_order"]["status"] == "received"
    assert detail["shipping_company"]["name"] == "Harbour Line"
    assert client.get("/api/shipments?status=delivered").get_json()["count"] == 1
    assert client.get("/api/shipments/999").status_code == 404
    assert client.patch("/api/shipments/999/status", json={"status": "in_transit"},
                        headers=actor_headers).status_code == 404
