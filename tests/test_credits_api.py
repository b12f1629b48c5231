BILLING = {
    "first_name": "Ana",
    "last_name": "Silva",
    "email": "ana@rewear.io",
    "address": {"line1": "1 Loop Rd", "city": "Lisbon", "country": "PT", "postal_code": "1000"},
}


def buy(client, headers, package_id="popular", payment_method="credit_card"):
    body = {"package_id": package_id, "payment_method": payment_method, "billing_details": BILLING}
    return client.post("/api/credits/purchase", json=body, headers=headers)


def test_packages_require_auth(client, make_user, auth_headers):
    assert client.get("/api/credits/purchase").status_code == 401

    packages = client.get("/api/credits/purchase", headers=auth_headers(make_user())).json()["data"]["packages"]
    assert packages["starter"] == {"points": 50, "price": 4.99}
    assert set(packages) == {"starter", "basic", "popular", "premium", "ultimate"}


def test_purchase_credits_points_and_records_payment(client, db, make_user, auth_headers):
    user = make_user(points=100)

    response = buy(client, auth_headers(user))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["points"] == 350
    assert data["payment"]["points_received"] == 250
    assert data["payment"]["status"] == "completed"
    assert data["payment"]["transaction_id"].startswith("mock_")

    payment = db.payment.find_one({"user_id": str(user["_id"])})
    assert payment["status"] == "completed"
    assert payment["gateway"] == "stripe"
    txn = db.transaction.find_one({"user_id": str(user["_id"])})
    assert txn["type"] == "purchase"
    assert txn["amount"] == 250
    assert txn["payment_id"] == data["payment"]["transaction_id"]


def test_paypal_goes_through_paypal_gateway(client, db, make_user, auth_headers):
    user = make_user()
    assert buy(client, auth_headers(user), "starter", "paypal").status_code == 200
    assert db.payment.find_one()["gateway"] == "paypal"


def test_purchase_rejects_bad_input(client, db, make_user, auth_headers):
    headers = auth_headers(make_user())

    unknown = buy(client, headers, package_id="mega")
    assert unknown.status_code == 400
    assert unknown.json()["message"] == "Invalid credit package"

    assert buy(client, headers, payment_method="cash").status_code == 400
    assert db.payment.count_documents({}) == 0


def test_transactions_listing(client, make_user, auth_headers):
    user = make_user(points=0)
    headers = auth_headers(user)
    buy(client, headers, "starter")
    buy(client, headers, "basic")

    body = client.get("/api/credits/transactions", headers=headers).json()
    assert body["pagination"]["total"] == 2
    assert {t["amount"] for t in body["data"]} == {50, 100}
    assert body["stats"]["total_purchased"] == 150

    assert client.get("/api/credits/transactions", params={"type": "bonus"}, headers=headers).json()["data"] == []
    assert client.get("/api/credits/transactions", headers=auth_headers(make_user())).json()["data"] == []
