import pytest
from bson import ObjectId

NEW_ITEM = {
    "title": "Linen shirt",
    "description": "Light summer shirt",
    "category": "clothing",
    "type": "shirt",
    "size": "L",
    "condition": "like_new",
    "tags": ["summer", "linen"],
    "images": ["https://img.rewear.io/shirt.jpg"],
    "points": 40,
}


def test_create_item_requires_auth(client):
    response = client.post("/api/items", json=NEW_ITEM)
    assert response.status_code == 401
    assert response.json()["message"] == "Authentication required"


def test_create_item(client, db, make_user, auth_headers):
    user = make_user(name="Seller")

    response = client.post("/api/items", json=NEW_ITEM, headers=auth_headers(user))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["title"] == "Linen shirt"
    assert data["status"] == "available"
    assert data["user_id"] == str(user["_id"])
    assert data["owner"]["name"] == "Seller"
    assert db.user.find_one({"_id": user["_id"]})["stats"]["items_listed"] == 1


@pytest.mark.parametrize("bad, field", [
    ({"images": []}, "images"),
    ({"images": ["  "]}, "images"),
    ({"points": 0}, "points"),
    ({"category": "hats"}, "category"),
    ({"condition": "good"}, "condition"),
])
def test_create_item_validation(client, db, make_user, auth_headers, bad, field):
    response = client.post("/api/items", json={**NEW_ITEM, **bad}, headers=auth_headers(make_user()))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert [e.split(":")[0] for e in body["errors"]] == [field]
    assert db.item.count_documents({}) == 0


def test_list_items_filters_and_paginates(client, make_user, make_item):
    owner = make_user()
    make_item(owner, points=10, title="Cheap tee")
    make_item(owner, points=90, title="Leather boots", category="shoes")
    make_item(owner, points=60, title="Old coat", status="swapped")

    response = client.get("/api/items")
    body = response.json()
    assert response.status_code == 200
    assert {i["title"] for i in body["data"]} == {"Cheap tee", "Leather boots"}
    assert body["pagination"]["total"] == 2
    assert body["pagination"]["has_next_page"] is False

    shoes = client.get("/api/items", params={"category": "shoes"}).json()["data"]
    assert [i["title"] for i in shoes] == ["Leather boots"]

    cheap = client.get("/api/items", params={"max_points": 50}).json()["data"]
    assert [i["title"] for i in cheap] == ["Cheap tee"]

    found = client.get("/api/items", params={"search": "BOOTS"}).json()["data"]
    assert [i["title"] for i in found] == ["Leather boots"]

    by_points = client.get("/api/items", params={"sort_by": "points", "sort_order": "asc"}).json()["data"]
    assert [i["points"] for i in by_points] == [10, 90]

    paged = client.get("/api/items", params={"limit": 1, "page": 1}).json()
    assert len(paged["data"]) == 1
    assert paged["pagination"]["total_pages"] == 2
    assert paged["pagination"]["has_next_page"] is True


def test_browse_flattens_seller(client, make_user, make_item):
    owner = make_user(name="Maria")
    make_item(owner, title="Wrap dress")

    items = client.get("/api/items/browse").json()["data"]
    assert items[0]["seller"] == {"name": "Maria", "email": "maria@rewear.io"}
    assert items[0]["brand"] == "Unknown"


def test_get_item_counts_views_and_lists_related(client, make_user, make_item):
    owner = make_user()
    other = make_user()
    item = make_item(owner)
    make_item(other, title="Similar jacket")
    make_item(owner, title="Same owner jacket")

    first = client.get(f"/api/items/{item['_id']}").json()["data"]
    second = client.get(f"/api/items/{item['_id']}").json()["data"]

    assert first["views"] == 1
    assert second["views"] == 2
    assert [r["title"] for r in first["related_items"]] == ["Similar jacket"]


def test_get_item_errors(client):
    missing = client.get(f"/api/items/{ObjectId()}")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Item not found"}
    assert client.get("/api/items/not-an-id").status_code == 400


def test_update_item_owner_only(client, make_user, make_item, auth_headers):
    owner = make_user()
    stranger = make_user()
    item = make_item(owner)

    denied = client.put(f"/api/items/{item['_id']}", json={"title": "Mine now"}, headers=auth_headers(stranger))
    assert denied.status_code == 403

    response = client.put(f"/api/items/{item['_id']}", json={"title": "Vintage denim", "points": 75},
                          headers=auth_headers(owner))
    assert response.status_code == 200
    data = response.json()["data"]
    assert (data["title"], data["points"]) == ("Vintage denim", 75)


def test_update_item_status_moves(client, make_user, make_item, auth_headers):
    owner = make_user()
    headers = auth_headers(owner)
    item = make_item(owner)
    url = f"/api/items/{item['_id']}"

    assert client.put(url, json={"status": "removed"}, headers=headers).json()["data"]["status"] == "removed"
    assert client.put(url, json={"status": "available"}, headers=headers).json()["data"]["status"] == "available"
    assert client.put(url, json={"status": "swapped"}, headers=headers).status_code == 400

    pending = make_item(owner, status="pending_swap")
    assert client.put(f"/api/items/{pending['_id']}", json={"status": "available"}, headers=headers).status_code == 400


def test_delete_item(client, db, make_user, make_item, auth_headers):
    owner = make_user(stats={"items_listed": 1})
    item = make_item(owner)

    assert client.delete(f"/api/items/{item['_id']}", headers=auth_headers(make_user())).status_code == 403

    response = client.delete(f"/api/items/{item['_id']}", headers=auth_headers(owner))
    assert response.status_code == 200
    assert db.item.count_documents({}) == 0
    assert db.user.find_one({"_id": owner["_id"]})["stats"]["items_listed"] == 0


def test_delete_item_with_pending_swap_is_refused(client, db, make_user, make_item, auth_headers):
    owner = make_user()
    item = make_item(owner, status="pending_swap")
    db.swaprequest.insert_one({"item_id": str(item["_id"]), "requester_id": "x", "status": "pending"})

    response = client.delete(f"/api/items/{item['_id']}", headers=auth_headers(owner))
    assert response.status_code == 400
    assert db.item.count_documents({}) == 1


def test_like_and_feature(client, make_user, make_item, auth_headers):
    owner = make_user()
    admin = make_user(name="boss", role="admin")
    item = make_item(owner)
    url = f"/api/items/{item['_id']}"

    assert client.patch(url, json={"action": "like"}).json()["data"]["likes"] == 1

    assert client.patch(url, json={"action": "feature"}).status_code == 401
    assert client.patch(url, json={"action": "feature"}, headers=auth_headers(owner)).status_code == 403
    featured = client.patch(url, json={"action": "feature"}, headers=auth_headers(admin)).json()
    assert featured["data"]["featured"] is True
    assert featured["message"] == "Item featured successfully"

    assert client.patch(url, json={"action": "burn"}).status_code == 400


def test_redeem_endpoint(client, db, make_user, make_item, auth_headers):
    seller = make_user(points=0)
    buyer = make_user(points=100)
    item = make_item(seller, points=60)

    assert client.post("/api/items/redeem", json={}, headers=auth_headers(buyer)).status_code == 400

    response = client.post("/api/items/redeem", json={"item_id": str(item["_id"])}, headers=auth_headers(buyer))
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Item purchased successfully!"
    assert body["data"]["buyer"]["points"] == 40
    assert body["data"]["seller"]["points"] == 54

    again = client.post("/api/items/redeem", json={"item_id": str(item["_id"])}, headers=auth_headers(buyer))
    assert again.status_code == 400
    assert db.user.find_one({"_id": buyer["_id"]})["points"] == 40


def test_redeem_insufficient_points(client, make_user, make_item, auth_headers):
    seller = make_user()
    buyer = make_user(points=5)
    item = make_item(seller, points=60)

    response = client.post("/api/items/redeem", json={"item_id": str(item["_id"])}, headers=auth_headers(buyer))
    assert response.status_code == 400
    assert response.json()["message"] == "Insufficient points to purchase this item"
