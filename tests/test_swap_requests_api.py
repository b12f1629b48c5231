import pytest


@pytest.fixture
def listing(make_user, make_item):
    owner = make_user(name="Owner")
    requester = make_user(name="Requester")
    item = make_item(owner, points=70, title="Rain jacket")
    return owner, requester, item


def create(client, headers, item, **fields):
    body = {"item_id": str(item["_id"]), "swap_type": "item_for_points", "points_offered": 50, **fields}
    return client.post("/api/swap-requests", json=body, headers=headers)


def test_create_swap_request(client, db, listing, auth_headers):
    owner, requester, item = listing

    response = create(client, auth_headers(requester), item, message="Would love this")

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["requester_id"] == str(requester["_id"])
    assert data["requester"]["name"] == "Requester"
    assert data["item"]["title"] == "Rain jacket"
    assert data["total_points"] == 50
    assert db.item.find_one({"_id": item["_id"]})["status"] == "pending_swap"


def test_create_rejects_foreign_requester_id(client, db, listing, auth_headers):
    owner, requester, item = listing
    response = create(client, auth_headers(requester), item, requester_id=str(owner["_id"]))
    assert response.status_code == 403
    assert db.swaprequest.count_documents({}) == 0


def test_create_errors(client, listing, auth_headers):
    owner, requester, item = listing
    assert create(client, {}, item).status_code == 401
    assert create(client, auth_headers(requester), item, swap_type="barter").status_code == 400
    assert create(client, auth_headers(requester), item, points_offered=0).status_code == 400
    assert create(client, auth_headers(owner), item).status_code == 400

    too_much = create(client, auth_headers(requester), item, points_offered=500)
    assert too_much.status_code == 400
    assert too_much.json()["message"] == "Insufficient points"


def test_full_lifecycle(client, db, listing, auth_headers):
    owner, requester, item = listing
    swap_id = create(client, auth_headers(requester), item).json()["data"]["id"]
    url = f"/api/swap-requests/{swap_id}"

    denied = client.put(url, json={"action": "approve"}, headers=auth_headers(requester))
    assert denied.status_code == 403
    assert denied.json()["message"] == "Only item owner can approve swap requests"

    approved = client.put(url, json={"action": "approve", "message": "Sure"}, headers=auth_headers(owner))
    assert approved.status_code == 200
    assert approved.json()["message"] == "Swap request approved successfully"
    assert db.user.find_one({"_id": requester["_id"]})["points"] == 50
    assert db.user.find_one({"_id": owner["_id"]})["points"] == 150

    completed = client.put(url, json={"action": "complete", "rating": 4, "review": "Smooth"},
                           headers=auth_headers(requester))
    assert completed.status_code == 200
    assert completed.json()["data"]["status"] == "completed"
    assert db.user.find_one({"_id": owner["_id"]})["stats"]["rating"] == 4

    again = client.put(url, json={"action": "approve"}, headers=auth_headers(owner))
    assert again.status_code == 400
    assert again.json()["message"] == "Can only approve pending requests"


def test_update_validation(client, listing, auth_headers):
    owner, requester, item = listing
    swap_id = create(client, auth_headers(requester), item).json()["data"]["id"]
    url = f"/api/swap-requests/{swap_id}"

    assert client.put(url, json={"action": "dance"}, headers=auth_headers(owner)).status_code == 400
    assert client.put(url, json={"action": "complete", "rating": 9}, headers=auth_headers(owner)).status_code == 400
    assert client.put(url, json={"action": "approve", "user_id": str(requester["_id"])},
                      headers=auth_headers(owner)).status_code == 403


def test_get_and_list(client, listing, make_item, auth_headers):
    owner, requester, item = listing
    other = make_item(owner, title="Cap", category="accessories")
    first = create(client, auth_headers(requester), item).json()["data"]["id"]
    create(client, auth_headers(requester), other, points_offered=10)

    assert client.get(f"/api/swap-requests/{first}").json()["data"]["id"] == first
    assert client.get("/api/swap-requests/64b7f0000000000000000000").status_code == 404

    everything = client.get("/api/swap-requests").json()
    assert everything["pagination"]["total"] == 2

    for_item = client.get("/api/swap-requests", params={"item_id": str(item["_id"])}).json()["data"]
    assert [s["id"] for s in for_item] == [first]

    owned = client.get("/api/swap-requests", params={"user_id": str(owner["_id"])}).json()["data"]
    assert len(owned) == 2
    assert client.get("/api/swap-requests", params={"status": "approved"}).json()["data"] == []


def test_owner_and_item_filters_intersect(client, listing, make_user, make_item, auth_headers):
    owner, requester, item = listing
    stranger = make_user(name="Stranger")
    theirs = make_item(stranger, title="Tote", category="bags")
    mine = create(client, auth_headers(requester), item).json()["data"]["id"]
    create(client, auth_headers(requester), theirs, points_offered=10)

    both = client.get("/api/swap-requests", params={"user_id": str(owner["_id"]), "item_id": str(item["_id"])})
    assert [s["id"] for s in both.json()["data"]] == [mine]

    elsewhere = client.get("/api/swap-requests", params={"user_id": str(owner["_id"]), "item_id": str(theirs["_id"])})
    assert elsewhere.json()["data"] == []
    assert elsewhere.json()["pagination"]["total"] == 0


def test_delete(client, db, listing, auth_headers):
    owner, requester, item = listing
    swap_id = create(client, auth_headers(requester), item).json()["data"]["id"]
    url = f"/api/swap-requests/{swap_id}"

    mismatch = client.delete(url, params={"user_id": str(owner["_id"])}, headers=auth_headers(requester))
    assert mismatch.status_code == 403

    response = client.delete(url, headers=auth_headers(requester))
    assert response.status_code == 200
    assert db.swaprequest.count_documents({}) == 0
    assert db.item.find_one({"_id": item["_id"]})["status"] == "available"
