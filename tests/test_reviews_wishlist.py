from bson import ObjectId


def test_reviews_are_public_and_filtered(client, db):
    db["reviews"].insert_many([
        {"book_id": "b1", "comment": "loved it"},
        {"book_id": "b2", "comment": "meh"},
    ])
    assert len(client.get("/reviews").json()) == 2
    r = client.get("/reviews", params={"book_id": "b1"})
    assert r.status_code == 200
    assert [x["comment"] for x in r.json()] == ["loved it"]


def test_review_lifecycle(client, db, as_user):
    assert client.post("/review", json={"book_id": "b1", "rating": 5}).status_code == 401

    r = client.post("/review", json={"book_id": "b1", "rating": 5}, headers=as_user)
    rid = r.json()["insertedId"]
    assert "createdAt" in db["reviews"].find_one({"_id": ObjectId(rid)})

    client.patch(f"/review/{rid}", json={"comment": "re-read it"}, headers=as_user)
    doc = db["reviews"].find_one({"_id": ObjectId(rid)})
    assert doc["comment"] == "re-read it"
    assert doc["rating"] == 5

    assert client.delete(f"/review/{rid}", headers=as_user).status_code == 200
    assert client.get("/reviews", params={"book_id": "b1"}).json() == []


def test_wishlist_duplicate_is_short_circuited(client, db, as_user):
    item = {"email": "reader@example.com", "book_id": "b1"}
    first = client.post("/wishlist", json=item, headers=as_user)
    assert first.status_code == 200
    assert first.json()["insertedId"]

    second = client.post("/wishlist", json=item, headers=as_user)
    assert second.status_code == 200
    assert second.json()["message"] == "Book already in wishlist"
    assert db["wishlist"].count_documents({}) == 1


def test_wishlist_same_book_other_user(client, db, as_user):
    client.post("/wishlist", json={"email": "reader@example.com", "book_id": "b1"}, headers=as_user)
    client.post("/wishlist", json={"email": "other@example.com", "book_id": "b1"}, headers=as_user)
    assert db["wishlist"].count_documents({}) == 2
    mine = client.get("/wishlist", params={"email": "other@example.com"}, headers=as_user).json()
    assert [w["email"] for w in mine] == ["other@example.com"]
    assert "createdAt" not in db["wishlist"].find_one({})


def test_wishlist_update_and_delete(client, db, as_user):
    wid = db["wishlist"].insert_one({"email": "reader@example.com", "book_id": "b1"}).inserted_id
    client.patch(f"/wishlist/{wid}", json={"note": "birthday"}, headers=as_user)
    assert db["wishlist"].find_one({"_id": wid})["note"] == "birthday"
    assert client.delete(f"/wishlist/{wid}", headers=as_user).status_code == 200
    assert client.delete(f"/wishlist/{wid}", headers=as_user).status_code == 404


def test_wishlist_requires_token(client):
    assert client.get("/wishlist").status_code == 401


def test_review_and_wishlist_bodies_are_stored_verbatim(client, db, as_user):
    rid = client.post("/review", json={"book_id": "b1", "rating": "five stars"}, headers=as_user).json()["insertedId"]
    assert db["reviews"].find_one({"_id": ObjectId(rid)})["rating"] == "five stars"

    r = client.post("/wishlist", json={"email": "reader@example.com", "book_id": 7, "tags": ["gift"]}, headers=as_user)
    doc = db["wishlist"].find_one({"_id": ObjectId(r.json()["insertedId"])})
    assert doc["book_id"] == 7
    assert doc["tags"] == ["gift"]
