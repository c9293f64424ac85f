import os

from fastapi.testclient import TestClient

from auth import verify_password


def _user_id(client, username="alice"):
    return next(u["id"] for u in client.get("/api/users").json() if u["username"] == username)


def test_register_and_fetch(client, register):
    res = register()
    assert res.status_code == 201
    assert res.json() == {"message": "User registered successfully"}

    users = client.get("/api/users").json()
    assert len(users) == 1
    assert users[0]["username"] == "alice"
    assert users[0]["email"] == "a@x.com"

    res = client.get(f"/api/users/{users[0]['id']}")
    assert res.status_code == 200
    assert res.json()["username"] == "alice"


def test_password_is_hashed_and_never_returned(client, register, db):
    register()
    stored = db["user"].find_one({"email": "a@x.com"})
    assert stored["password"] != "pw1"
    assert verify_password("pw1", stored["password"])
    for user in client.get("/api/users").json():
        assert "password" not in user


def test_duplicate_email_rejected(client, register, db):
    assert register().status_code == 201
    res = register(username="alice2")
    assert res.status_code == 400
    assert db["user"].count_documents({"email": "a@x.com"}) == 1


def test_duplicate_username_rejected(register, db):
    assert register().status_code == 201
    assert register(email="other@x.com").status_code == 400
    assert db["user"].count_documents({"username": "alice"}) == 1


def test_register_missing_fields(client):
    res = client.post("/api/users/register", data={"username": "bob"})
    assert res.status_code == 400


def test_register_with_profile_image(client, register, settings):
    res = register(files={"profileImage": ("me.png", b"\x89PNG data", "image/png")})
    assert res.status_code == 201
    user = client.get("/api/users").json()[0]
    assert user["profile_image"].endswith(".png")
    assert os.path.exists(os.path.join(settings.user_image_dir, user["profile_image"]))


def test_login(client, register):
    register()
    res = client.post("/api/users/login", json={"email": "a@x.com", "password": "pw1"})
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Login successful"
    assert body["token"]


def test_login_bad_credentials(client, register):
    register()
    assert client.post("/api/users/login", json={"email": "a@x.com", "password": "nope"}).status_code == 400
    assert client.post("/api/users/login", json={"email": "b@x.com", "password": "pw1"}).status_code == 400


def test_partial_update_keeps_other_fields(client, register):
    register()
    user_id = _user_id(client)
    res = client.put(f"/api/users/{user_id}", data={"username": "alicia"})
    assert res.status_code == 200
    body = res.json()
    assert body["username"] == "alicia"
    assert body["email"] == "a@x.com"
    assert "password" not in body


def test_update_password_is_rehashed(client, register, db):
    register()
    user_id = _user_id(client)
    client.put(f"/api/users/{user_id}", data={"password": "pw2"})
    stored = db["user"].find_one({"email": "a@x.com"})
    assert verify_password("pw2", stored["password"])
    assert client.post("/api/users/login", json={"email": "a@x.com", "password": "pw2"}).status_code == 200
    assert client.post("/api/users/login", json={"email": "a@x.com", "password": "pw1"}).status_code == 400


def test_update_to_taken_email_rejected(client, register):
    register()
    register(username="bob", email="b@x.com")
    res = client.put(f"/api/users/{_user_id(client, 'bob')}", data={"email": "a@x.com"})
    assert res.status_code == 400


def test_rejected_update_leaves_no_uploaded_file(client, register, settings):
    register()
    register(username="bob", email="b@x.com")
    before = set(os.listdir(settings.user_image_dir))
    res = client.put(
        f"/api/users/{_user_id(client, 'bob')}",
        data={"email": "a@x.com"},
        files={"profileImage": ("bob.png", b"png", "image/png")},
    )
    assert res.status_code == 400
    assert set(os.listdir(settings.user_image_dir)) == before
    assert client.get(f"/api/users/{_user_id(client, 'bob')}").json()["email"] == "b@x.com"


def test_password_longer_than_72_bytes(client, register):
    long_password = "x" * 80
    assert register(password=long_password).status_code == 201
    res = client.post("/api/users/login", json={"email": "a@x.com", "password": long_password})
    assert res.status_code == 200

    user_id = _user_id(client)
    assert client.put(f"/api/users/{user_id}", data={"password": "é" * 50}).status_code == 200
    assert client.post("/api/users/login", json={"email": "a@x.com", "password": "é" * 50}).status_code == 200


def test_unexpected_error_returns_500_with_message(app, context, monkeypatch):
    def unavailable():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(context.users, "list", unavailable)
    client = TestClient(app, raise_server_exceptions=False)
    res = client.get("/api/users")
    assert res.status_code == 500
    assert res.json() == {"detail": "database unavailable"}


def test_replacing_profile_image_deletes_old_file(client, register, settings):
    register(files={"profileImage": ("old.png", b"old", "image/png")})
    user = client.get("/api/users").json()[0]
    old_path = os.path.join(settings.user_image_dir, user["profile_image"])
    assert os.path.exists(old_path)

    res = client.put(
        f"/api/users/{user['id']}",
        files={"profileImage": ("new.jpg", b"new", "image/jpeg")},
    )
    assert res.status_code == 200
    assert res.json()["profile_image"].endswith(".jpg")
    assert not os.path.exists(old_path)


def test_update_unknown_user(client):
    assert client.put("/api/users/64b000000000000000000000", data={"username": "x"}).status_code == 404


def test_delete_user(client, register, db):
    register()
    user_id = _user_id(client)
    res = client.delete(f"/api/users/{user_id}")
    assert res.status_code == 200
    assert db["user"].count_documents({}) == 0
    assert client.get(f"/api/users/{user_id}").status_code == 404


def test_delete_unknown_user_leaves_store_unchanged(client, register, db):
    register()
    assert client.delete("/api/users/64b000000000000000000000").status_code == 404
    assert client.delete("/api/users/not-an-id").status_code == 404
    assert db["user"].count_documents({}) == 1
