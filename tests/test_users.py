import pytest


PROTECTED_ROUTES = [
    ("get", "/api/v1/users"),
    ("get", "/api/v1/users/1"),
    ("put", "/api/v1/users/1"),
    ("delete", "/api/v1/users/1"),
    ("get", "/api/v1/profile"),
]


@pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
def test_protected_route_requires_header(client, method, path):
    resp = client.request(method, path)
    assert resp.status_code == 401
    assert resp.json() == {"error": "authorization header required"}
    assert resp.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
@pytest.mark.parametrize("header", ["Token abc", "bearer abc", "Bearer", "Basic dXNlcjpwYXNz"])
def test_protected_route_rejects_malformed_header(client, method, path, header):
    resp = client.request(method, path, headers={"Authorization": header})
    assert resp.status_code == 401
    assert resp.json() == {"error": "invalid authorization header format"}


@pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
def test_protected_route_rejects_unsigned_token(client, method, path):
    resp = client.request(method, path, headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "invalid or expired token"}


def test_list_users_never_returns_passwords(client, register, auth_headers):
    register(email="one@example.com", name="One")
    register(email="two@example.com", name="Two")

    resp = client.get("/api/v1/users", headers=auth_headers)
    assert resp.status_code == 200
    users = resp.json()
    assert [u["email"] for u in users] == [
        "caller@example.com",
        "one@example.com",
        "two@example.com",
    ]
    for user in users:
        assert "password" not in user
        assert "password_hash" not in user
        assert user["is_active"] is True


def test_list_users_pagination(client, register, auth_headers):
    for i in range(3):
        register(email=f"user{i}@example.com", name=f"User {i}")

    resp = client.get("/api/v1/users", params={"skip": 1, "limit": 2}, headers=auth_headers)
    assert resp.status_code == 200
    assert [u["email"] for u in resp.json()] == ["user0@example.com", "user1@example.com"]

    resp = client.get("/api/v1/users", params={"limit": 0}, headers=auth_headers)
    assert resp.status_code == 400


@pytest.mark.parametrize("user_id", ["999", "abc", "-1", "99999999999999999999999"])
def test_missing_user_is_not_found(client, auth_headers, user_id):
    path = f"/api/v1/users/{user_id}"
    assert client.get(path, headers=auth_headers).status_code == 404
    assert client.put(path, json={"name": "X"}, headers=auth_headers).status_code == 404
    assert client.delete(path, headers=auth_headers).status_code == 404


def test_update_user_partial(client, register, auth_headers):
    user_id = register(email="edit@example.com", name="Before").json()["user"]["id"]

    resp = client.put(f"/api/v1/users/{user_id}", json={"name": "After"}, headers=auth_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "user updated"
    assert data["user"]["name"] == "After"
    assert data["user"]["email"] == "edit@example.com"
    assert "password" not in data["user"]

    resp = client.put(
        f"/api/v1/users/{user_id}",
        json={"name": "", "email": "Edited@Example.com"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "After"
    assert resp.json()["user"]["email"] == "edited@example.com"

    resp = client.put(f"/api/v1/users/{user_id}", json={}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["user"]["email"] == "edited@example.com"


def test_update_user_invalid_email(client, register, auth_headers):
    user_id = register(email="valid@example.com").json()["user"]["id"]
    resp = client.put(
        f"/api/v1/users/{user_id}", json={"email": "not-an-email"}, headers=auth_headers
    )
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("email:")


def test_update_user_duplicate_email(client, register, auth_headers):
    register(email="taken@example.com")
    user_id = register(email="mover@example.com").json()["user"]["id"]

    resp = client.put(
        f"/api/v1/users/{user_id}", json={"email": "taken@example.com"}, headers=auth_headers
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "email already registered"}

    resp = client.get(f"/api/v1/users/{user_id}", headers=auth_headers)
    assert resp.json()["email"] == "mover@example.com"


def test_delete_user(client, register, auth_headers):
    user_id = register(email="gone@example.com").json()["user"]["id"]

    resp = client.delete(f"/api/v1/users/{user_id}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json() == {"message": "user deleted"}

    assert client.get(f"/api/v1/users/{user_id}", headers=auth_headers).status_code == 404
    assert client.delete(f"/api/v1/users/{user_id}", headers=auth_headers).status_code == 404

    # the email is free again
    assert register(email="gone@example.com").status_code == 201
