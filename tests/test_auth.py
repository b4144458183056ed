from auth import create_token
from tests.conftest import auth_headers


def test_signup_signin_me(client):
    res = client.post("/auth/signup", json={"name": "Asha", "email": "asha@techfarm.in", "password": "secret1"})
    assert res.status_code == 201
    assert res.json()["user"]["role"] == "user"

    assert client.post("/auth/signup", json={"name": "Asha", "email": "asha@techfarm.in",
                                              "password": "secret1"}).status_code == 400

    assert client.post("/auth/signin", json={"email": "asha@techfarm.in", "password": "wrong!"}).status_code == 401
    res = client.post("/auth/signin", json={"email": "asha@techfarm.in", "password": "secret1"})
    token = res.json()["token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["email"] == "asha@techfarm.in"


def test_bad_tokens(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not.a.jwt"}).status_code == 401
    expired = create_token({"id": "x", "email": "x@techfarm.in", "name": "X", "role": "user"}, expires_minutes=-1)
    assert client.get("/auth/me", headers={"Authorization": f"Bearer {expired}"}).status_code == 401


def test_create_admin_requires_admin(client, customer, admin):
    body = {"name": "Dev", "email": "dev@techfarm.in", "password": "secret1"}
    assert client.post("/auth/create-admin", json=body, headers=auth_headers(customer)).status_code == 403
    res = client.post("/auth/create-admin", json=body, headers=auth_headers(admin))
    assert res.status_code == 201
    assert res.json()["role"] == "admin"
