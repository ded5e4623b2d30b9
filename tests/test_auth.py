from datetime import datetime, timedelta

from bson import ObjectId
from fastapi.testclient import TestClient

from auth_service import hash_reset_token
from conftest import auth, login, register
from main import create_app


def test_register_returns_access_token_and_refresh_cookie(client):
    resp = client.post("/auth/register", json={
        "email": "Mia@Example.com",
        "password": "secret123",
        "first_name": "Mia",
        "last_name": "Diaz",
    })

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["access_token"]
    assert body["data"]["user"]["email"] == "mia@example.com"
    assert body["data"]["user"]["is_admin"] is False
    assert "password_hash" not in body["data"]["user"]

    cookie = resp.headers["set-cookie"]
    assert "refreshToken=" in cookie
    assert "HttpOnly" in cookie
    assert "samesite=strict" in cookie.lower()
    assert "Max-Age=604800" in cookie


def test_password_is_stored_hashed(client, db):
    register(client)
    stored = db["user"].find_one({"email": "ana@example.com"})
    assert stored["password_hash"].startswith("$2")
    assert "secret123" not in stored["password_hash"]


def test_duplicate_email_conflicts(client):
    register(client)
    resp = client.post("/auth/register", json={
        "email": "ana@example.com", "password": "another1", "first_name": "A", "last_name": "B",
    })
    assert resp.status_code == 409
    assert resp.json()["success"] is False


def test_register_validation(client):
    resp = client.post("/auth/register", json={
        "email": "not-an-email", "password": "123", "first_name": "A", "last_name": "B",
    })
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_login(client):
    register(client)
    assert login(client, "ana@example.com")

    resp = client.post("/auth/login", json={"email": "ana@example.com", "password": "wrong-pass"})
    assert resp.status_code == 401

    resp = client.post("/auth/login", json={"email": "nobody@example.com", "password": "secret123"})
    assert resp.status_code == 401


def test_login_rejects_inactive_user(client, db):
    register(client)
    db["user"].update_one({"email": "ana@example.com"}, {"$set": {"is_active": False}})

    resp = client.post("/auth/login", json={"email": "ana@example.com", "password": "secret123"})
    assert resp.status_code == 403


def test_me(client, customer):
    resp = client.get("/auth/me", headers=customer["headers"])
    assert resp.status_code == 200
    assert resp.json()["data"]["email"] == "ana@example.com"

    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers=auth("garbage")).status_code == 401


def refresh_cookie_of(resp):
    return resp.cookies.get("refreshToken")


def use_refresh_cookie(client, token):
    client.cookies.clear()
    if token:
        client.cookies.set("refreshToken", token)
    return client.post("/auth/refresh")


def test_refresh_issues_new_access_token(client):
    resp = client.post("/auth/register", json={
        "email": "leo@example.com", "password": "secret123", "first_name": "Leo", "last_name": "Paz",
    })
    token = refresh_cookie_of(resp)

    resp = use_refresh_cookie(client, token)
    assert resp.status_code == 200
    access = resp.json()["data"]["access_token"]
    assert client.get("/auth/me", headers=auth(access)).json()["data"]["email"] == "leo@example.com"


def test_refresh_fails_after_deactivation(client, db):
    resp = client.post("/auth/register", json={
        "email": "leo@example.com", "password": "secret123", "first_name": "Leo", "last_name": "Paz",
    })
    token = refresh_cookie_of(resp)
    db["user"].update_one({"email": "leo@example.com"}, {"$set": {"is_active": False}})

    resp = use_refresh_cookie(client, token)
    assert resp.status_code == 401


def test_refresh_without_or_with_bad_cookie(client, customer):
    assert use_refresh_cookie(client, None).status_code == 401
    assert use_refresh_cookie(client, "not-a-jwt").status_code == 401
    # an access token is signed with the other secret
    assert use_refresh_cookie(client, customer["token"]).status_code == 401


def test_logout_clears_cookie(client, customer):
    resp = client.post("/auth/logout")
    assert resp.status_code == 200
    assert 'refreshToken=""' in resp.headers["set-cookie"] or "Max-Age=0" in resp.headers["set-cookie"]


def test_forgot_password_unknown_email(client, db, mailer):
    resp = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert db["passwordreset"].count_documents({}) == 0
    assert mailer.sent == []


def test_forgot_password_known_email(client, db, mailer, customer):
    resp = client.post("/auth/forgot-password", json={"email": "ana@example.com"})

    assert resp.status_code == 200
    reset = db["passwordreset"].find_one({})
    assert reset["user_id"] == customer["user"]["id"]
    assert reset["expires_at"] > datetime.utcnow()
    assert "used_at" not in reset

    mail = mailer.to("ana@example.com")[0]
    assert "/reset-password?token=" in mail["text"]
    token = mail["text"].split("token=")[1].split()[0]
    assert hash_reset_token(token) == reset["token_hash"]


def emailed_token(client, mailer, email="ana@example.com"):
    client.post("/auth/forgot-password", json={"email": email})
    return mailer.to(email)[-1]["text"].split("token=")[1].split()[0]


def test_reset_token_is_single_use(client, db, mailer, customer):
    token = emailed_token(client, mailer)

    resp = client.post("/auth/reset-password", json={"token": token, "password": "brandnew1"})
    assert resp.status_code == 200
    assert db["passwordreset"].find_one({})["used_at"] is not None
    assert login(client, "ana@example.com", "brandnew1")

    resp = client.post("/auth/reset-password", json={"token": token, "password": "another22"})
    assert resp.status_code == 400
    assert login(client, "ana@example.com", "brandnew1")


def test_expired_reset_token(client, db, mailer, customer):
    token = emailed_token(client, mailer)
    db["passwordreset"].update_many({}, {"$set": {"expires_at": datetime.utcnow() - timedelta(minutes=1)}})

    resp = client.post("/auth/reset-password", json={"token": token, "password": "brandnew1"})
    assert resp.status_code == 400


def test_reset_with_unknown_token(client, customer):
    resp = client.post("/auth/reset-password", json={"token": "f" * 64, "password": "brandnew1"})
    assert resp.status_code == 400


def test_change_password(client, customer):
    resp = client.post("/auth/change-password",
                       json={"current_password": "nope-nope", "new_password": "changed99"},
                       headers=customer["headers"])
    assert resp.status_code == 400

    resp = client.post("/auth/change-password",
                       json={"current_password": "secret123", "new_password": "changed99"},
                       headers=customer["headers"])
    assert resp.status_code == 200
    assert login(client, "ana@example.com", "changed99")


def test_admin_claim_follows_user_record(client, admin, db):
    resp = client.get("/auth/me", headers=admin["headers"])
    assert resp.json()["data"]["is_admin"] is True
    assert db["user"].find_one({"_id": ObjectId(admin["user"]["id"])})["is_admin"] is True


def test_auth_rate_limit(settings, db):
    limited = settings.model_copy(update={"auth_rate_limit_max": 2})
    app = create_app(settings=limited, db=db)
    with TestClient(app) as client:
        body = {"email": "ana@example.com", "password": "secret123"}
        assert client.post("/auth/login", json=body).status_code == 401
        assert client.post("/auth/login", json=body).status_code == 401
        resp = client.post("/auth/login", json=body)

    assert resp.status_code == 429
    assert resp.json()["success"] is False


def test_passwords_are_limited_to_bcrypt_bytes(client, db, mailer):
    # 40 characters but 80 bytes in UTF-8
    long_password = "ñ" * 40
    resp = client.post("/auth/register", json={
        "email": "ana@example.com", "password": long_password, "first_name": "Ana", "last_name": "Lopez",
    })
    assert resp.status_code == 400
    assert db["user"].count_documents({}) == 0

    token, _ = register(client)
    resp = client.post("/auth/change-password",
                       json={"current_password": "secret123", "new_password": long_password},
                       headers=auth(token))
    assert resp.status_code == 400

    reset_token = emailed_token(client, mailer)
    resp = client.post("/auth/reset-password", json={"token": reset_token, "password": long_password})
    assert resp.status_code == 400

    # 36 two-byte characters is exactly 72 bytes
    resp = client.post("/auth/reset-password", json={"token": reset_token, "password": "ñ" * 36})
    assert resp.status_code == 200
    assert login(client, "ana@example.com", "ñ" * 36)


def test_overlong_login_password_is_rejected_not_crashed(client, customer):
    resp = client.post("/auth/login", json={"email": "ana@example.com", "password": "ñ" * 40})
    assert resp.status_code == 401


def test_reset_for_missing_user_keeps_token_unused(client, db, mailer, customer):
    token = emailed_token(client, mailer)
    db["user"].delete_one({"email": "ana@example.com"})

    resp = client.post("/auth/reset-password", json={"token": token, "password": "brandnew1"})

    assert resp.status_code == 404
    assert "used_at" not in db["passwordreset"].find_one({})
