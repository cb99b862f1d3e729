from conftest import DEFAULT_PASSWORD, FakeResult, bearer, make_user, sequence_handler

from lendflow.api.v1.routers import auth as auth_router
from lendflow.core.errors import LockedOut
from lendflow.core.security import decode_token
from lendflow.models import User

SIGNUP = {
    "name": "Priya Sharma",
    "email": "priya@example.com",
    "phone": "9876543210",
    "password": "Str0ngPassword!",
    "role": "CUSTOMER",
}


def test_signup_returns_token_and_user(client, fake_db):
    response = client.post("/api/v1/auth/signup", json=SIGNUP)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully"
    data = body["data"]
    assert data["user"]["email"] == "priya@example.com"
    assert "password_hash" not in data["user"]
    claims = decode_token(data["token"], expected_type="access")
    assert claims["sub"] == data["user"]["id"]
    assert claims["role"] == "CUSTOMER"
    assert len(fake_db.added_of(User)) == 1


def test_signup_duplicate_email_is_409_with_field(client, fake_db):
    fake_db.on_execute(sequence_handler([FakeResult(scalar=make_user())]))

    response = client.post("/api/v1/auth/signup", json=SIGNUP)

    assert response.status_code == 409
    assert response.json()["errors"] == [{"field": "email", "message": "User with this email already exists"}]


def test_signup_rejects_bad_phone_and_role(client):
    response = client.post("/api/v1/auth/signup", json={**SIGNUP, "phone": "12345", "role": "ADMIN"})
    assert response.status_code == 400
    fields = {error["field"] for error in response.json()["errors"]}
    assert {"phone", "role"} <= fields


def test_login_success(client, fake_db, customer):
    fake_db.on_execute_return(FakeResult(scalar=customer))

    response = client.post("/api/v1/auth/login", json={"email": customer.email, "password": DEFAULT_PASSWORD})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Login successful"
    assert body["data"]["user"]["id"] == str(customer.id)


def test_login_failure_does_not_reveal_which_part_was_wrong(client, fake_db, customer):
    unknown_email = client.post(
        "/api/v1/auth/login", json={"email": "nobody@example.com", "password": "WrongPassword1"}
    )
    fake_db.on_execute_return(FakeResult(scalar=customer))
    wrong_password = client.post(
        "/api/v1/auth/login", json={"email": customer.email, "password": "WrongPassword1"}
    )

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json()["message"] == unknown_email.json()["message"] == "Invalid email or password"


def test_login_locked_out_is_429(client, monkeypatch, customer):
    async def _locked(_identifier):
        raise LockedOut()

    monkeypatch.setattr(auth_router, "check_lockout", _locked)
    response = client.post("/api/v1/auth/login", json={"email": customer.email, "password": DEFAULT_PASSWORD})
    assert response.status_code == 429


def test_read_me(client, fake_db, customer):
    fake_db.on_get(User, customer.id, customer)

    response = client.get("/api/v1/auth/me", headers=bearer(customer))

    assert response.status_code == 200
    assert response.json()["data"]["email"] == customer.email


def test_patch_me_ignores_email_and_role(client, fake_db, customer):
    fake_db.on_get(User, customer.id, customer)

    response = client.patch(
        "/api/v1/auth/me",
        json={"name": "Renamed User", "role": "BANKER", "email": "other@example.com"},
        headers=bearer(customer),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Renamed User"
    assert data["role"] == "CUSTOMER"
    assert data["email"] == customer.email
