"""
Integration tests for authentication endpoints

Registration, login, token refresh and the current-user profile.
"""
import pytest

from flowforge.models.user import RefreshToken, User


REGISTER_URL = "/api/v1/auth/register"
NEW_USER = {
    "email": "newuser@example.com",
    "password": "SecurePass123!",
    "first_name": "Jordan",
    "last_name": "Reyes",
}


@pytest.fixture
def registered(client):
    """Tokens of a freshly registered operator"""
    response = client.post(REGISTER_URL, json=NEW_USER)
    assert response.status_code == 201
    return response.json()


class TestUserRegistration:
    """POST /api/v1/auth/register"""

    def test_register_new_user_success(self, client):
        response = client.post(REGISTER_URL, json=NEW_USER)

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "newuser@example.com"
        assert data["first_name"] == "Jordan"
        assert data["role"] == "OPERATOR"
        assert "id" in data
        assert "password" not in data
        assert "password_hash" not in data

    def test_register_returns_token_pair(self, registered):
        assert registered["access_token"]
        assert registered["refresh_token"]
        assert registered["token_type"] == "bearer"

    def test_register_cannot_choose_role(self, client):
        response = client.post(REGISTER_URL, json={**NEW_USER, "role": "ADMIN"})

        assert response.status_code == 201
        assert response.json()["role"] == "OPERATOR"

    def test_email_is_normalized(self, client):
        response = client.post(REGISTER_URL, json={**NEW_USER, "email": "  NewUser@Example.COM "})

        assert response.status_code == 201
        assert response.json()["email"] == "newuser@example.com"

    def test_register_duplicate_email_fails(self, client, registered):
        response = client.post(REGISTER_URL, json={**NEW_USER, "password": "DifferentPass456!"})

        assert response.status_code == 400
        assert "already registered" in response.json()["detail"].lower()

    def test_register_invalid_email_fails(self, client):
        response = client.post(REGISTER_URL, json={**NEW_USER, "email": "not-an-email"})

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_register_weak_password_fails(self, client):
        response = client.post(REGISTER_URL, json={**NEW_USER, "password": "weak"})

        assert response.status_code == 422

    def test_register_missing_required_fields(self, client):
        response = client.post(REGISTER_URL, json={"email": "user@example.com"})

        assert response.status_code == 422

    def test_register_optional_fields(self, client):
        response = client.post(REGISTER_URL, json={**NEW_USER, "department": "Assembly", "position": "Lead"})

        assert response.status_code == 201
        data = response.json()
        assert data["department"] == "Assembly"
        assert data["position"] == "Lead"


class TestUserLogin:
    """POST /api/v1/auth/login"""

    def test_login_with_valid_credentials(self, client, registered):
        response = client.post(
            "/api/v1/auth/login",
            data={"username": NEW_USER["email"], "password": NEW_USER["password"]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["token_type"] == "bearer"

    def test_login_with_wrong_password(self, client, registered):
        response = client.post(
            "/api/v1/auth/login",
            data={"username": NEW_USER["email"], "password": "WrongPassword456!"},
        )

        assert response.status_code == 401
        assert "incorrect" in response.json()["detail"].lower()

    def test_login_with_nonexistent_email(self, client):
        response = client.post(
            "/api/v1/auth/login",
            data={"username": "nobody@example.com", "password": "SomePassword123!"},
        )

        assert response.status_code == 401

    def test_login_for_disabled_account(self, client, make_user):
        make_user("OPERATOR", email="gone@example.com", is_active=False)

        response = client.post(
            "/api/v1/auth/login",
            data={"username": "gone@example.com", "password": "SecurePass123!"},
        )

        assert response.status_code == 403

    def test_login_updates_last_login_timestamp(self, client, db_session, registered):
        user = db_session.query(User).filter(User.email == NEW_USER["email"]).first()
        assert user.last_login_at is None

        client.post(
            "/api/v1/auth/login",
            data={"username": NEW_USER["email"], "password": NEW_USER["password"]},
        )

        db_session.refresh(user)
        assert user.last_login_at is not None


class TestTokenRefresh:
    """POST /api/v1/auth/refresh"""

    def test_refresh_token_with_valid_token(self, client, registered):
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": registered["refresh_token"]})

        assert response.status_code == 200
        data = response.json()
        assert data["access_token"]
        assert data["refresh_token"] != registered["refresh_token"]

    def test_refresh_token_is_single_use(self, client, db_session, registered):
        client.post("/api/v1/auth/refresh", json={"refresh_token": registered["refresh_token"]})

        response = client.post("/api/v1/auth/refresh", json={"refresh_token": registered["refresh_token"]})

        assert response.status_code == 401
        assert db_session.query(RefreshToken).filter(RefreshToken.revoked == True).count() == 1  # noqa: E712

    def test_refresh_token_with_invalid_token(self, client):
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": "invalid.token.here"})

        assert response.status_code == 401
        assert "invalid" in response.json()["detail"].lower()

    def test_refresh_token_with_access_token_fails(self, client, registered):
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": registered["access_token"]})

        assert response.status_code == 401


class TestCurrentUser:
    """GET/PUT /api/v1/auth/me and POST /api/v1/auth/change-password"""

    def test_get_current_user_with_valid_token(self, client, registered):
        response = client.get(
            "/api/v1/auth/me",
            headers={"Authorization": f"Bearer {registered['access_token']}"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == NEW_USER["email"]
        assert "password_hash" not in data

    def test_get_current_user_without_token(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_get_current_user_with_invalid_token(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer invalid.token.here"})

        assert response.status_code == 401

    def test_get_current_user_with_refresh_token_fails(self, client, registered):
        response = client.get(
            "/api/v1/auth/me",
            headers={"Authorization": f"Bearer {registered['refresh_token']}"},
        )

        assert response.status_code == 401

    def test_update_profile(self, client, registered):
        response = client.put(
            "/api/v1/auth/me",
            json={"department": "Quality"},
            headers={"Authorization": f"Bearer {registered['access_token']}"},
        )

        assert response.status_code == 200
        assert response.json()["department"] == "Quality"
        assert response.json()["first_name"] == NEW_USER["first_name"]

    def test_change_password(self, client, registered):
        headers = {"Authorization": f"Bearer {registered['access_token']}"}

        wrong = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "nope", "new_password": "NewSecure456!"},
            headers=headers,
        )
        assert wrong.status_code == 400

        response = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": NEW_USER["password"], "new_password": "NewSecure456!"},
            headers=headers,
        )
        assert response.status_code == 200

        login = client.post(
            "/api/v1/auth/login",
            data={"username": NEW_USER["email"], "password": "NewSecure456!"},
        )
        assert login.status_code == 200
