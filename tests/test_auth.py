import pytest

from app.core.security import UserRole

from .conftest import TEST_PASSWORD, auth_headers

# Test data
test_user_data = {
    "email": "test@example.com",
    "password": "TestPassword123",
    "role": "patient",
    "full_name": "Test User"
}

test_doctor_data = {
    "email": "doctor@example.com",
    "password": "TestPassword123",
    "role": "doctor",
    "full_name": "Test Doctor",
    "specialization": "Cardiology"
}

test_login_data = {
    "email": "test@example.com",
    "password": "TestPassword123"
}

class TestAuthentication:

    def test_register_user(self, client):
        """Test user registration."""
        response = client.post("/api/v1/auth/register", json=test_user_data)
        assert response.status_code == 201

        data = response.json()
        assert data["email"] == test_user_data["email"]
        assert data["role"] == test_user_data["role"]
        assert data["full_name"] == "Test User"
        assert "password" not in data
        assert "password_hash" not in data

    def test_register_doctor_keeps_specialization(self, client):
        response = client.post("/api/v1/auth/register", json=test_doctor_data)
        assert response.status_code == 201
        assert response.json()["specialization"] == "Cardiology"

    def test_register_admin_rejected(self, client):
        """Administrators cannot self-register."""
        admin_data = dict(test_user_data, role="admin")

        response = client.post("/api/v1/auth/register", json=admin_data)
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_register_duplicate_email(self, client):
        """Test registration with duplicate email."""
        # Register first user
        client.post("/api/v1/auth/register", json=test_user_data)

        # Try to register with same email, different case
        duplicate = dict(test_user_data, email="TEST@example.com")
        response = client.post("/api/v1/auth/register", json=duplicate)
        assert response.status_code == 400
        assert "already registered" in response.json()["detail"]

    def test_register_invalid_password(self, client):
        """Test registration with invalid password."""
        invalid_data = test_user_data.copy()
        invalid_data["password"] = "weak"

        response = client.post("/api/v1/auth/register", json=invalid_data)
        assert response.status_code == 422

    def test_register_missing_name(self, client):
        invalid_data = test_user_data.copy()
        invalid_data["full_name"] = "   "

        response = client.post("/api/v1/auth/register", json=invalid_data)
        assert response.status_code == 422

    def test_login_success(self, client):
        """Test successful login."""
        # Register user first
        client.post("/api/v1/auth/register", json=test_user_data)

        # Login
        response = client.post("/api/v1/auth/login", json=test_login_data)
        assert response.status_code == 200

        data = response.json()
        assert "access_token" in data
        assert "refresh_token" in data
        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == test_user_data["email"]
        assert data["user"]["last_login"] is not None

    def test_login_invalid_credentials(self, client):
        """Test login with invalid credentials."""
        invalid_login = {
            "email": "nonexistent@example.com",
            "password": "wrongpassword"
        }

        response = client.post("/api/v1/auth/login", json=invalid_login)
        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    def test_login_wrong_password(self, client):
        """Test login with wrong password."""
        # Register user first
        client.post("/api/v1/auth/register", json=test_user_data)

        # Login with wrong password
        wrong_login = test_login_data.copy()
        wrong_login["password"] = "wrongpassword"

        response = client.post("/api/v1/auth/login", json=wrong_login)
        assert response.status_code == 401

    def test_login_deactivated_account(self, client, make_user):
        user = make_user(UserRole.PATIENT, is_active=False)

        response = client.post(
            "/api/v1/auth/login",
            json={"email": user.email, "password": TEST_PASSWORD}
        )
        assert response.status_code == 401

    def test_get_current_user(self, client):
        """Test getting current user info."""
        # Register and login
        client.post("/api/v1/auth/register", json=test_user_data)
        login_response = client.post("/api/v1/auth/login", json=test_login_data)

        token = login_response.json()["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        # Get current user
        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 200

        data = response.json()
        assert data["email"] == test_user_data["email"]
        assert "availableSlots" not in data

    def test_get_current_user_doctor_schedule(self, client, doctor, future_day):
        headers = auth_headers(doctor)
        client.put(
            "/api/v1/appointments/available-slots",
            json={"date": future_day.isoformat(), "times": ["10:00", "09:00"]},
            headers=headers
        )

        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["availableSlots"] == [
            {"date": future_day.isoformat(), "times": ["09:00", "10:00"]}
        ]

    def test_get_current_user_invalid_token(self, client):
        """Test get current user with invalid token."""
        headers = {"Authorization": "Bearer invalid_token"}

        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 401

    def test_get_current_user_missing_token(self, client):
        response = client.get("/api/v1/auth/me")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    def test_deleted_user_token_rejected(self, client, db, make_user):
        """A valid token for an account that no longer exists is refused."""
        user = make_user(UserRole.PATIENT)
        headers = auth_headers(user)
        db.delete(user)
        db.commit()

        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"] == "user_not_found"

    def test_refresh_token_rejected_as_access_token(self, client):
        client.post("/api/v1/auth/register", json=test_user_data)
        login_response = client.post("/api/v1/auth/login", json=test_login_data)

        refresh_token = login_response.json()["refresh_token"]
        headers = {"Authorization": f"Bearer {refresh_token}"}

        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 401

    def test_refresh_token(self, client):
        """Test token refresh."""
        # Register and login
        client.post("/api/v1/auth/register", json=test_user_data)
        login_response = client.post("/api/v1/auth/login", json=test_login_data)

        refresh_token = login_response.json()["refresh_token"]

        # Refresh token
        response = client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": refresh_token}
        )
        assert response.status_code == 200

        data = response.json()
        assert "access_token" in data
        assert data["refresh_token"] != refresh_token

        # The old refresh token is revoked
        response = client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": refresh_token}
        )
        assert response.status_code == 401

    def test_refresh_invalid_token(self, client):
        """Test refresh with invalid token."""
        response = client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": "invalid_token"}
        )
        assert response.status_code == 401

    def test_logout(self, client):
        """Test user logout."""
        # Register and login
        client.post("/api/v1/auth/register", json=test_user_data)
        login_response = client.post("/api/v1/auth/login", json=test_login_data)

        refresh_token = login_response.json()["refresh_token"]

        # Logout
        response = client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": refresh_token}
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Successfully logged out"

        response = client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": refresh_token}
        )
        assert response.status_code == 401

    def test_verify_token(self, client):
        """Test token verification."""
        # Register and login
        client.post("/api/v1/auth/register", json=test_user_data)
        login_response = client.post("/api/v1/auth/login", json=test_login_data)

        token = login_response.json()["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        # Verify token
        response = client.post("/api/v1/auth/verify-token", headers=headers)
        assert response.status_code == 200

        data = response.json()
        assert data["valid"] == True
        assert data["user_id"] == login_response.json()["user"]["id"]
        assert data["role"] == "patient"


class TestRateLimiting:

    def test_login_rate_limited(self, client, monkeypatch):
        monkeypatch.setattr("app.api.deps.settings.RATE_LIMIT_REQUESTS", 2)

        for _ in range(2):
            response = client.post("/api/v1/auth/login", json=test_login_data)
            assert response.status_code == 401

        response = client.post("/api/v1/auth/login", json=test_login_data)
        assert response.status_code == 429
        assert response.json()["error"] == "rate_limited"

if __name__ == "__main__":
    pytest.main([__file__])
