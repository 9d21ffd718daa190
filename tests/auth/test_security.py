"""Tests for access token validation."""

from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from jose import JWTError, jwt

from shlokayug.auth.permissions import UserRole
from shlokayug.auth.security import create_access_token, decode_access_token
from shlokayug.config import get_settings


class TestAccessToken:
    """Tests for access token creation and decoding."""

    def test_roundtrip_keeps_claims(self) -> None:
        user_id = uuid4()
        token = create_access_token(
            {"sub": str(user_id), "email": "a@example.com", "role": UserRole.STUDENT.value}
        )

        payload = decode_access_token(token)

        assert payload["sub"] == str(user_id)
        assert payload["role"] == "student"
        assert payload["type"] == "access"
        assert "exp" in payload
        assert "iat" in payload

    def test_expired_token_rejected(self) -> None:
        token = create_access_token({"sub": str(uuid4())}, timedelta(seconds=-1))

        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_wrong_type_rejected(self) -> None:
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(uuid4()), "type": "refresh"},
            settings.auth_secret_key,
            algorithm=settings.auth_algorithm,
        )

        with pytest.raises(JWTError, match="Invalid token type"):
            decode_access_token(token)

    def test_missing_subject_rejected(self) -> None:
        token = create_access_token({"email": "a@example.com"})

        with pytest.raises(JWTError, match="no subject"):
            decode_access_token(token)

    def test_foreign_signature_rejected(self) -> None:
        token = jwt.encode(
            {"sub": str(uuid4()), "type": "access"},
            "not-the-shared-key",
            algorithm=get_settings().auth_algorithm,
        )

        with pytest.raises(JWTError):
            decode_access_token(token)


class TestCurrentUserDependency:
    """Token handling as seen through a protected endpoint."""

    def test_missing_header(self, client: TestClient) -> None:
        response = client.get("/v1/progress/analytics")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_malformed_header(self, client: TestClient) -> None:
        response = client.get(
            "/v1/progress/analytics", headers={"Authorization": "Token abc"}
        )

        assert response.status_code == 401

    def test_subject_must_be_uuid(self, client: TestClient) -> None:
        token = create_access_token({"sub": "not-a-uuid"})

        response = client.get(
            "/v1/progress/analytics", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    def test_valid_token(self, client: TestClient, auth_headers) -> None:
        response = client.get("/v1/progress/analytics", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["total_courses"] == 0
