"""
Integration tests for API endpoints with actual HTTP requests.

Tests:
- Sign-up, sign-in and access control
- Case workflow over HTTP, including conflict and ownership errors
- File upload, zip export and public avatar URLs
- Patron masking, preferences, dashboard and archive
- Realtime WebSocket authentication
"""

import io
import zipfile

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from sentinel.config import Settings
from sentinel.main import create_app

PASSWORD = "hunter22"


@pytest.fixture
def client(tmp_path):
    """Application bound to a throwaway SQLite database and storage root."""
    config = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        storage_root=tmp_path / "storage",
        preferences_path=tmp_path / "preferences",
        public_base_url="http://testserver",
        secret_key="integration-test-secret-key-0123456789",
    )
    with TestClient(create_app(config)) as client:
        yield client


def sign_up(client: TestClient, email: str, first_name: str = "Test") -> dict:
    """Create an account and sign in; returns the user and auth headers."""
    response = client.post(
        "/api/v1/auth/signup",
        json={"email": email, "password": PASSWORD, "first_name": first_name, "last_name": "User"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    response = client.post("/api/v1/auth/signin", json={"email": email, "password": PASSWORD})
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    return {
        "id": body["user"]["id"],
        "token": body["access_token"],
        "refresh_token": body["refresh_token"],
        "headers": {"Authorization": f"Bearer {body['access_token']}"},
    }


class TestHealthAndHeaders:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["database"]["status"] == "healthy"

    def test_security_headers(self, client):
        response = client.get("/health")

        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Request-ID" in response.headers


class TestAuthentication:
    """Tests for the auth endpoints and access control."""

    def test_signin_and_me(self, client):
        user = sign_up(client, "anna@sentinel-casino.com", "Anna")

        response = client.get("/api/v1/auth/me", headers=user["headers"])

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["email"] == "anna@sentinel-casino.com"
        assert body["roles"] == ["Analyst"]
        assert body["can_view_sensitive"] is False

    def test_wrong_password(self, client):
        sign_up(client, "anna@sentinel-casino.com")

        response = client.post(
            "/api/v1/auth/signin",
            json={"email": "anna@sentinel-casino.com", "password": "not-it"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Invalid login credentials"

    def test_duplicate_signup(self, client):
        sign_up(client, "anna@sentinel-casino.com")

        response = client.post(
            "/api/v1/auth/signup",
            json={"email": "anna@sentinel-casino.com", "password": PASSWORD},
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_requires_token(self, client):
        response = client.get("/api/v1/cases/ctr")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_signed_out_token_rejected(self, client):
        user = sign_up(client, "anna@sentinel-casino.com")

        response = client.post(
            "/api/v1/auth/signout",
            headers=user["headers"],
            json={"refresh_token": user["refresh_token"]},
        )
        assert response.status_code == status.HTTP_204_NO_CONTENT

        response = client.get("/api/v1/auth/me", headers=user["headers"])
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_team_role_edit_requires_admin(self, client):
        user = sign_up(client, "anna@sentinel-casino.com")

        response = client.put(
            f"/api/v1/team/{user['id']}/roles",
            headers=user["headers"],
            json={"roles": ["Admin"]},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestCaseWorkflowAPI:
    """Tests for case intake and transitions over HTTP."""

    def _create(self, client, headers, case_id="CTR-2024-001", **fields):
        payload = {
            "case_id": case_id,
            "gaming_day": "2024-03-07",
            "ship": "Harmony",
            "first_name": "John",
            "last_name": "Smith",
            "cash_in_total": 12500,
        }
        payload.update(fields)
        response = client.post("/api/v1/cases/ctr", headers=headers, json=payload)
        assert response.status_code == status.HTTP_201_CREATED
        return response.json()

    def test_lifecycle(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com", "Anna")
        approver = sign_up(client, "maria@sentinel-casino.com", "Maria")
        created = self._create(client, analyst["headers"])
        assert created["status"] == "New"
        assert created["allowed_actions"] == ["assign"]

        response = client.post(
            "/api/v1/cases/ctr/CTR-2024-001/assign",
            headers=analyst["headers"],
            json={"member_id": analyst["id"], "expected_version": 1},
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["owner_name"] == "Anna User"

        mine = client.get("/api/v1/cases/ctr/mine", headers=analyst["headers"]).json()
        assert [row["case_id"] for row in mine["rows"]] == ["CTR-2024-001"]

        response = client.post(
            "/api/v1/cases/ctr/CTR-2024-001/start-review", headers=analyst["headers"]
        )
        assert response.json()["status"] == "Under Review"

        response = client.post(
            "/api/v1/cases/ctr/CTR-2024-001/submit",
            headers=analyst["headers"],
            json={"approver_id": approver["id"], "recommendation": "File CTR"},
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["case"]["status"] == "Submitted"

        pending = client.get(
            "/api/v1/cases/ctr/pending-approval", headers=approver["headers"]
        ).json()
        assert pending["total"] == 1

        response = client.post(
            "/api/v1/cases/ctr/CTR-2024-001/approve", headers=analyst["headers"]
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

        response = client.post(
            "/api/v1/cases/ctr/CTR-2024-001/approve", headers=approver["headers"]
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "Approved"

        archive = client.get(
            "/api/v1/archive", headers=analyst["headers"], params={"folder": "CTRs"}
        ).json()
        assert archive["total"] == 1
        assert archive["groups"][0]["label"] == "March 2024"

    def test_conflicts_and_missing(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com")
        self._create(client, analyst["headers"])

        response = client.post(
            "/api/v1/cases/ctr",
            headers=analyst["headers"],
            json={"case_id": "CTR-2024-001"},
        )
        assert response.status_code == status.HTTP_409_CONFLICT

        response = client.post(
            "/api/v1/cases/ctr/CTR-2024-001/assign",
            headers=analyst["headers"],
            json={"member_id": analyst["id"], "expected_version": 3},
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert "modified by someone else" in response.json()["detail"]

        response = client.post(
            "/api/v1/cases/ctr/CTR-2024-001/start-review", headers=analyst["headers"]
        )
        assert response.status_code == status.HTTP_409_CONFLICT

        response = client.get("/api/v1/cases/ctr/CTR-404", headers=analyst["headers"])
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_bulk_assign_partial_failure(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com")
        self._create(client, analyst["headers"], case_id="CTR-1")
        self._create(client, analyst["headers"], case_id="CTR-2")

        response = client.post(
            "/api/v1/cases/ctr/bulk-assign",
            headers=analyst["headers"],
            json={"case_ids": ["CTR-1", "CTR-404", "CTR-2"], "member_id": analyst["id"]},
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["succeeded"] == ["CTR-1", "CTR-2"]
        assert body["failed"][0]["case_id"] == "CTR-404"
        assert body["error_message"] == "1 of 3 case(s) failed: CTR-404"

    def test_list_sorted_by_cash_in(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com")
        self._create(client, analyst["headers"], case_id="CTR-1", cash_in_total=10500)
        self._create(client, analyst["headers"], case_id="CTR-2", cash_in_total=30000)
        self._create(client, analyst["headers"], case_id="CTR-3", cash_in_total=20000)

        response = client.get(
            "/api/v1/cases/ctr",
            headers=analyst["headers"],
            params={"sort": "cash_in_total", "order": "asc"},
        )

        assert [row["case_id"] for row in response.json()["rows"]] == ["CTR-1", "CTR-3", "CTR-2"]

    def test_dashboard(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com", "Anna")
        self._create(client, analyst["headers"])

        response = client.get(
            "/api/v1/dashboard", headers=analyst["headers"], params={"tab": "CTRs"}
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status_counts"]["new"] == 1
        assert body["greeting"].endswith("Anna")


class TestFilesAPI:
    """Tests for case file upload and export."""

    def test_upload_and_export(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com")
        client.post(
            "/api/v1/cases/ctr",
            headers=analyst["headers"],
            json={"case_id": "CTR-1", "first_name": "John", "last_name": "Smith"},
        )

        response = client.post(
            "/api/v1/cases/ctr/CTR-1/files",
            headers=analyst["headers"],
            files={"file": ("receipt.pdf", b"%PDF-1.4 receipt", "application/pdf")},
            data={"description": "Cage receipt"},
        )
        assert response.status_code == status.HTTP_201_CREATED
        file_id = response.json()["id"]
        assert response.json()["file_path"] == "CTR-1/receipt.pdf"

        response = client.get(f"/api/v1/files/case/{file_id}", headers=analyst["headers"])
        assert response.content == b"%PDF-1.4 receipt"

        response = client.get("/api/v1/cases/ctr/CTR-1/export", headers=analyst["headers"])
        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"] == "application/zip"
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert archive.namelist() == ["CTR-1_John_Smith/receipt.pdf"]

        response = client.post(
            "/api/v1/cases/ctr/CTR-1/files",
            headers=analyst["headers"],
            files={"file": ("receipt.pdf", b"again", "application/pdf")},
        )
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_avatar_is_public(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com")

        response = client.post(
            "/api/v1/settings/avatar",
            headers=analyst["headers"],
            files={"file": ("avatar.jpg", b"\xff\xd8jpeg", "image/jpeg")},
        )
        assert response.status_code == status.HTTP_200_OK
        avatar_url = response.json()["avatar_url"]
        assert avatar_url.startswith("http://testserver/storage/avatars/")

        response = client.get(avatar_url.replace("http://testserver", ""))
        assert response.status_code == status.HTTP_200_OK
        assert response.content == b"\xff\xd8jpeg"

        response = client.get("/storage/case-files/CTR-1/receipt.pdf")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestPatronsAPI:
    def test_masked_unless_revealed_by_manager(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com")
        response = client.post(
            "/api/v1/patrons",
            headers=analyst["headers"],
            json={
                "first_name": "John",
                "last_name": "Smith",
                "phone_number": "555-123-4567",
                "email_address": "jsmith@example.com",
                "ssn": "123-45-6789",
            },
        )
        assert response.status_code == status.HTTP_201_CREATED
        patron = response.json()
        assert patron["ssn"] == "***-**-****"
        assert patron["email_address"] == "j*****@example.com"

        response = client.get(
            f"/api/v1/patrons/{patron['id']}",
            headers=analyst["headers"],
            params={"reveal": "true"},
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

        results = client.get(
            "/api/v1/patrons", headers=analyst["headers"], params={"q": "smi"}
        ).json()
        assert [p["id"] for p in results] == [patron["id"]]

        response = client.get(f"/api/v1/patrons/{patron['id']}/report", headers=analyst["headers"])
        assert response.status_code == status.HTTP_200_OK
        assert response.content.startswith(b"%PDF")


class TestPreferencesAPI:
    def test_defaults_then_save(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com")

        defaults = client.get("/api/v1/settings/preferences", headers=analyst["headers"]).json()
        assert defaults == {
            "dark_mode": False,
            "notifications": {
                "new-cases": True,
                "case-updates": True,
                "approvals": True,
                "team-updates": False,
            },
        }

        defaults["dark_mode"] = True
        defaults["notifications"]["team-updates"] = True
        response = client.put(
            "/api/v1/settings/preferences", headers=analyst["headers"], json=defaults
        )
        assert response.status_code == status.HTTP_200_OK

        saved = client.get("/api/v1/settings/preferences", headers=analyst["headers"]).json()
        assert saved["dark_mode"] is True
        assert saved["notifications"]["team-updates"] is True


class TestRealtimeAPI:
    """Tests for the profiles change WebSocket."""

    def test_rejects_missing_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/v1/realtime/profiles"):
                pass
        assert exc_info.value.code == 4001

    def test_ping_pong(self, client):
        analyst = sign_up(client, "anna@sentinel-casino.com")

        with client.websocket_connect(
            f"/api/v1/realtime/profiles?token={analyst['token']}"
        ) as websocket:
            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"
