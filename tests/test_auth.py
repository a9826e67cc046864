"""Tests for tokens, login, the request auth context, and user management."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from docvault.core.auth import AuthContext, load_role
from docvault.core.capabilities import Capability
from docvault.core.config import settings
from docvault.core.roles import Role
from docvault.core.token_factory import create_token, decode_token
from docvault.database import get_db
from docvault.exceptions import CommunicationError, ForbiddenError
from docvault.main import app
from docvault.models.folder import Folder, FolderGrant
from docvault.models.user import AuditLog, User, UserRole
from tests.conftest import PASSWORD, auth_headers


def _operational_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("connection refused"))


class TestTokenFactory:

    def test_create_and_decode(self):
        token = create_token("user-1", "test-secret")
        payload = decode_token(token, "test-secret")
        assert payload is not None
        assert payload.sub == "user-1"

    def test_wrong_secret_returns_none(self):
        token = create_token("user-1", "correct-secret")
        assert decode_token(token, "wrong-secret") is None

    def test_expired_token_returns_none(self):
        token = create_token("user-1", "secret", expires_hours=-1)
        assert decode_token(token, "secret") is None

    def test_malformed_token_returns_none(self):
        assert decode_token("not.a.token", "secret") is None
        assert decode_token("", "secret") is None

    def test_only_hs256(self):
        with pytest.raises(ValueError):
            create_token("user-1", "secret", algorithm="none")
        assert decode_token(create_token("user-1", "secret"), "secret", algorithm="none") is None


class TestAuthContext:

    def test_require_raises_forbidden(self):
        ctx = AuthContext(user_id="u", role=Role.READER)
        with pytest.raises(ForbiddenError):
            ctx.require(Capability.UPLOAD_DOCUMENTS)
        ctx.require(Capability.USE_CHAT)

    def test_failed_lookup_denial_is_communication_error(self):
        ctx = AuthContext(user_id="u", role=None, role_lookup_failed=True)
        with pytest.raises(CommunicationError) as exc:
            ctx.require(Capability.USE_CHAT)
        assert exc.value.to_dict()["retryable"] is True
        assert exc.value.status_code == 503

    def test_load_role_fails_closed(self):
        db = MagicMock()
        db.query.side_effect = _operational_error()
        assert load_role(db, "u") == (None, True)
        db.rollback.assert_called_once()

    def test_load_role_missing_row(self, db, make_user):
        user = make_user(None)
        assert load_role(db, user.user_id) == (None, False)

    def test_load_role(self, db, make_user):
        user = make_user(Role.ADMIN)
        assert load_role(db, user.user_id) == (Role.ADMIN, False)


class TestLogin:

    def test_login_success(self, client, make_user):
        user = make_user(Role.EDITOR, email="alice@example.com")
        resp = client.post("/api/auth/login", json={"email": "Alice@Example.com", "password": PASSWORD})
        assert resp.status_code == 200
        data = resp.json()
        assert data["user"]["user_id"] == user.user_id
        assert data["user"]["role"] == "editor"
        assert decode_token(data["token"], settings.jwt_secret_key).sub == user.user_id

    def test_wrong_password(self, client, db, make_user):
        make_user(Role.EDITOR, email="alice@example.com")
        resp = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong-password"})
        assert resp.status_code == 401
        assert db.query(AuditLog).filter_by(action="login_failed").count() == 1

    def test_unknown_email_same_message(self, client, make_user):
        make_user(Role.EDITOR, email="alice@example.com")
        wrong = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "nope-nope"})
        unknown = client.post("/api/auth/login", json={"email": "bob@example.com", "password": "nope-nope"})
        assert wrong.json()["message"] == unknown.json()["message"]

    def test_inactive_account_refused(self, client, make_user):
        make_user(Role.EDITOR, email="alice@example.com", active=False)
        resp = client.post("/api/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert resp.status_code == 401


class TestMe:

    def test_me_returns_capabilities(self, client, make_user):
        admin = make_user(Role.ADMIN)
        resp = client.get("/api/auth/me", headers=auth_headers(admin))
        assert resp.status_code == 200
        data = resp.json()
        assert data["effective_role"] == "admin"
        assert data["capabilities"]["manage_folder_access"] is True
        assert data["capabilities"]["manage_users"] is False

    def test_inactive_user_has_no_effective_role(self, client, make_user):
        user = make_user(Role.ADMIN, active=False)
        data = client.get("/api/auth/me", headers=auth_headers(user)).json()
        assert data["user"]["role"] == "admin"
        assert data["effective_role"] is None
        assert not any(data["capabilities"].values())

    def test_missing_or_bad_token(self, client):
        assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/auth/me", headers={"Authorization": "Bearer junk"}).status_code == 401

    def test_token_for_deleted_user(self, client):
        token = create_token("ghost", settings.jwt_secret_key)
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_role_change_applies_to_next_request(self, client, db, make_user):
        user = make_user(Role.READER)
        headers = auth_headers(user)
        assert client.post("/api/folders", json={"name": "x"}, headers=headers).status_code == 403
        db.query(UserRole).filter_by(user_id=user.user_id).update({UserRole.role: Role.EDITOR})
        db.commit()
        assert client.post("/api/folders", json={"name": "x"}, headers=headers).status_code == 201


class TestStoreUnavailable:

    def test_store_outage_is_503_not_403(self, client, make_user):
        user = make_user(Role.EDITOR)
        broken = MagicMock()
        broken.query.side_effect = _operational_error()

        def _broken_db():
            yield broken

        app.dependency_overrides[get_db] = _broken_db
        resp = client.get("/api/folders", headers=auth_headers(user))
        assert resp.status_code == 503
        assert resp.json()["error"] == "COMMUNICATION_FAILURE"
        assert resp.json()["retryable"] is True


class TestUserManagement:

    def test_admin_lists_users_reader_cannot(self, client, make_user):
        admin, reader = make_user(Role.ADMIN), make_user(Role.READER)
        resp = client.get("/api/auth/users", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert {u["user_id"] for u in resp.json()} == {admin.user_id, reader.user_id}
        assert client.get("/api/auth/users", headers=auth_headers(reader)).status_code == 403

    def test_super_admin_changes_role(self, client, db, make_user):
        super_admin, user = make_user(Role.SUPER_ADMIN), make_user(Role.READER)
        resp = client.put(f"/api/auth/users/{user.user_id}/role", json={"role": "admin"},
                          headers=auth_headers(super_admin))
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"
        entry = db.query(AuditLog).filter_by(action="role_change").one()
        assert entry.resource_id == user.user_id

    def test_admin_cannot_change_roles(self, client, make_user):
        admin, user = make_user(Role.ADMIN), make_user(Role.READER)
        resp = client.put(f"/api/auth/users/{user.user_id}/role", json={"role": "editor"},
                          headers=auth_headers(admin))
        assert resp.status_code == 403

    def test_cannot_change_own_role(self, client, make_user):
        super_admin = make_user(Role.SUPER_ADMIN)
        resp = client.put(f"/api/auth/users/{super_admin.user_id}/role", json={"role": "reader"},
                          headers=auth_headers(super_admin))
        assert resp.status_code == 403

    def test_invalid_role(self, client, make_user):
        super_admin, user = make_user(Role.SUPER_ADMIN), make_user(Role.READER)
        resp = client.put(f"/api/auth/users/{user.user_id}/role", json={"role": "owner"},
                          headers=auth_headers(super_admin))
        assert resp.status_code == 400

    def test_assign_role_to_roleless_user(self, client, make_user):
        super_admin, user = make_user(Role.SUPER_ADMIN), make_user(None)
        resp = client.put(f"/api/auth/users/{user.user_id}/role", json={"role": "reader"},
                          headers=auth_headers(super_admin))
        assert resp.json()["role"] == "reader"

    def test_deactivate_blocks_next_request(self, client, make_user):
        super_admin, editor = make_user(Role.SUPER_ADMIN), make_user(Role.EDITOR)
        assert client.post("/api/folders", json={"name": "a"}, headers=auth_headers(editor)).status_code == 201

        resp = client.put(f"/api/auth/users/{editor.user_id}/active", json={"is_active": False},
                          headers=auth_headers(super_admin))
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        assert client.post("/api/folders", json={"name": "b"}, headers=auth_headers(editor)).status_code == 403
        assert client.get("/api/folders", headers=auth_headers(editor)).json() == []

    def test_cannot_deactivate_self(self, client, make_user):
        super_admin = make_user(Role.SUPER_ADMIN)
        resp = client.put(f"/api/auth/users/{super_admin.user_id}/active", json={"is_active": False},
                          headers=auth_headers(super_admin))
        assert resp.status_code == 403

    def test_delete_user_cascades_grants(self, client, db, make_user):
        super_admin, user = make_user(Role.SUPER_ADMIN), make_user(Role.READER)
        db.add(Folder(id="f", name="F", created_by=super_admin.user_id, visibility="custom"))
        db.add(FolderGrant(folder_id="f", user_id=user.user_id))
        db.commit()

        resp = client.delete(f"/api/auth/users/{user.user_id}", headers=auth_headers(super_admin))
        assert resp.status_code == 204
        db.expire_all()
        assert db.get(User, user.user_id) is None
        assert db.query(UserRole).filter_by(user_id=user.user_id).count() == 0
        assert db.query(FolderGrant).count() == 0

    def test_cannot_delete_self(self, client, make_user):
        super_admin = make_user(Role.SUPER_ADMIN)
        resp = client.delete(f"/api/auth/users/{super_admin.user_id}", headers=auth_headers(super_admin))
        assert resp.status_code == 403

    def test_delete_unknown_user(self, client, make_user):
        super_admin = make_user(Role.SUPER_ADMIN)
        resp = client.delete("/api/auth/users/nobody", headers=auth_headers(super_admin))
        assert resp.status_code == 404


class TestRequestValidation:

    def test_malformed_body_is_validation_error(self, client):
        resp = client.post("/api/auth/login", json={"email": "alice@example.com"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["loc"][-1] == "password"
