"""Tests for the invitation state machine and its endpoints."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from docvault.api.invitations import get_clock
from docvault.core.roles import Role
from docvault.exceptions import (
    ConflictError,
    DuplicateAccountError,
    DuplicatePendingInviteError,
    ForbiddenError,
    InternalError,
    InvitationAlreadyAcceptedError,
    InvitationExpiredError,
    InvitationNotFoundError,
    ValidationError,
)
from docvault.database import SessionLocal
from docvault.main import app
from docvault.models.invitation import Invitation
from docvault.models.user import User
from docvault.repositories.invitation_repository import InvitationRepository
from docvault.services.invitation_service import InvitationService, InvitationStatus
from tests.conftest import PASSWORD, as_auth, auth_headers

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock():
    return Clock(T0)


@pytest.fixture()
def service(db, clock):
    return InvitationService(db, clock=clock)


@pytest.fixture()
def super_admin(make_user):
    return make_user(Role.SUPER_ADMIN)


class TestCreate:

    def test_creates_pending_invitation(self, service, super_admin):
        created = service.create(as_auth(super_admin), "  New.Person@Example.com ", "editor")
        inv = created.invitation
        assert inv.email == "new.person@example.com"
        assert Role(inv.role) is Role.EDITOR
        assert len(inv.token) == 64
        int(inv.token, 16)
        assert created.accept_url == f"http://app.test/accept-invite?token={inv.token}"
        assert created.email_sent is False

    def test_expires_after_seven_days(self, service, super_admin):
        inv = service.create(as_auth(super_admin), "a@example.com", "reader").invitation
        expires = inv.expires_at if inv.expires_at.tzinfo else inv.expires_at.replace(tzinfo=timezone.utc)
        assert expires == T0 + timedelta(days=7)

    def test_super_admin_role_is_not_invitable(self, service, super_admin):
        with pytest.raises(ValidationError):
            service.create(as_auth(super_admin), "a@example.com", "super_admin")

    def test_invalid_email(self, service, super_admin):
        with pytest.raises(ValidationError):
            service.create(as_auth(super_admin), "not-an-email", "reader")

    def test_only_super_admin_may_invite(self, service, make_user):
        with pytest.raises(ForbiddenError):
            service.create(as_auth(make_user(Role.ADMIN)), "a@example.com", "reader")

    def test_existing_account_conflicts(self, service, super_admin, make_user):
        make_user(Role.READER, email="taken@example.com")
        with pytest.raises(DuplicateAccountError) as exc:
            service.create(as_auth(super_admin), "TAKEN@example.com", "reader")
        assert exc.value.status_code == 409

    def test_pending_invitation_conflicts(self, service, super_admin):
        service.create(as_auth(super_admin), "a@example.com", "reader")
        with pytest.raises(DuplicatePendingInviteError):
            service.create(as_auth(super_admin), "a@example.com", "editor")

    def test_expired_invitation_does_not_block_reinvite(self, service, super_admin, clock):
        service.create(as_auth(super_admin), "a@example.com", "reader")
        clock.now = T0 + timedelta(days=8)
        assert service.create(as_auth(super_admin), "a@example.com", "reader").invitation.id

    def test_expired_invitation_is_replaced_on_reinvite(self, db, service, super_admin, clock):
        old = service.create(as_auth(super_admin), "a@example.com", "reader").invitation.id
        clock.now = T0 + timedelta(days=8)
        new = service.create(as_auth(super_admin), "a@example.com", "editor").invitation.id
        assert [inv.id for inv in db.query(Invitation).filter_by(email="a@example.com")] == [new]
        assert new != old

    def test_database_allows_one_unaccepted_invitation_per_email(self, db):
        for n in range(2):
            db.add(Invitation(id=f"inv-{n}", email="dup@example.com", role=Role.READER,
                              token=str(n) * 64, expires_at=T0))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

        db.add(Invitation(id="inv-a", email="dup@example.com", role=Role.READER,
                          token="a" * 64, expires_at=T0, accepted_at=T0))
        db.add(Invitation(id="inv-b", email="dup@example.com", role=Role.READER,
                          token="b" * 64, expires_at=T0))
        db.commit()

    def test_concurrent_creates_leave_one_pending(self, db, clock, super_admin, monkeypatch):
        auth = as_auth(super_admin)
        original = InvitationRepository.pending_for_email
        interleaved = []

        def _check_then_invite_elsewhere(repo, email, now):
            found = original(repo, email, now)
            if not interleaved:
                interleaved.append(email)
                other = SessionLocal()
                try:
                    InvitationService(other, clock=clock).create(auth, email, "reader")
                finally:
                    other.close()
            return found

        monkeypatch.setattr(InvitationRepository, "pending_for_email", _check_then_invite_elsewhere)
        with pytest.raises(DuplicatePendingInviteError):
            InvitationService(db, clock=clock).create(auth, "race@example.com", "editor")

        db.expire_all()
        rows = db.query(Invitation).filter_by(email="race@example.com").all()
        assert [Role(inv.role) for inv in rows] == [Role.READER]

    def test_token_collision_is_retried(self, service, super_admin):
        first = service.create(as_auth(super_admin), "a@example.com", "reader").invitation
        tokens = iter([first.token, "b" * 64])
        with patch("docvault.services.invitation_service.secrets.token_hex", side_effect=lambda n: next(tokens)):
            second = service.create(as_auth(super_admin), "b@example.com", "reader").invitation
        assert second.token == "b" * 64

    def test_exhausted_token_attempts_is_internal_error(self, service, super_admin):
        first = service.create(as_auth(super_admin), "a@example.com", "reader").invitation
        with patch("docvault.services.invitation_service.secrets.token_hex", return_value=first.token):
            with pytest.raises(InternalError):
                service.create(as_auth(super_admin), "b@example.com", "reader")

    def test_email_failure_keeps_invitation(self, db, service, super_admin, monkeypatch):
        from docvault.core.config import settings

        monkeypatch.setattr(settings, "smtp_host", "smtp.test")
        monkeypatch.setattr(settings, "smtp_sender", "noreply@test")
        with patch("docvault.services.emailer.smtplib.SMTP", side_effect=OSError("refused")):
            created = service.create(as_auth(super_admin), "a@example.com", "reader")
        assert created.email_sent is False
        assert db.query(Invitation).count() == 1

    def test_email_sent_when_configured(self, service, super_admin, monkeypatch):
        from docvault.core.config import settings

        monkeypatch.setattr(settings, "smtp_host", "smtp.test")
        monkeypatch.setattr(settings, "smtp_sender", "noreply@test")
        with patch("docvault.services.emailer.smtplib.SMTP") as smtp:
            created = service.create(as_auth(super_admin), "a@example.com", "reader")
        assert created.email_sent is True
        message = smtp.return_value.__enter__.return_value.send_message.call_args[0][0]
        assert message["To"] == "a@example.com"
        assert created.accept_url in message.get_body(("plain",)).get_content()


class TestResolveAndAccept:

    @pytest.fixture()
    def token(self, service, super_admin):
        return service.create(as_auth(super_admin), "new@example.com", "editor").invitation.token

    def test_resolve_pending(self, service, token):
        resolved = service.resolve(token)
        assert resolved.email == "new@example.com"
        assert resolved.role is Role.EDITOR
        assert resolved.expires_at == T0 + timedelta(days=7)

    def test_unknown_token(self, service):
        with pytest.raises(InvitationNotFoundError):
            service.resolve("0" * 64)

    def test_accept_after_expiry(self, db, service, clock, token):
        clock.now = T0 + timedelta(days=8)
        with pytest.raises(InvitationExpiredError):
            service.accept(token, "New Person", PASSWORD, PASSWORD)
        assert db.query(User).filter_by(email="new@example.com").count() == 0

    def test_accept_within_window_then_again(self, db, service, clock, token):
        clock.now = T0 + timedelta(days=1)
        user = service.accept(token, "New Person", PASSWORD, PASSWORD)
        assert user.role is Role.EDITOR
        assert user.display_name == "New Person"
        assert db.query(Invitation).filter_by(token=token).one().accepted_at is not None

        with pytest.raises(InvitationAlreadyAcceptedError):
            service.accept(token, "Someone Else", PASSWORD, PASSWORD)
        with pytest.raises(InvitationAlreadyAcceptedError):
            service.resolve(token)
        assert db.query(User).filter_by(email="new@example.com").count() == 1

    def test_concurrent_accepts_have_one_winner(self, db, clock, token, monkeypatch):
        original = InvitationService._get_open
        interleaved = []

        def _open_then_accept_elsewhere(svc, tok):
            invitation = original(svc, tok)
            if not interleaved:
                interleaved.append(tok)
                other = SessionLocal()
                try:
                    InvitationService(other, clock=clock).accept(tok, "Other Person", PASSWORD, PASSWORD)
                finally:
                    other.close()
            return invitation

        monkeypatch.setattr(InvitationService, "_get_open", _open_then_accept_elsewhere)
        with pytest.raises(InvitationAlreadyAcceptedError):
            InvitationService(db, clock=clock).accept(token, "New Person", PASSWORD, PASSWORD)

        db.expire_all()
        users = db.query(User).filter_by(email="new@example.com").all()
        assert [u.display_name for u in users] == ["Other Person"]
        assert db.query(Invitation).filter_by(token=token).one().accepted_at is not None

    def test_user_creation_failure_leaves_invitation_pending(self, db, service, token, monkeypatch):
        from docvault.services import auth_service

        def _fail(*args, **kwargs):
            raise RuntimeError("store hiccup")

        monkeypatch.setattr(auth_service, "create_user", _fail)
        with pytest.raises(RuntimeError):
            service.accept(token, "New Person", PASSWORD, PASSWORD)
        db.expire_all()
        assert db.query(Invitation).filter_by(token=token).one().accepted_at is None

    @pytest.mark.parametrize(
        "name,password,confirm",
        [
            ("N", PASSWORD, PASSWORD),
            ("N" * 101, PASSWORD, PASSWORD),
            ("New Person", "short", "short"),
            ("New Person", PASSWORD, PASSWORD + "x"),
        ],
    )
    def test_input_validation(self, service, token, name, password, confirm):
        with pytest.raises(ValidationError):
            service.accept(token, name, password, confirm)

    def test_account_created_meanwhile_conflicts(self, db, service, token, make_user):
        make_user(Role.READER, email="new@example.com")
        with pytest.raises(DuplicateAccountError):
            service.accept(token, "New Person", PASSWORD, PASSWORD)
        db.expire_all()
        assert db.query(Invitation).filter_by(token=token).one().accepted_at is None


class TestRevokeAndList:

    def test_revoke_invalidates_token(self, service, super_admin):
        auth = as_auth(super_admin)
        inv = service.create(auth, "a@example.com", "reader").invitation
        token = inv.token
        service.revoke(auth, inv.id)
        with pytest.raises(InvitationNotFoundError):
            service.resolve(token)

    def test_accepted_invitation_cannot_be_revoked(self, service, super_admin):
        auth = as_auth(super_admin)
        inv = service.create(auth, "a@example.com", "reader").invitation
        service.accept(inv.token, "Anna Example", PASSWORD, PASSWORD)
        with pytest.raises(ConflictError):
            service.revoke(auth, inv.id)

    def test_list_pending_derives_status(self, service, super_admin, clock):
        auth = as_auth(super_admin)
        service.create(auth, "old@example.com", "reader")
        clock.now = T0 + timedelta(days=6)
        service.create(auth, "new@example.com", "editor")
        clock.now = T0 + timedelta(days=7, hours=1)

        listed = [(inv.email, status) for inv, status in service.list_pending(auth)]
        assert listed == [
            ("new@example.com", InvitationStatus.PENDING),
            ("old@example.com", InvitationStatus.EXPIRED),
        ]


class TestInvitationEndpoints:

    @pytest.fixture()
    def api_clock(self, client):
        clock = Clock(T0)
        app.dependency_overrides[get_clock] = lambda: clock
        return clock

    def test_full_flow(self, client, api_clock, super_admin):
        resp = client.post("/api/invitations", json={"email": "bob@example.com", "role": "editor"},
                           headers=auth_headers(super_admin))
        assert resp.status_code == 201
        token = resp.json()["token"]
        assert resp.json()["status"] == "pending"

        lookup = client.get(f"/api/invitations/token/{token}")
        assert lookup.status_code == 200
        assert lookup.json()["email"] == "bob@example.com"
        assert lookup.json()["role"] == "editor"

        api_clock.now = T0 + timedelta(days=1)
        body = {"full_name": "Bob Example", "password": PASSWORD, "confirm_password": PASSWORD}
        accepted = client.post(f"/api/invitations/token/{token}/accept", json=body)
        assert accepted.status_code == 201
        assert accepted.json()["role"] == "editor"

        again = client.post(f"/api/invitations/token/{token}/accept", json=body)
        assert again.status_code == 409
        assert again.json()["error"] == "ALREADY_ACCEPTED"

        login = client.post("/api/auth/login", json={"email": "bob@example.com", "password": PASSWORD})
        assert login.status_code == 200

    def test_expired_is_410(self, client, api_clock, super_admin):
        token = client.post("/api/invitations", json={"email": "bob@example.com", "role": "reader"},
                            headers=auth_headers(super_admin)).json()["token"]
        api_clock.now = T0 + timedelta(days=8)
        resp = client.get(f"/api/invitations/token/{token}")
        assert resp.status_code == 410
        assert resp.json()["error"] == "EXPIRED"

    def test_duplicate_invite_is_409(self, client, api_clock, super_admin):
        body = {"email": "bob@example.com", "role": "reader"}
        client.post("/api/invitations", json=body, headers=auth_headers(super_admin))
        resp = client.post("/api/invitations", json=body, headers=auth_headers(super_admin))
        assert resp.status_code == 409
        assert resp.json()["details"]["reason"] == "duplicate_pending_invite"

    def test_admin_cannot_invite_or_list(self, client, api_clock, make_user):
        admin = make_user(Role.ADMIN)
        assert client.post("/api/invitations", json={"email": "b@example.com"},
                           headers=auth_headers(admin)).status_code == 403
        assert client.get("/api/invitations", headers=auth_headers(admin)).status_code == 403

    def test_revoke_endpoint(self, client, api_clock, super_admin):
        created = client.post("/api/invitations", json={"email": "b@example.com"},
                              headers=auth_headers(super_admin)).json()
        resp = client.delete(f"/api/invitations/{created['id']}", headers=auth_headers(super_admin))
        assert resp.status_code == 204
        assert client.get(f"/api/invitations/token/{created['token']}").status_code == 404
        assert client.get("/api/invitations", headers=auth_headers(super_admin)).json() == []

    def test_unknown_token_is_404(self, client, api_clock):
        resp = client.get("/api/invitations/token/" + "a" * 64)
        assert resp.status_code == 404
