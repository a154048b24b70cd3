"""Tests for auth/service.py -- the authenticate / verify / logout flow.

Covers the flow-level guarantees:
- authenticate then verify returns the same profile; logout then verify fails
- bans win over everything, including a missing 2FA code
- recovery codes are single-use through the full flow
- game_id is stable across logins
- last-login stamping and the audit trail
- an audit outage never fails a login
"""

import pytest
from sqlalchemy.exc import OperationalError

from auth.errors import Invalid2FA, InvalidCredentials, InvalidToken, Missing2FA, UserBanned
from auth.models import AuditAction

IP = "198.51.100.23"


class TestAuthenticate:
    def test_authenticate_then_verify_same_profile(self, service, make_user) -> None:
        """verify() on a fresh token returns the user authenticate() returned."""
        make_user(name="alice", email="alice@example.com", password="secret123")
        result = service.authenticate("alice@example.com", "secret123", None, IP)
        assert len(result.token) == 128

        verified = service.verify(result.token, IP)
        assert verified.user.id == result.user.id
        assert verified.user.name == result.user.name
        assert verified.user.game_id == result.user.game_id
        assert verified.token == result.token

    def test_name_identifier(self, service, make_user) -> None:
        """An identifier without '@' is looked up by user name."""
        bob = make_user(name="bob", email="robert@example.com")
        assert service.authenticate("bob", "secret123", None, IP).user.id == bob.id

    def test_invalid_credentials(self, service, make_user) -> None:
        """Wrong password and unknown identifier raise the same error."""
        make_user(name="alice")
        with pytest.raises(InvalidCredentials):
            service.authenticate("alice", "wrong", None, IP)
        with pytest.raises(InvalidCredentials):
            service.authenticate("nobody@example.com", "secret123", None, IP)

    def test_failed_login_keeps_existing_token(self, service, make_user) -> None:
        """A refused login must not revoke the token from an earlier login."""
        make_user(name="alice")
        token = service.authenticate("alice", "secret123", None, IP).token
        with pytest.raises(InvalidCredentials):
            service.authenticate("alice", "wrong", None, IP)
        assert service.verify(token, IP).user.name == "alice"

    def test_reauthentication_rotates_token(self, service, make_user) -> None:
        """Each login replaces the previous token."""
        make_user(name="alice")
        first = service.authenticate("alice", "secret123", None, IP).token
        second = service.authenticate("alice", "secret123", None, IP).token
        assert first != second
        with pytest.raises(InvalidToken):
            service.verify(first, IP)

    def test_game_id_stable_across_logins(self, service, make_user) -> None:
        """game_id is assigned on first login and never changes afterwards."""
        make_user(name="alice")
        first = service.authenticate("alice", "secret123", None, IP).user.game_id
        second = service.authenticate("alice", "secret123", None, IP).user.game_id
        assert first is not None
        assert first == second

    def test_last_login_stamped(self, service, store, make_user) -> None:
        """A successful login records the client IP and time."""
        user = make_user(name="alice")
        service.authenticate("alice", "secret123", None, IP)
        refreshed = store.get_by_id(user.id)
        assert refreshed.last_login_ip == IP
        assert refreshed.last_login_at is not None

    def test_login_audited(self, service, make_user) -> None:
        """A successful login writes one LOGIN entry with the IP and 2FA flag."""
        user = make_user(name="alice")
        service.authenticate("alice", "secret123", None, IP)
        [entry] = service.audit.entries(user.id)
        assert entry.action is AuditAction.LOGIN
        assert entry.data == {"ip": IP, "2fa": "off"}
        assert entry.target_id is None

    def test_audit_failure_does_not_fail_login(self, service, store, make_user, monkeypatch) -> None:
        """A broken audit table is logged and the login still succeeds."""
        make_user(name="alice")

        def broken(entry):
            raise OperationalError("INSERT INTO action_logs", {}, Exception("database is locked"))

        monkeypatch.setattr(store, "add_action_log", broken)
        result = service.authenticate("alice", "secret123", None, IP)
        assert store.get_by_access_token(result.token) is not None


class TestBans:
    def test_banned_user_cannot_authenticate(self, service, store, make_user) -> None:
        """A banned user gets UserBanned carrying the ban reason."""
        user = make_user(name="alice")
        store.create_ban(user.id, "Cheating")
        with pytest.raises(UserBanned) as exc:
            service.authenticate("alice", "secret123", None, IP)
        assert exc.value.ban_reason == "Cheating"

    def test_ban_checked_before_two_factor(self, service, store, make_user) -> None:
        """A banned 2FA user without a code is told about the ban, not asked for a code."""
        user = make_user(name="alice")
        service.two_factor.enable(user.id)
        store.create_ban(user.id, "Cheating")
        with pytest.raises(UserBanned):
            service.authenticate("alice", "secret123", None, IP)

    def test_banned_user_cannot_verify(self, service, store, make_user) -> None:
        """A ban placed after login makes verify() fail for the live token."""
        user = make_user(name="alice")
        token = service.authenticate("alice", "secret123", None, IP).token
        store.create_ban(user.id, "Cheating")
        with pytest.raises(UserBanned):
            service.verify(token, IP)

    def test_ban_does_not_issue_token(self, service, store, make_user) -> None:
        """A refused banned login leaves no token and no game_id behind."""
        user = make_user(name="alice")
        store.create_ban(user.id, "Cheating")
        with pytest.raises(UserBanned):
            service.authenticate("alice", "secret123", None, IP)
        assert store.get_by_id(user.id).access_token is None
        assert store.get_by_id(user.id).game_id is None

    def test_wrong_password_beats_ban(self, service, store, make_user) -> None:
        """Ban status is only revealed to callers who know the password."""
        user = make_user(name="alice")
        store.create_ban(user.id, "Cheating")
        with pytest.raises(InvalidCredentials):
            service.authenticate("alice", "wrong", None, IP)


class TestTwoFactor:
    @pytest.fixture
    def enrolled(self, service, store, make_user):
        user = make_user(name="alice")
        secret, codes = service.two_factor.enable(user.id)
        return user, secret, codes

    def test_missing_code_is_pending(self, service, enrolled) -> None:
        """No code for a 2FA user yields the 'pending' envelope."""
        with pytest.raises(Missing2FA) as exc:
            service.authenticate("alice", "secret123", None, IP)
        assert exc.value.payload()["status"] == "pending"

    def test_wrong_code(self, service, enrolled) -> None:
        """A code that is neither TOTP nor a recovery code is rejected."""
        with pytest.raises(Invalid2FA):
            service.authenticate("alice", "secret123", "000000-nope", IP)

    def test_whitespace_code_is_invalid(self, service, store, enrolled) -> None:
        """A whitespace-only code counts as a wrong code and issues no token."""
        user, _secret, _codes = enrolled
        with pytest.raises(Invalid2FA):
            service.authenticate("alice", "secret123", "   ", IP)
        assert store.get_by_id(user.id).access_token is None

    def test_totp_login_audited_with_2fa_on(self, service, enrolled) -> None:
        """A TOTP login is audited with 2fa 'on'."""
        user, secret, _codes = enrolled
        service.authenticate("alice", "secret123", service.two_factor.totp.now(secret), IP)
        assert service.audit.entries(user.id)[0].data == {"ip": IP, "2fa": "on"}

    def test_recovery_code_single_use(self, service, enrolled) -> None:
        """A recovery code logs in once and is refused the second time."""
        _user, _secret, codes = enrolled
        result = service.authenticate("alice", "secret123", codes[0], IP)
        assert result.token
        with pytest.raises(Invalid2FA):
            service.authenticate("alice", "secret123", codes[0], IP)

    def test_missing_code_does_not_issue_token(self, service, store, enrolled) -> None:
        """Stopping at the 2FA prompt leaves no token behind."""
        user, _secret, _codes = enrolled
        with pytest.raises(Missing2FA):
            service.authenticate("alice", "secret123", None, IP)
        assert store.get_by_id(user.id).access_token is None


class TestVerifyAndLogout:
    def test_verify_unknown_token(self, service) -> None:
        """A token that was never issued raises InvalidToken."""
        with pytest.raises(InvalidToken):
            service.verify("does-not-exist", IP)

    def test_verify_audited_and_stamped(self, service, make_user) -> None:
        """verify() updates last login and writes a VERIFIED entry."""
        user = make_user(name="alice")
        token = service.authenticate("alice", "secret123", None, "10.0.0.1").token
        result = service.verify(token, IP)
        assert result.user.last_login_ip == IP
        entries = service.audit.entries(user.id)
        assert entries[0].action is AuditAction.VERIFIED
        assert entries[0].data == {"ip": IP}

    def test_logout_then_verify_fails(self, service, make_user) -> None:
        """A logged-out token can no longer be verified."""
        make_user(name="alice")
        token = service.authenticate("alice", "secret123", None, IP).token
        service.logout(token, IP)
        with pytest.raises(InvalidToken):
            service.verify(token, IP)

    def test_logout_is_idempotent(self, service, make_user) -> None:
        """Repeated or unknown-token logouts succeed quietly."""
        make_user(name="alice")
        token = service.authenticate("alice", "secret123", None, IP).token
        service.logout(token, IP)
        service.logout(token, IP)
        service.logout("never-issued", IP)

    def test_logout_audited_only_when_token_cleared(self, service, make_user) -> None:
        """Only the logout that actually cleared a token is audited."""
        user = make_user(name="alice")
        token = service.authenticate("alice", "secret123", None, IP).token
        service.logout(token, IP)
        service.logout(token, IP)
        actions = [e.action for e in service.audit.entries(user.id)]
        assert actions == [AuditAction.LOGOUT, AuditAction.LOGIN]
