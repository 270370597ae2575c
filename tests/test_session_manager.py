"""Tests for the refresh-token lifecycle in SessionManager (in-memory store)."""

import threading
from datetime import timedelta

import pytest

from models.refresh_token import RefreshToken, TokenState
from services.errors import (
    AccountInactiveError,
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    ValidationError,
)
from services.session_manager import LOGOUT_ALL_REASON, LOGOUT_REASON, PASSWORD_CHANGED_REASON
from tests.conftest import PASSWORD


@pytest.fixture
def alice(sessions):
    return sessions.register("alice@example.com", PASSWORD, "Alice").user


def state_of(store, token, clock):
    return store.get_refresh_token(token).state(clock())


class TestRegisterAndLogin:
    def test_register_issues_a_session(self, sessions, memory_store, clock):
        result = sessions.register("  Bob@Example.com ", PASSWORD, "Bob")
        assert result.user.email == "bob@example.com"
        assert result.user.roles == ["user"]
        assert result.refresh_token_expires_at == clock() + timedelta(days=30)
        assert state_of(memory_store, result.refresh_token, clock) is TokenState.ACTIVE

    def test_register_rejects_duplicate_email(self, sessions, alice):
        with pytest.raises(ConflictError):
            sessions.register("ALICE@example.com", PASSWORD, "Other Alice")

    def test_login_returns_fresh_pair(self, sessions, alice):
        result = sessions.login("alice@example.com", PASSWORD)
        assert result.user.id == alice.id
        user, claims = sessions.authenticate(result.access_token)
        assert user.id == alice.id
        assert claims["sub"] == alice.id

    def test_unknown_email_and_wrong_password_look_the_same(self, sessions, alice):
        with pytest.raises(InvalidCredentialsError) as unknown:
            sessions.login("nobody@example.com", PASSWORD)
        with pytest.raises(InvalidCredentialsError) as wrong:
            sessions.login("alice@example.com", "not-the-password")
        assert unknown.value.message == wrong.value.message

    def test_inactive_account_is_a_credentials_failure(self, sessions, memory_store, alice, clock):
        memory_store.set_user_active(alice.id, False, clock())
        with pytest.raises(AccountInactiveError) as excinfo:
            sessions.login("alice@example.com", PASSWORD)
        assert isinstance(excinfo.value, InvalidCredentialsError)
        assert excinfo.value.message == "Invalid email or password"


class TestRefresh:
    def test_rotation_scenario(self, sessions, memory_store, alice, clock):
        first = sessions.login("alice@example.com", PASSWORD)
        second = sessions.refresh(first.refresh_token)
        assert second.refresh_token != first.refresh_token
        assert second.access_token != first.access_token

        with pytest.raises(InvalidTokenError):
            sessions.refresh(first.refresh_token)

        third = sessions.refresh(second.refresh_token)
        assert third.user.id == alice.id

    def test_rotated_token_links_to_its_replacement(self, sessions, memory_store, alice, clock):
        first = sessions.login("alice@example.com", PASSWORD)
        second = sessions.refresh(first.refresh_token)
        old = memory_store.get_refresh_token(first.refresh_token)
        new = memory_store.get_refresh_token(second.refresh_token)
        assert old.state(clock()) is TokenState.ROTATED
        assert old.replaced_by_token == new.id
        assert old.revoked_at == clock()
        assert new.state(clock()) is TokenState.ACTIVE

    def test_unknown_token(self, sessions):
        with pytest.raises(InvalidTokenError):
            sessions.refresh("never-issued")

    def test_expired_token(self, sessions, memory_store, alice, clock):
        result = sessions.login("alice@example.com", PASSWORD)
        clock.advance(days=30)
        with pytest.raises(InvalidTokenError):
            sessions.refresh(result.refresh_token)
        assert state_of(memory_store, result.refresh_token, clock) is TokenState.EXPIRED

    def test_token_of_deactivated_user(self, sessions, memory_store, alice, clock):
        result = sessions.login("alice@example.com", PASSWORD)
        memory_store.set_user_active(alice.id, False, clock())
        with pytest.raises(InvalidTokenError):
            sessions.refresh(result.refresh_token)

    def test_concurrent_refresh_succeeds_once(self, sessions, alice):
        token = sessions.login("alice@example.com", PASSWORD).refresh_token
        workers = 8
        barrier = threading.Barrier(workers)
        successes, failures = [], []

        def attempt():
            barrier.wait()
            try:
                successes.append(sessions.refresh(token))
            except InvalidTokenError as exc:
                failures.append(exc)

        threads = [threading.Thread(target=attempt) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(successes) == 1
        assert len(failures) == workers - 1


class TestLogout:
    def test_logout_is_idempotent(self, sessions, memory_store, alice, clock):
        token = sessions.login("alice@example.com", PASSWORD).refresh_token
        sessions.logout(token)
        after_first = memory_store.get_refresh_token(token).column_values()
        sessions.logout(token)
        after_second = memory_store.get_refresh_token(token).column_values()

        assert after_first == after_second
        assert after_second["revoked_reason"] == LOGOUT_REASON
        assert state_of(memory_store, token, clock) is TokenState.REVOKED

    def test_logout_of_unknown_token_is_silent(self, sessions):
        sessions.logout("never-issued")

    def test_revoked_token_cannot_refresh(self, sessions, alice):
        token = sessions.login("alice@example.com", PASSWORD).refresh_token
        sessions.logout(token)
        with pytest.raises(InvalidTokenError):
            sessions.refresh(token)

    def test_logout_all_revokes_only_active_tokens(self, sessions, memory_store, alice, clock):
        t1 = sessions.login("alice@example.com", PASSWORD).refresh_token
        t2 = sessions.login("alice@example.com", PASSWORD).refresh_token
        t3 = sessions.refresh(t2).refresh_token
        stale = RefreshToken(
            token="stale-token",
            user_id=alice.id,
            expires_at=clock() - timedelta(minutes=1),
        )
        memory_store.add_refresh_token(stale)

        # the registration token, t1 and t3
        assert sessions.logout_all(alice.id) == 3

        for token in (t1, t3):
            row = memory_store.get_refresh_token(token)
            assert row.state(clock()) is TokenState.REVOKED
            assert row.revoked_reason == LOGOUT_ALL_REASON
        assert state_of(memory_store, t2, clock) is TokenState.ROTATED
        assert state_of(memory_store, "stale-token", clock) is TokenState.EXPIRED
        assert sessions.logout_all(alice.id) == 0

    def test_logout_all_leaves_other_users_alone(self, sessions, memory_store, alice, clock):
        bob_token = sessions.register("bob@example.com", PASSWORD, "Bob").refresh_token
        sessions.logout_all(alice.id)
        assert state_of(memory_store, bob_token, clock) is TokenState.ACTIVE


class TestChangePassword:
    def test_wrong_current_password(self, sessions, alice):
        with pytest.raises(ValidationError) as excinfo:
            sessions.change_password(alice.id, "wrong-password", "a-new-password")
        assert "current_password" in excinfo.value.errors

    def test_change_revokes_sessions_and_swaps_password(self, sessions, memory_store, alice, clock):
        token = sessions.login("alice@example.com", PASSWORD).refresh_token
        revoked = sessions.change_password(alice.id, PASSWORD, "a-new-password")

        assert revoked == 2
        assert memory_store.get_refresh_token(token).revoked_reason == PASSWORD_CHANGED_REASON
        with pytest.raises(InvalidCredentialsError):
            sessions.login("alice@example.com", PASSWORD)
        assert sessions.login("alice@example.com", "a-new-password").user.id == alice.id


class TestAuthenticateAndSweep:
    def test_authenticate_rejects_deactivated_user(self, sessions, memory_store, alice, clock):
        access = sessions.login("alice@example.com", PASSWORD).access_token
        memory_store.set_user_active(alice.id, False, clock())
        with pytest.raises(InvalidTokenError):
            sessions.authenticate(access)

    def test_sweep_deletes_only_expired_tokens(self, sessions, memory_store, alice, clock):
        old = sessions.login("alice@example.com", PASSWORD).refresh_token
        clock.advance(days=20)
        recent = sessions.login("alice@example.com", PASSWORD).refresh_token
        clock.advance(days=15)

        # the registration token and `old` are past 30 days
        assert sessions.sweep_expired() == 2
        assert memory_store.get_refresh_token(old) is None
        assert memory_store.get_refresh_token(recent) is not None


class TestValidateRefreshToken:
    def test_active_token_is_valid_and_not_consumed(self, sessions, alice):
        token = sessions.login("alice@example.com", PASSWORD).refresh_token
        assert sessions.validate_refresh_token(token) is True
        assert sessions.validate_refresh_token(token) is True
        sessions.refresh(token)

    def test_rotated_revoked_expired_and_unknown_are_invalid(self, sessions, alice, clock):
        rotated = sessions.login("alice@example.com", PASSWORD).refresh_token
        sessions.refresh(rotated)
        revoked = sessions.login("alice@example.com", PASSWORD).refresh_token
        sessions.logout(revoked)
        expiring = sessions.login("alice@example.com", PASSWORD).refresh_token

        assert sessions.validate_refresh_token(rotated) is False
        assert sessions.validate_refresh_token(revoked) is False
        assert sessions.validate_refresh_token("never-issued") is False
        assert sessions.validate_refresh_token("") is False
        clock.advance(days=31)
        assert sessions.validate_refresh_token(expiring) is False

    def test_token_of_deactivated_user_is_invalid(self, sessions, memory_store, alice, clock):
        token = sessions.login("alice@example.com", PASSWORD).refresh_token
        memory_store.set_user_active(alice.id, False, clock())
        assert sessions.validate_refresh_token(token) is False
