"""
tests/test_sessions.py -- Self-service token management and account settings.
"""

from __future__ import annotations

import pytest

from core.config import get_settings
from db.errors import ErrorKind
from services import sessions


class TestTokens:
    def test_listing_marks_the_current_token(self, gateway, make_user, login_as) -> None:
        make_user("alice")
        first = login_as("alice")
        second = login_as("alice")

        listed = sessions.get_user_access_tokens(gateway, second)
        assert listed.success
        assert len(listed.result) == 2
        current = [t for t in listed.result if t.is_current]
        assert len(current) == 1
        assert current[0].alias == sessions.get_access_token(gateway, second).result.alias
        assert sessions.get_access_token(gateway, first).result.alias != current[0].alias

    def test_listing_excludes_dead_tokens(self, gateway, make_user, login_as) -> None:
        make_user("bob")
        old = login_as("bob")
        new = login_as("bob")
        assert sessions.revoke_token(gateway, new, old).success
        assert [t.is_current for t in sessions.get_user_access_tokens(gateway, new).result] == [True]

    def test_revoke_by_alias(self, gateway, make_user, login_as) -> None:
        make_user("carol")
        victim = login_as("carol")
        keeper = login_as("carol")
        alias = sessions.get_access_token(gateway, victim).result.alias

        assert sessions.revoke_token_by_alias(gateway, keeper, alias).success
        assert not gateway.verify_access_token(victim).success
        assert gateway.verify_access_token(keeper).success

    def test_manual_revocation_is_idempotent(self, gateway, make_user, login_as) -> None:
        make_user("dave")
        victim = login_as("dave")
        keeper = login_as("dave")
        assert sessions.revoke_token(gateway, keeper, victim).success
        assert sessions.revoke_token(gateway, keeper, victim).success

    def test_cannot_revoke_another_users_token(self, gateway, make_user, login_as) -> None:
        make_user("erin")
        make_user("frank")
        erins = login_as("erin")
        franks = login_as("frank")
        alias = sessions.get_access_token(gateway, franks).result.alias

        by_value = sessions.revoke_token(gateway, erins, franks)
        by_alias = sessions.revoke_token_by_alias(gateway, erins, alias)
        assert by_value.error.kind is ErrorKind.NOT_FOUND
        assert by_alias.error.kind is ErrorKind.NOT_FOUND
        assert gateway.verify_access_token(franks).success

    def test_revoke_self_logs_out(self, gateway, make_user, login_as) -> None:
        make_user("gina")
        token = login_as("gina")
        assert sessions.revoke_self(gateway, token).success
        assert sessions.get_profile(gateway, token).error.kind is ErrorKind.INVALID_TOKEN


class TestEnforceTokenLimit:
    def test_lowering_the_cap_revokes_oldest_on_demand(self, gateway, clock, make_user, login_as) -> None:
        make_user("hank")
        tokens = []
        for _ in range(4):
            tokens.append(login_as("hank"))
            clock.advance(seconds=1)
        newest = tokens[-1]

        assert sessions.change_max_tokens_at_a_time(gateway, newest, 2).success
        # Changing the cap alone revokes nothing.
        assert all(gateway.verify_access_token(t).success for t in tokens)

        revoked = sessions.enforce_token_limit(gateway, newest)
        assert revoked.success
        assert len(revoked.result) == 2
        assert [gateway.verify_access_token(t).success for t in tokens] == [False, False, True, True]

    def test_no_cap_revokes_nothing(self, gateway, make_user, login_as) -> None:
        make_user("ivan")
        token = login_as("ivan")
        assert sessions.enforce_token_limit(gateway, token).result == []


class TestSettings:
    def test_profile(self, gateway, clock, make_user, login_as) -> None:
        user_id = make_user("judy", default_token_expiry_seconds=900)
        token = login_as("judy")
        profile = sessions.get_profile(gateway, token).result
        assert profile.id == user_id
        assert profile.username == "judy"
        assert profile.email == "judy@example.com"
        assert profile.default_token_expiry_seconds == 900
        assert profile.max_tokens_at_a_time is None
        assert profile.last_login_timestamp == clock()

    def test_default_expiry_applies_to_new_tokens_only(self, gateway, make_user, login_as) -> None:
        make_user("kim", default_token_expiry_seconds=3600)
        token = login_as("kim")
        before = sessions.get_access_token(gateway, token).result.expiration_timestamp

        assert sessions.change_default_token_expiry(gateway, token, 60).success
        assert sessions.get_access_token(gateway, token).result.expiration_timestamp == before
        assert sessions.get_profile(gateway, token).result.default_token_expiry_seconds == 60

    @pytest.mark.parametrize("seconds", [0, -5])
    def test_default_expiry_must_be_positive(self, gateway, make_user, login_as, seconds) -> None:
        make_user("lee")
        token = login_as("lee")
        assert sessions.change_default_token_expiry(gateway, token, seconds).error.kind is ErrorKind.INVALID_ARGUMENT

    def test_default_expiry_is_bounded(self, gateway, make_user, login_as) -> None:
        make_user("mia")
        token = login_as("mia")
        too_long = get_settings().max_token_expiry_seconds + 1
        assert sessions.change_default_token_expiry(gateway, token, too_long).error.kind is ErrorKind.INVALID_ARGUMENT

    def test_max_tokens_can_be_set_and_cleared(self, gateway, make_user, login_as) -> None:
        make_user("ned")
        token = login_as("ned")
        assert sessions.change_max_tokens_at_a_time(gateway, token, 3).success
        assert sessions.get_profile(gateway, token).result.max_tokens_at_a_time == 3
        assert sessions.change_max_tokens_at_a_time(gateway, token, None).success
        assert sessions.get_profile(gateway, token).result.max_tokens_at_a_time is None

    @pytest.mark.parametrize("value", [0, 11])
    def test_max_tokens_out_of_range(self, gateway, make_user, login_as, value) -> None:
        make_user("ola")
        token = login_as("ola")
        assert sessions.change_max_tokens_at_a_time(gateway, token, value).error.kind is ErrorKind.INVALID_ARGUMENT

    def test_settings_need_a_valid_token(self, gateway) -> None:
        assert sessions.change_default_token_expiry(gateway, None, 60).error.kind is ErrorKind.INVALID_TOKEN
        assert sessions.get_profile(gateway, "bogus").error.kind is ErrorKind.INVALID_TOKEN
