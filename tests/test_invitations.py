"""
tests/test_invitations.py -- Issuing and managing account creation codes.

Covers:
  - permission gating (use_app_admin AND manage_account_creation_codes)
  - issuance validation: title, email, expiration window, expiry, names
  - one redeemable code per email, no code for an email already in use
  - edits apply only to redeemable codes
  - the first-run system code: empty store only, grants the whole catalog
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import insert

from auth.permissions import Permission
from core.config import get_settings
from db.errors import ErrorKind
from db.schema import account_creation_codes, iso
from services import invitations
from services.accounts import create_account
from services.login import login

PASSWORD = "a perfectly fine password"


@pytest.fixture
def admin_token(make_user, login_as) -> str:
    make_user("admin", permissions=[Permission.UseApp_Admin, Permission.App_Admin_ManageAccountCreationCodes])
    return login_as("admin")


def _issue(gateway, clock, token, email="new@x.com", **overrides):
    kwargs = dict(
        email=email,
        title="invite",
        permission_names=["use_app"],
        expiration=clock() + timedelta(hours=1),
    )
    kwargs.update(overrides)
    return invitations.issue_account_creation_code(gateway, token, **kwargs)


class TestIssue:
    def test_issue_and_list(self, gateway, clock, admin_token) -> None:
        issued = _issue(gateway, clock, admin_token, permission_names=["use_app", "use_app_gym", "use_app"])
        assert issued.success
        code = issued.result
        assert code.creator_type == "user"
        assert code.permission_names == ["use_app", "use_app_gym"]
        assert len(code.code) == get_settings().account_creation_code_length
        assert code.account_default_token_expiry_seconds == get_settings().account_default_token_expiry_seconds

        listed = invitations.list_account_creation_codes(gateway, admin_token)
        assert [c.id for c in listed.result] == [code.id]

    @pytest.mark.parametrize(
        "held",
        [[], [Permission.UseApp_Admin], [Permission.App_Admin_ManageAccountCreationCodes]],
    )
    def test_requires_both_permissions(self, gateway, clock, make_user, login_as, held) -> None:
        make_user("clerk", permissions=held)
        result = _issue(gateway, clock, login_as("clerk"))
        assert result.error.kind is ErrorKind.PERMISSION_DENIED

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "x" * 20},
            {"email": "not-an-email"},
            {"permission_names": ["use_app", "superuser"]},
            {"account_default_token_expiry_seconds": 0},
        ],
    )
    def test_rejects_bad_input(self, gateway, clock, admin_token, overrides) -> None:
        assert _issue(gateway, clock, admin_token, **overrides).error.kind is ErrorKind.INVALID_ARGUMENT

    def test_expiration_window(self, gateway, clock, admin_token) -> None:
        past = _issue(gateway, clock, admin_token, expiration=clock())
        too_far = _issue(
            gateway,
            clock,
            admin_token,
            expiration=clock() + timedelta(seconds=get_settings().account_creation_code_max_lifetime_seconds + 1),
        )
        assert past.error.kind is ErrorKind.INVALID_ARGUMENT
        assert too_far.error.kind is ErrorKind.INVALID_ARGUMENT

    def test_one_redeemable_code_per_email(self, gateway, clock, admin_token) -> None:
        first = _issue(gateway, clock, admin_token)
        assert first.success
        second = _issue(gateway, clock, admin_token)
        assert second.error.kind is ErrorKind.INVITATION_CONFLICT

        # Once the first is revoked a new one may be issued.
        assert invitations.revoke_account_creation_code(gateway, admin_token, first.result.id).success
        assert _issue(gateway, clock, admin_token).success

    def test_email_already_in_use(self, gateway, clock, make_user, admin_token) -> None:
        make_user("existing", email="taken@x.com")
        result = _issue(gateway, clock, admin_token, email="taken@x.com")
        assert result.error.kind is ErrorKind.INVITATION_CONFLICT


class TestManage:
    def test_revoked_code_cannot_be_redeemed_or_revoked_again(self, gateway, clock, admin_token) -> None:
        code = _issue(gateway, clock, admin_token).result
        assert invitations.revoke_account_creation_code(gateway, admin_token, code.id).success
        assert create_account(gateway, "late", PASSWORD, "new@x.com", code.code).error.kind is ErrorKind.INVITATION_INVALID
        again = invitations.revoke_account_creation_code(gateway, admin_token, code.id)
        assert again.error.kind is ErrorKind.NOT_FOUND

        assert invitations.list_account_creation_codes(gateway, admin_token).result == []
        listed = invitations.list_account_creation_codes(gateway, admin_token, include_invalid=True).result
        assert listed[0].revoked_timestamp == clock()

    def test_add_and_remove_permissions(self, gateway, clock, admin_token) -> None:
        code = _issue(gateway, clock, admin_token).result

        added = invitations.add_permission_to_code(gateway, admin_token, code.id, "use_app_gym")
        assert added.result == ["use_app", "use_app_gym"]
        duplicate = invitations.add_permission_to_code(gateway, admin_token, code.id, "use_app_gym")
        assert duplicate.error.kind is ErrorKind.INVALID_ARGUMENT
        unknown = invitations.add_permission_to_code(gateway, admin_token, code.id, "superuser")
        assert unknown.error.kind is ErrorKind.INVALID_ARGUMENT

        removed = invitations.remove_permission_from_code(gateway, admin_token, code.id, "use_app")
        assert removed.result == ["use_app_gym"]
        missing = invitations.remove_permission_from_code(gateway, admin_token, code.id, "use_app")
        assert missing.error.kind is ErrorKind.INVALID_ARGUMENT

    def test_edits_refused_after_redemption(self, gateway, clock, admin_token) -> None:
        code = _issue(gateway, clock, admin_token).result
        assert create_account(gateway, "fresh", PASSWORD, "new@x.com", code.code).success

        edits = [
            invitations.add_permission_to_code(gateway, admin_token, code.id, "use_app_gym"),
            invitations.update_code_default_token_expiry(gateway, admin_token, code.id, 60),
            invitations.update_code_notify_creator(gateway, admin_token, code.id, True),
            invitations.revoke_account_creation_code(gateway, admin_token, code.id),
        ]
        assert all(e.error.kind is ErrorKind.NOT_FOUND for e in edits)

    def test_update_default_expiry(self, gateway, clock, admin_token) -> None:
        code = _issue(gateway, clock, admin_token).result
        assert invitations.update_code_default_token_expiry(gateway, admin_token, code.id, 120).success
        bad = invitations.update_code_default_token_expiry(gateway, admin_token, code.id, 0)
        assert bad.error.kind is ErrorKind.INVALID_ARGUMENT

        create_account(gateway, "shortlived", PASSWORD, "new@x.com", code.code)
        assert login(gateway, "shortlived", PASSWORD).result.expires_in == 120

    def test_system_code_cannot_notify(self, gateway, engine, clock, admin_token) -> None:
        code_id = str(uuid.uuid4())
        with engine.begin() as conn:
            conn.execute(
                insert(account_creation_codes).values(
                    id=code_id,
                    code="SYSTEM",
                    title="seeded",
                    email="sys@x.com",
                    creation_timestamp=iso(clock()),
                    creator_type="system",
                    account_default_token_expiry_seconds=3600,
                    permission_names=[],
                    expiration_timestamp=iso(clock() + timedelta(hours=1)),
                )
            )
        result = invitations.update_code_notify_creator(gateway, admin_token, code_id, True)
        assert not result.success
        assert result.error.message == "Only codes issued by a user can notify their creator."

    def test_user_code_can_toggle_notify(self, gateway, clock, admin_token) -> None:
        code = _issue(gateway, clock, admin_token).result
        assert invitations.update_code_notify_creator(gateway, admin_token, code.id, True).success


class TestBootstrap:
    def test_first_run_code_grants_the_whole_catalog(self, gateway) -> None:
        issued = invitations.issue_bootstrap_code(gateway, "root@x.com")
        assert issued.success
        code = issued.result
        assert code.creator_type == "system"
        assert code.creator_user_id is None
        assert set(code.permission_names) == {p.value for p in Permission}

        assert create_account(gateway, "root", PASSWORD, "root@x.com", code.code).success
        token = login(gateway, "root", PASSWORD).result.token
        assert gateway.check_for_permissions(token, *Permission).success

    def test_only_on_an_empty_store(self, gateway) -> None:
        assert invitations.issue_bootstrap_code(gateway, "root@x.com").success
        second = invitations.issue_bootstrap_code(gateway, "other@x.com")
        assert second.error.kind is ErrorKind.PERMISSION_DENIED

    def test_refused_once_users_exist(self, gateway, make_user) -> None:
        make_user("someone")
        assert invitations.issue_bootstrap_code(gateway, "root@x.com").error.kind is ErrorKind.PERMISSION_DENIED

    def test_bootstrap_code_expires_quickly(self, gateway, clock) -> None:
        code = invitations.issue_bootstrap_code(gateway, "root@x.com").result
        clock.advance(minutes=get_settings().bootstrap_code_expiry_minutes)
        late = create_account(gateway, "root", PASSWORD, "root@x.com", code.code)
        assert late.error.kind is ErrorKind.INVITATION_INVALID
