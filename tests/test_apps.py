"""
tests/test_apps.py -- The per-user apps: gym, expenses, time management.

Covers:
  - each app is gated by its use_app_* permission(s); a denied call writes nothing
  - records are owned: another user's ids behave like ids that do not exist
  - input validation (INVALID_ARGUMENT) happens before any store access
  - time management: planned percentages cap at 100, one running session per activity,
    sessions listed per UTC day
  - the permission check shares the query's single token verification
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from auth.permissions import Permission
from db.errors import MSG_PERMISSION_DENIED, ErrorKind
from db.schema import expenses, gym_weights
from services import expenses as expense_service
from services import gym as gym_service
from services import time_management as tm_service

GYM = Permission.UseApp_Gym
BOOK_KEEPING = Permission.UseApp_BookKeeping
EXPENSES = Permission.UseApp_Expenses
TIME = Permission.UseApp_TimeManagement


def _count(engine, table) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(table)).scalar_one()


# ---------------------------------------------------------------------------
# Gym
# ---------------------------------------------------------------------------


class TestGym:
    def test_requires_use_app_gym(self, gateway, engine, clock, make_user, login_as) -> None:
        make_user("nogym", permissions=[Permission.UseApp])
        token = login_as("nogym")
        denied = gym_service.add_gym_weight(gateway, token, 80.0, clock())
        assert denied.error.kind is ErrorKind.PERMISSION_DENIED
        assert denied.error.message == MSG_PERMISSION_DENIED
        assert gym_service.get_gym_weights(gateway, token).error.kind is ErrorKind.PERMISSION_DENIED
        assert _count(engine, gym_weights) == 0

    def test_invalid_token(self, gateway) -> None:
        assert gym_service.get_gym_weights(gateway, "bogus").error.kind is ErrorKind.INVALID_TOKEN

    def test_add_and_list_oldest_first(self, gateway, clock, make_user, login_as) -> None:
        user_id = make_user("lifter", permissions=[GYM])
        token = login_as("lifter")
        later = gym_service.add_gym_weight(gateway, token, 81.5, clock() - timedelta(days=1)).result
        earlier = gym_service.add_gym_weight(gateway, token, 82.0, clock() - timedelta(days=2)).result
        assert later.user_id == user_id

        listed = gym_service.get_gym_weights(gateway, token).result
        assert [w.id for w in listed] == [earlier.id, later.id]
        assert [w.amount for w in listed] == [82.0, 81.5]

    @pytest.mark.parametrize("amount", [0, -1, 1001])
    def test_amount_out_of_range(self, gateway, clock, make_user, login_as, amount) -> None:
        make_user("lifter", permissions=[GYM])
        result = gym_service.add_gym_weight(gateway, login_as("lifter"), amount, clock())
        assert result.error.kind is ErrorKind.INVALID_ARGUMENT

    def test_naive_timestamp_is_rejected(self, gateway, clock, make_user, login_as) -> None:
        make_user("lifter", permissions=[GYM])
        result = gym_service.add_gym_weight(gateway, login_as("lifter"), 80.0, clock().replace(tzinfo=None))
        assert result.error.kind is ErrorKind.INVALID_ARGUMENT

    def test_weights_are_owned(self, gateway, clock, make_user, login_as) -> None:
        make_user("owner", permissions=[GYM])
        make_user("other", permissions=[GYM])
        owner, other = login_as("owner"), login_as("other")
        weight = gym_service.add_gym_weight(gateway, owner, 80.0, clock()).result

        assert gym_service.get_gym_weights(gateway, other).result == []
        assert gym_service.delete_gym_weight(gateway, other, weight.id).error.kind is ErrorKind.NOT_FOUND

        assert gym_service.delete_gym_weight(gateway, owner, weight.id).success
        assert gym_service.get_gym_weights(gateway, owner).result == []
        assert gym_service.delete_gym_weight(gateway, owner, weight.id).error.kind is ErrorKind.NOT_FOUND

    def test_one_verification_per_call(self, gateway, make_user, login_as, monkeypatch) -> None:
        make_user("lifter", permissions=[GYM])
        token = login_as("lifter")
        calls = []
        original = gateway.verify_access_token

        def _counting(t):
            calls.append(t)
            return original(t)

        monkeypatch.setattr(gateway, "verify_access_token", _counting)
        assert gym_service.get_gym_weights(gateway, token).success
        assert calls == [token]


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


@pytest.fixture
def bookkeeper(make_user, login_as) -> str:
    make_user("bookkeeper", permissions=[BOOK_KEEPING, EXPENSES])
    return login_as("bookkeeper")


class TestExpenses:
    @pytest.mark.parametrize("held", [[], [BOOK_KEEPING], [EXPENSES]])
    def test_requires_both_permissions(self, gateway, engine, clock, make_user, login_as, held) -> None:
        make_user("partial", permissions=held)
        token = login_as("partial")
        denied = expense_service.add_expense(gateway, token, "Coffee", 3.5, clock())
        assert denied.error.kind is ErrorKind.PERMISSION_DENIED
        assert _count(engine, expenses) == 0

    def test_add_and_list(self, gateway, clock, bookkeeper) -> None:
        added = expense_service.add_expense(
            gateway,
            bookkeeper,
            "  Train ticket ",
            42.0,
            clock(),
            category="travel",
            reimbursement_expected_amount=42.0,
            reimbursement_income_ids=["inc-1"],
        ).result
        assert added.title == "Train ticket"

        listed = expense_service.get_expenses(gateway, bookkeeper).result
        assert len(listed) == 1
        assert listed[0].id == added.id
        assert listed[0].reimbursement_income_ids == ["inc-1"]
        assert listed[0].timestamp == clock()

    @pytest.mark.parametrize(
        "title, amount, reimbursement",
        [("", 10.0, 0.0), ("x" * 101, 10.0, 0.0), ("Lunch", 0, 0.0), ("Lunch", 10.0, -1.0), ("Lunch", 10.0, 10.5)],
    )
    def test_invalid_input(self, gateway, clock, bookkeeper, title, amount, reimbursement) -> None:
        result = expense_service.add_expense(
            gateway, bookkeeper, title, amount, clock(), reimbursement_expected_amount=reimbursement
        )
        assert result.error.kind is ErrorKind.INVALID_ARGUMENT

    def test_update_changes_only_given_fields(self, gateway, clock, bookkeeper) -> None:
        expense = expense_service.add_expense(gateway, bookkeeper, "Lunch", 12.0, clock(), category="food").result
        clock.advance(minutes=5)

        updated = expense_service.update_expense(gateway, bookkeeper, expense.id, amount=15.0, subscription_id=None)
        assert updated.success, updated.error
        assert updated.result.amount == 15.0
        assert updated.result.category == "food"
        assert updated.result.last_edited_timestamp == clock()

    def test_update_validates_the_merged_expense(self, gateway, clock, bookkeeper) -> None:
        expense = expense_service.add_expense(
            gateway, bookkeeper, "Hotel", 100.0, clock(), reimbursement_expected_amount=80.0
        ).result
        # 50 on its own is fine, but not below the expected reimbursement.
        result = expense_service.update_expense(gateway, bookkeeper, expense.id, amount=50.0)
        assert result.error.kind is ErrorKind.INVALID_ARGUMENT
        assert expense_service.update_expense(gateway, bookkeeper, expense.id, user_id="x").error.kind is (
            ErrorKind.INVALID_ARGUMENT
        )

    def test_expenses_are_owned(self, gateway, clock, make_user, login_as, bookkeeper) -> None:
        make_user("snoop", permissions=[BOOK_KEEPING, EXPENSES])
        snoop = login_as("snoop")
        expense = expense_service.add_expense(gateway, bookkeeper, "Rent", 900.0, clock()).result

        assert expense_service.get_expenses(gateway, snoop, include_deleted=True).result == []
        assert expense_service.update_expense(gateway, snoop, expense.id, title="Mine").error.kind is ErrorKind.NOT_FOUND
        assert expense_service.delete_expense(gateway, snoop, expense.id).error.kind is ErrorKind.NOT_FOUND

    def test_deleted_expenses_are_hidden_and_frozen(self, gateway, clock, bookkeeper) -> None:
        expense = expense_service.add_expense(gateway, bookkeeper, "Gym pass", 30.0, clock()).result
        assert expense_service.delete_expense(gateway, bookkeeper, expense.id).success

        assert expense_service.get_expenses(gateway, bookkeeper).result == []
        kept = expense_service.get_expenses(gateway, bookkeeper, include_deleted=True).result
        assert [e.deletion_timestamp for e in kept] == [clock()]
        assert expense_service.update_expense(gateway, bookkeeper, expense.id, amount=1.0).error.kind is (
            ErrorKind.NOT_FOUND
        )
        assert expense_service.delete_expense(gateway, bookkeeper, expense.id).error.kind is ErrorKind.NOT_FOUND


# ---------------------------------------------------------------------------
# Time management
# ---------------------------------------------------------------------------


@pytest.fixture
def planner(make_user, login_as) -> str:
    make_user("planner", permissions=[TIME])
    return login_as("planner")


class TestTimeManagement:
    def test_requires_use_app_time_management(self, gateway, make_user, login_as) -> None:
        make_user("idle", permissions=[GYM])
        token = login_as("idle")
        assert tm_service.add_activity(gateway, token, "Work", 50).error.kind is ErrorKind.PERMISSION_DENIED
        assert tm_service.get_activities(gateway, token).error.kind is ErrorKind.PERMISSION_DENIED

    def test_planned_percentages_cap_at_100(self, gateway, planner) -> None:
        assert tm_service.add_activity(gateway, planner, "Work", 60).success
        assert tm_service.add_activity(gateway, planner, "Study", 40).success
        over = tm_service.add_activity(gateway, planner, "Play", 1)
        assert over.error.kind is ErrorKind.INVALID_ARGUMENT
        assert "0 left" in over.error.message
        assert sorted(a.name for a in tm_service.get_activities(gateway, planner).result) == ["Study", "Work"]

    @pytest.mark.parametrize("name, percentage", [("", 10), ("   ", 10), ("Work", -1), ("Work", 101)])
    def test_invalid_activity(self, gateway, planner, name, percentage) -> None:
        assert tm_service.add_activity(gateway, planner, name, percentage).error.kind is ErrorKind.INVALID_ARGUMENT

    def test_start_and_stop(self, gateway, clock, planner) -> None:
        activity = tm_service.add_activity(gateway, planner, "Work", 50).result
        started = tm_service.start_activity(gateway, planner, activity.id).result
        assert started.is_running

        again = tm_service.start_activity(gateway, planner, activity.id)
        assert again.error.kind is ErrorKind.INVALID_ARGUMENT

        clock.advance(minutes=25)
        stopped = tm_service.stop_activity(gateway, planner, started.id).result
        assert stopped.end_timestamp == clock()
        assert not stopped.is_running
        assert tm_service.stop_activity(gateway, planner, started.id).error.kind is ErrorKind.NOT_FOUND
        assert tm_service.start_activity(gateway, planner, activity.id).success

    def test_sessions_are_owned(self, gateway, make_user, login_as, planner) -> None:
        make_user("intruder", permissions=[TIME])
        intruder = login_as("intruder")
        activity = tm_service.add_activity(gateway, planner, "Work", 50).result
        session = tm_service.start_activity(gateway, planner, activity.id).result

        assert tm_service.start_activity(gateway, intruder, activity.id).error.kind is ErrorKind.NOT_FOUND
        assert tm_service.stop_activity(gateway, intruder, session.id).error.kind is ErrorKind.NOT_FOUND
        assert tm_service.get_activity_sessions(gateway, intruder).result == []

    def test_sessions_are_listed_per_utc_day(self, gateway, clock, planner) -> None:
        activity = tm_service.add_activity(gateway, planner, "Work", 50).result
        first = tm_service.start_activity(gateway, planner, activity.id).result
        clock.advance(hours=1)
        tm_service.stop_activity(gateway, planner, first.id)

        clock.advance(days=1)
        second = tm_service.start_activity(gateway, planner, activity.id).result

        today = tm_service.get_activity_sessions(gateway, planner).result
        assert [s.id for s in today] == [second.id]
        yesterday = tm_service.get_activity_sessions(gateway, planner, date(2026, 1, 1)).result
        assert [s.id for s in yesterday] == [first.id]
