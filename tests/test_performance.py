"""
Unit tests for per-actor statistics and team totals.
"""

from datetime import datetime, timedelta

import pytest

from app.knockbase.constants import ActorRole
from app.knockbase.context import ActorContext
from app.knockbase.models import User
from app.knockbase.modules.leads.models import Lead
from app.knockbase.modules.performance.service import (
    Window,
    compute_actor_stats,
    dashboard_summary,
    rate,
    stats,
    status_counts,
    team_totals,
)
from app.knockbase.modules.visibility.service import visible_actors, visible_leads

NOW = datetime(2026, 10, 18, 15, 0, 0)


def _actor(id, role=ActorRole.REP, manager_id=None):
    return User(
        id=id,
        role=role,
        manager_id=manager_id,
        email=f"u{id}@example.com",
        username=f"u{id}",
        full_name=f"User {id}",
        is_active=True,
    )


def _lead(id, owner_id, status="untouched", knocked_at=None, updated_at=None):
    return Lead(id=id, owner_id=owner_id, status=status, knocked_at=knocked_at, updated_at=updated_at or NOW)


class TestRate:
    def test_zero_denominator(self):
        assert rate(0, 0) == 0
        assert rate(5, 0) == 0

    def test_rounds(self):
        assert rate(1, 3) == 33
        assert rate(2, 3) == 67
        assert rate(1, 1) == 100


class TestActorStats:
    def test_sold_counts_as_contact(self):
        """Rep with one sold (knocked) lead and one untouched lead"""
        rep = _actor(1)
        leads = [_lead(1, 1, "sold", knocked_at=NOW), _lead(2, 1)]
        st = compute_actor_stats(rep, leads, Window.ALL_TIME, NOW)
        assert st.total_leads == 2
        assert st.doors_knocked == 1
        assert st.sales == 1
        assert st.contacts == 1
        assert st.contact_rate == 100
        assert st.close_rate == 100

    def test_no_leads(self):
        st = compute_actor_stats(_actor(1), [], Window.ALL_TIME, NOW)
        assert st.total_leads == 0
        assert st.contact_rate == 0
        assert st.close_rate == 0
        assert st.last_activity is None

    def test_rates_zero_when_nothing_knocked(self):
        leads = [_lead(1, 1, "callback")]
        st = compute_actor_stats(_actor(1), leads, Window.ALL_TIME, NOW)
        assert st.doors_knocked == 0
        assert st.contacts == 1
        assert st.contact_rate == 0

    def test_only_own_leads_counted(self):
        leads = [_lead(1, 1, "sold", NOW), _lead(2, 2, "sold", NOW)]
        assert compute_actor_stats(_actor(1), leads, Window.ALL_TIME, NOW).total_leads == 1

    def test_last_activity_is_latest_update(self):
        earlier = NOW - timedelta(days=3)
        leads = [_lead(1, 1, updated_at=earlier), _lead(2, 1, updated_at=NOW)]
        assert compute_actor_stats(_actor(1), leads, Window.ALL_TIME, NOW).last_activity == NOW

    def test_not_home_is_not_a_contact(self):
        leads = [_lead(1, 1, "not_home", NOW), _lead(2, 1, "appointment", NOW)]
        st = compute_actor_stats(_actor(1), leads, Window.ALL_TIME, NOW)
        assert st.contacts == 1
        assert st.appointments == 1
        assert st.contact_rate == 50


class TestWindows:
    def _leads(self):
        return [
            _lead(1, 1, "sold", knocked_at=NOW - timedelta(hours=1)),
            _lead(2, 1, "not_home", knocked_at=NOW.replace(hour=0, minute=5)),
            _lead(3, 1, "sold", knocked_at=NOW - timedelta(days=2)),
            _lead(4, 1, "callback", knocked_at=NOW - timedelta(days=30)),
            _lead(5, 1),
        ]

    def test_today(self):
        st = compute_actor_stats(_actor(1), self._leads(), Window.TODAY, NOW)
        assert st.doors_knocked == 2
        assert st.sales == 1
        assert st.contacts == 0
        assert st.appointments == 0
        assert st.contact_rate == 0

    def test_this_week(self):
        st = compute_actor_stats(_actor(1), self._leads(), Window.THIS_WEEK, NOW)
        assert st.doors_knocked == 3
        assert st.sales == 2

    def test_yesterday_is_not_today(self):
        leads = [_lead(1, 1, "sold", knocked_at=NOW.replace(hour=0) - timedelta(minutes=1))]
        st = compute_actor_stats(_actor(1), leads, Window.TODAY, NOW)
        assert st.doors_knocked == 0
        assert st.week_doors == 1

    def test_windows_are_subsets_of_all_time(self):
        leads = self._leads()
        all_time = compute_actor_stats(_actor(1), leads, Window.ALL_TIME, NOW)
        for window in (Window.TODAY, Window.THIS_WEEK):
            assert compute_actor_stats(_actor(1), leads, window, NOW).doors_knocked <= all_time.doors_knocked
        assert all_time.today_doors <= all_time.week_doors <= all_time.doors_knocked

    def test_custom_week_length(self):
        st = compute_actor_stats(_actor(1), self._leads(), Window.THIS_WEEK, NOW, week_hours=24)
        assert st.doors_knocked == 2

    def test_parse(self):
        assert Window.parse("thisWeek") is Window.THIS_WEEK
        assert Window.parse("this_week") is Window.THIS_WEEK
        assert Window.parse("") is Window.ALL_TIME
        assert Window.parse("fortnight") is None


class TestTeam:
    @pytest.fixture()
    def team(self):
        manager = _actor(10, ActorRole.MANAGER)
        rep_a = _actor(1, manager_id=10)
        rep_b = _actor(2, manager_id=10)
        owner = _actor(99, ActorRole.OWNER)
        leads = (
            [_lead(1, 1, "not_home", NOW), _lead(2, 1, "sold", NOW), _lead(3, 1)]
            + [_lead(4, 2, "callback", NOW)]
            + [_lead(5 + i, 2) for i in range(4)]
        )
        return [owner, manager, rep_a, rep_b], leads

    def test_manager_scope_and_totals(self, team):
        actors, leads = team
        ctx = ActorContext.from_user(actors[1])
        scoped_actors = visible_actors(ctx, actors)
        scoped_leads = visible_leads(ctx, actors, leads)
        assert len(scoped_leads) == 8

        entries = stats(ctx, scoped_actors, scoped_leads, Window.ALL_TIME, NOW)
        totals = team_totals(entries)
        assert totals.doors_knocked == 3
        assert totals.total_leads == 8
        assert totals.actor_count == 3

    def test_owners_excluded_from_stats(self, team):
        actors, leads = team
        ctx = ActorContext.from_user(actors[0])
        entries = stats(ctx, actors, leads, Window.ALL_TIME, NOW)
        assert 99 not in {e.user_id for e in entries}

    def test_totals_sum_counts_only(self, team):
        actors, leads = team
        ctx = ActorContext.from_user(actors[0])
        totals = team_totals(stats(ctx, actors, leads, Window.ALL_TIME, NOW)).to_dict()
        assert "contactRate" not in totals
        assert totals["sales"] == 1
        assert totals["contacts"] == 2

    def test_empty_totals(self):
        assert team_totals([]).to_dict()["doorsKnocked"] == 0

    def test_to_dict_camel_case(self, team):
        actors, leads = team
        st = compute_actor_stats(actors[2], leads, Window.ALL_TIME, NOW).to_dict()
        assert st["userId"] == 1
        assert st["repName"] == "User 1"
        assert st["doorsKnocked"] == 2
        assert st["lastActivity"] == NOW.isoformat()


class TestDashboard:
    def test_summary(self):
        leads = [
            _lead(1, 1, "sold", NOW),
            _lead(2, 1, "not_home", NOW),
            _lead(3, 1, "callback", NOW),
            _lead(4, 1, "not_interested", NOW - timedelta(days=10)),
            _lead(5, 1),
        ]
        d = dashboard_summary(leads, Window.TODAY, NOW).to_dict()
        assert d["doorsKnocked"] == 3
        assert d["contacts"] == 2
        assert d["sales"] == 1
        assert d["notHome"] == 1
        assert d["callbacks"] == 1
        assert d["notInterested"] == 0
        assert d["contactRate"] == 67
        assert d["closeRate"] == 50
        assert d["statusCounts"]["untouched"] == 1
        assert d["statusCounts"]["not_interested"] == 1

    def test_all_time_counts_every_lead(self):
        leads = [_lead(1, 1, "sold"), _lead(2, 1, "not_home", NOW), _lead(3, 1, "appointment")]
        d = dashboard_summary(leads, Window.ALL_TIME, NOW).to_dict()
        assert d["doorsKnocked"] == 1
        assert d["sales"] == 1
        assert d["appointments"] == 1
        assert d["contacts"] == 2
        assert d["notHome"] == 1

    def test_status_counts_cover_every_status(self):
        counts = status_counts([])
        assert set(counts) == {"untouched", "not_home", "not_interested", "callback", "appointment", "sold", "follow_up"}
        assert sum(counts.values()) == 0
