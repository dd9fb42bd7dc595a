"""
Per-actor performance figures, recomputed from raw leads on every call.

Windows:
    today     knocked_at on the same UTC calendar day as ``now``
    thisWeek  knocked_at within the trailing ``week_hours`` (168 by default)
    allTime   every knocked lead

For windowed requests only doors and sales are counted inside the window; contacts
and appointments are reported as 0, which also zeroes both rates.
"""
from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from app.knockbase.constants import CONTACT_STATUSES, ActorRole, LeadStatus
from app.knockbase.context import ActorContext
from app.knockbase.models import User
from app.knockbase.modules.leads.models import Lead
from app.knockbase.modules.visibility.service import resolve_visible_actors, resolve_visible_leads
from app.knockbase.utils import isoformat, utcnow

DEFAULT_WEEK_HOURS = 7 * 24

_CONTACT_VALUES = frozenset(st.value for st in CONTACT_STATUSES)


class Window(str, Enum):
    TODAY = "today"
    THIS_WEEK = "thisWeek"
    ALL_TIME = "allTime"

    @classmethod
    def parse(cls, value: str | None) -> "Window | None":
        raw = (value or "").strip()
        if not raw:
            return cls.ALL_TIME
        for w in cls:
            if w.value.lower() == raw.lower() or w.name.lower() == raw.lower():
                return w
        return None


def rate(numerator: int, denominator: int) -> int:
    """Whole-number percentage; 0 when the denominator is 0."""
    if denominator <= 0:
        return 0
    return round(numerator / denominator * 100)


def in_window(knocked_at: datetime | None, window: Window, now: datetime, week_hours: int = DEFAULT_WEEK_HOURS) -> bool:
    if knocked_at is None:
        return False
    if window is Window.TODAY:
        return knocked_at.date() == now.date()
    if window is Window.THIS_WEEK:
        return knocked_at >= now - timedelta(hours=week_hours)
    return True


@dataclass
class ActorStats:
    user_id: int
    rep_name: str
    rep_email: str
    role: str
    is_active: bool
    manager_id: int | None
    total_leads: int = 0
    doors_knocked: int = 0
    contacts: int = 0
    appointments: int = 0
    sales: int = 0
    contact_rate: int = 0
    close_rate: int = 0
    today_doors: int = 0
    today_sales: int = 0
    week_doors: int = 0
    week_sales: int = 0
    last_activity: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "repName": self.rep_name,
            "repEmail": self.rep_email,
            "role": self.role,
            "isActive": self.is_active,
            "managerId": self.manager_id,
            "totalLeads": self.total_leads,
            "doorsKnocked": self.doors_knocked,
            "contacts": self.contacts,
            "appointments": self.appointments,
            "sales": self.sales,
            "contactRate": self.contact_rate,
            "closeRate": self.close_rate,
            "todayDoors": self.today_doors,
            "todaySales": self.today_sales,
            "weekDoors": self.week_doors,
            "weekSales": self.week_sales,
            "lastActivity": isoformat(self.last_activity),
        }


@dataclass
class TeamTotals:
    actor_count: int = 0
    total_leads: int = 0
    doors_knocked: int = 0
    contacts: int = 0
    appointments: int = 0
    sales: int = 0
    today_doors: int = 0
    today_sales: int = 0
    week_doors: int = 0
    week_sales: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {_camel(k): v for k, v in asdict(self).items()}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _is_sale(lead: Lead) -> bool:
    return lead.status == LeadStatus.SOLD.value


def compute_actor_stats(
    actor: User,
    leads: Iterable[Lead],
    window: Window,
    now: datetime,
    *,
    week_hours: int = DEFAULT_WEEK_HOURS,
) -> ActorStats:
    """Figures for one actor over the leads it owns (``leads`` may hold other owners' leads)."""
    owned = [lead for lead in leads if lead.owner_id == actor.id]
    knocked = [lead for lead in owned if in_window(lead.knocked_at, window, now, week_hours)]
    today = [lead for lead in owned if in_window(lead.knocked_at, Window.TODAY, now, week_hours)]
    week = [lead for lead in owned if in_window(lead.knocked_at, Window.THIS_WEEK, now, week_hours)]

    st = ActorStats(
        user_id=actor.id,
        rep_name=actor.display_name,
        rep_email=actor.email,
        role=actor.role.value,
        is_active=bool(actor.is_active),
        manager_id=actor.manager_id,
        total_leads=len(owned),
        doors_knocked=len(knocked),
        today_doors=len(today),
        today_sales=sum(1 for lead in today if _is_sale(lead)),
        week_doors=len(week),
        week_sales=sum(1 for lead in week if _is_sale(lead)),
    )

    if window is Window.ALL_TIME:
        st.contacts = sum(1 for lead in owned if lead.status in _CONTACT_VALUES)
        st.appointments = sum(1 for lead in owned if lead.status == LeadStatus.APPOINTMENT.value)
        st.sales = sum(1 for lead in owned if _is_sale(lead))
    else:
        st.sales = sum(1 for lead in knocked if _is_sale(lead))

    st.contact_rate = rate(st.contacts, st.doors_knocked)
    st.close_rate = rate(st.sales, st.contacts)

    stamps = [lead.updated_at for lead in owned if lead.updated_at is not None]
    st.last_activity = max(stamps) if stamps else None
    return st


def stats(
    ctx: ActorContext,
    actors: Iterable[User],
    leads: Iterable[Lead],
    window: Window,
    now: datetime | None = None,
    *,
    week_hours: int = DEFAULT_WEEK_HOURS,
) -> list[ActorStats]:
    """
    One entry per manager/rep in ``actors``. Callers pass records already scoped by
    the visibility resolver; no further access check happens here.
    """
    now = now or utcnow()
    leads = list(leads)
    return [
        compute_actor_stats(a, leads, window, now, week_hours=week_hours)
        for a in actors
        if a.role in (ActorRole.MANAGER, ActorRole.REP)
    ]


def team_totals(entries: Iterable[ActorStats]) -> TeamTotals:
    """Plain sums of the counts. Rates are left for the caller to derive."""
    totals = TeamTotals()
    for e in entries:
        totals.actor_count += 1
        totals.total_leads += e.total_leads
        totals.doors_knocked += e.doors_knocked
        totals.contacts += e.contacts
        totals.appointments += e.appointments
        totals.sales += e.sales
        totals.today_doors += e.today_doors
        totals.today_sales += e.today_sales
        totals.week_doors += e.week_doors
        totals.week_sales += e.week_sales
    return totals


def status_counts(leads: Iterable[Lead]) -> dict[str, int]:
    counts = Counter(lead.status for lead in leads)
    return {st.value: counts.get(st.value, 0) for st in LeadStatus}


@dataclass
class DashboardSummary:
    window: Window
    doors_knocked: int = 0
    contacts: int = 0
    appointments: int = 0
    sales: int = 0
    not_home: int = 0
    not_interested: int = 0
    callbacks: int = 0
    status_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "window": self.window.value,
            "doorsKnocked": self.doors_knocked,
            "contacts": self.contacts,
            "appointments": self.appointments,
            "sales": self.sales,
            "notHome": self.not_home,
            "notInterested": self.not_interested,
            "callbacks": self.callbacks,
            "contactRate": rate(self.contacts, self.doors_knocked),
            "closeRate": rate(self.sales, self.contacts),
            "statusCounts": self.status_counts,
        }


def dashboard_summary(
    leads: Iterable[Lead],
    window: Window,
    now: datetime | None = None,
    *,
    week_hours: int = DEFAULT_WEEK_HOURS,
) -> DashboardSummary:
    """
    Field summary for the window plus status counts over every lead.

    Windowed requests count outcomes among leads knocked in the window; all-time
    counts outcomes over every lead, matching compute_actor_stats.
    """
    now = now or utcnow()
    leads = list(leads)
    knocked = [lead for lead in leads if in_window(lead.knocked_at, window, now, week_hours)]
    counted = leads if window is Window.ALL_TIME else knocked
    by_status = Counter(lead.status for lead in counted)
    return DashboardSummary(
        window=window,
        doors_knocked=len(knocked),
        contacts=sum(1 for lead in counted if lead.status in _CONTACT_VALUES),
        appointments=by_status.get(LeadStatus.APPOINTMENT.value, 0),
        sales=by_status.get(LeadStatus.SOLD.value, 0),
        not_home=by_status.get(LeadStatus.NOT_HOME.value, 0),
        not_interested=by_status.get(LeadStatus.NOT_INTERESTED.value, 0),
        callbacks=by_status.get(LeadStatus.CALLBACK.value, 0),
        status_counts=status_counts(leads),
    )


def team_stats(
    s: Session,
    ctx: ActorContext,
    window: Window,
    *,
    org_unit_id: int | None = None,
    now: datetime | None = None,
    week_hours: int = DEFAULT_WEEK_HOURS,
) -> tuple[list[ActorStats], TeamTotals]:
    actors = resolve_visible_actors(s, ctx, org_unit_id=org_unit_id)
    leads = resolve_visible_leads(s, ctx, org_unit_id=org_unit_id)
    entries = stats(ctx, actors, leads, window, now, week_hours=week_hours)
    entries.sort(key=lambda e: (-e.sales, e.user_id))
    return entries, team_totals(entries)
