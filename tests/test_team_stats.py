def _knock(client, status, **kw):
    lead = client.post("/api/leads", json={"latitude": 1, "longitude": 1, **kw}).json["lead"]
    if status:
        client.post(f"/api/leads/{lead['id']}/disposition", json={"status": status})
    return lead


def _seed(login):
    ann, bob, cal = login("ann"), login("bob"), login("cal")
    _knock(ann, "sold")
    _knock(ann, "not_home")
    _knock(ann, None)
    _knock(bob, "appointment")
    _knock(cal, "sold")


def test_manager_team_stats(login):
    _seed(login)
    r = login("mia").get("/api/admin/team-stats?window=allTime")
    assert r.status_code == 200
    stats = {s["repName"]: s for s in r.json["stats"]}
    assert set(stats) == {"Mia", "Ann", "Bob"}
    assert r.json["stats"][0]["repName"] == "Ann"  # most sales first

    ann = stats["Ann"]
    assert ann["totalLeads"] == 3
    assert ann["doorsKnocked"] == 2
    assert ann["contacts"] == 1
    assert ann["sales"] == 1
    assert ann["contactRate"] == 50
    assert ann["closeRate"] == 100
    assert ann["todayDoors"] == 2
    assert ann["lastActivity"] is not None
    assert stats["Mia"]["lastActivity"] is None

    totals = r.json["totals"]
    assert totals["doorsKnocked"] == 3
    assert totals["sales"] == 1
    assert totals["actorCount"] == 3


def test_owner_sees_all_but_owners(login):
    _seed(login)
    r = login("owner").get("/api/admin/team-stats")
    names = {s["repName"] for s in r.json["stats"]}
    assert names == {"Mia", "Ned", "Ann", "Bob", "Cal"}
    assert r.json["window"] == "allTime"
    assert r.json["totals"]["sales"] == 2


def test_today_window_hides_contacts(login):
    _seed(login)
    r = login("owner").get("/api/admin/team-stats?window=today")
    ann = {s["repName"]: s for s in r.json["stats"]}["Ann"]
    assert ann["doorsKnocked"] == 2
    assert ann["sales"] == 1
    assert ann["contacts"] == 0
    assert ann["contactRate"] == 0


def test_org_unit_filter(login, org):
    _seed(login)
    r = login("owner").get(f"/api/admin/team-stats?orgUnitId={org.east}")
    assert {s["repName"] for s in r.json["stats"]} == {"Ned", "Cal"}


def test_bad_window(login):
    r = login("owner").get("/api/admin/team-stats?window=decade")
    assert r.status_code == 400


def test_rep_cannot_view_team_stats(login):
    assert login("ann").get("/api/admin/team-stats").status_code == 403


def test_dashboard(login):
    _seed(login)
    r = login("ann").get("/api/dashboard")
    assert r.status_code == 200
    d = r.json
    assert d["window"] == "today"
    assert d["doorsKnocked"] == 2
    assert d["sales"] == 1
    assert d["notHome"] == 1
    assert d["contactRate"] == 50
    assert d["statusCounts"]["untouched"] == 1

    d = login("mia").get("/api/dashboard?window=thisWeek").json
    assert d["doorsKnocked"] == 3
    assert d["appointments"] == 1


def test_all_time_dashboard_counts_unknocked_outcomes(login):
    ann = login("ann")
    ann.post("/api/leads", json={"latitude": 1, "longitude": 1, "status": "sold"})
    d = ann.get("/api/dashboard?window=allTime").json
    assert d["doorsKnocked"] == 0
    assert d["sales"] == 1
    assert d["contacts"] == 1

    stats = login("mia").get("/api/admin/team-stats?window=allTime").json["stats"]
    ann_stats = {s["repName"]: s for s in stats}["Ann"]
    assert (ann_stats["sales"], ann_stats["contacts"]) == (d["sales"], d["contacts"])


def test_malformed_org_unit_filter(login):
    assert login("owner").get("/api/admin/team-stats?orgUnitId=abc").status_code == 400
    assert login("owner").get("/api/leads?orgUnitId=1.5").status_code == 400
