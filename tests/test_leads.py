SQUARE = [
    {"latitude": 0, "longitude": 0},
    {"latitude": 0, "longitude": 10},
    {"latitude": 10, "longitude": 10},
    {"latitude": 10, "longitude": 0},
]


def _create(client, **kw):
    payload = {"firstName": "Pat", "lastName": "Doe", "address": "1 Main St", "latitude": 5, "longitude": 5}
    payload.update(kw)
    r = client.post("/api/leads", json=payload)
    assert r.status_code == 201, r.json
    return r.json["lead"]


def test_create_is_owned_by_caller(login, org):
    lead = _create(login("ann"), userId=org.bob)
    assert lead["userId"] == org.ann
    assert lead["status"] == "untouched"
    assert lead["territoryId"] is None


def test_create_assigns_territory(login):
    owner = login("owner")
    t = owner.post("/api/territories", json={"name": "Downtown", "points": SQUARE}).json["territory"]
    lead = _create(login("ann"))
    assert lead["territoryId"] == t["id"]
    outside = _create(login("ann"), latitude=20, longitude=20)
    assert outside["territoryId"] is None


def test_invalid_status_rejected(login):
    r = login("ann").post("/api/leads", json={"status": "maybe"})
    assert r.status_code == 400
    assert r.json["errors"][0]["field"] == "status"


def test_visibility_by_role(login, org):
    ann, bob, cal = login("ann"), login("bob"), login("cal")
    _create(ann)
    _create(ann)
    _create(bob)
    _create(cal)

    assert len(ann.get("/api/leads").json["leads"]) == 2
    assert len(login("mia").get("/api/leads").json["leads"]) == 3
    assert len(login("ned").get("/api/leads").json["leads"]) == 1
    assert len(login("owner").get("/api/leads").json["leads"]) == 4
    narrowed = login("mia").get(f"/api/leads?orgUnitId={org.alpha}").json["leads"]
    assert {lead["userId"] for lead in narrowed} == {org.ann}


def test_status_filter(login):
    ann = login("ann")
    lead = _create(ann)
    _create(ann)
    ann.post(f"/api/leads/{lead['id']}/disposition", json={"status": "sold"})
    leads = ann.get("/api/leads?status=sold").json["leads"]
    assert [x["id"] for x in leads] == [lead["id"]]


def test_get_distinguishes_missing_from_forbidden(login):
    lead = _create(login("ann"))
    cal = login("cal")
    r = cal.get(f"/api/leads/{lead['id']}")
    assert r.status_code == 403
    assert r.json["error"] == "not_permitted"
    r = cal.get("/api/leads/9999")
    assert r.status_code == 404
    assert r.json["error"] == "not_found"


def test_manager_updates_team_lead(login):
    lead = _create(login("ann"))
    r = login("mia").put(f"/api/leads/{lead['id']}", json={"notes": "Dog in yard", "tags": ["solar"]})
    assert r.status_code == 200
    assert r.json["lead"]["notes"] == "Dog in yard"
    assert r.json["lead"]["tags"] == ["solar"]
    assert login("ned").put(f"/api/leads/{lead['id']}", json={"notes": "x"}).status_code == 403


def test_update_cannot_change_owner(login, org):
    ann = login("ann")
    lead = _create(ann)
    r = ann.put(f"/api/leads/{lead['id']}", json={"userId": org.bob})
    assert r.status_code == 400


def test_moving_lead_reassigns_territory(login):
    owner = login("owner")
    t = owner.post("/api/territories", json={"name": "Downtown", "points": SQUARE}).json["territory"]
    ann = login("ann")
    lead = _create(ann, latitude=20, longitude=20)
    r = ann.put(f"/api/leads/{lead['id']}", json={"latitude": 2, "longitude": 3})
    assert r.json["lead"]["territoryId"] == t["id"]


def test_disposition_stamps_knock(login):
    ann = login("ann")
    lead = _create(ann)
    r = ann.post(f"/api/leads/{lead['id']}/disposition", json={"status": "callback", "notes": "Come back at 6"})
    assert r.status_code == 200
    assert r.json["lead"]["status"] == "callback"
    assert r.json["lead"]["knockedAt"] is not None
    assert r.json["lead"]["notes"] == "Come back at 6"


def test_reassign_rules(login, org):
    lead = _create(login("ann"))
    mia = login("mia")

    assert login("ann").post(f"/api/leads/{lead['id']}/reassign", json={"userId": org.bob}).status_code == 403
    assert mia.post(f"/api/leads/{lead['id']}/reassign", json={"userId": org.cal}).status_code == 403
    assert mia.post(f"/api/leads/{lead['id']}/reassign", json={"userId": 9999}).status_code == 404

    r = mia.post(f"/api/leads/{lead['id']}/reassign", json={"userId": org.bob})
    assert r.status_code == 200
    assert r.json["lead"]["userId"] == org.bob
    assert len(login("bob").get("/api/leads").json["leads"]) == 1


def test_reassign_to_inactive_rejected(login, org):
    lead = _create(login("ann"))
    owner = login("owner")
    owner.put(f"/api/users/{org.bob}", json={"isActive": False})
    r = owner.post(f"/api/leads/{lead['id']}/reassign", json={"userId": org.bob})
    assert r.status_code == 400


def test_delete(login):
    ann = login("ann")
    lead = _create(ann)
    assert login("cal").delete(f"/api/leads/{lead['id']}").status_code == 403
    assert ann.delete(f"/api/leads/{lead['id']}").status_code == 200
    assert ann.delete(f"/api/leads/{lead['id']}").status_code == 404


def test_admin_leads_carry_rep(login):
    _create(login("ann"))
    _create(login("cal"))
    r = login("mia").get("/api/admin/leads")
    assert r.status_code == 200
    assert [(x["repName"], x["repEmail"]) for x in r.json["leads"]] == [("Ann", "ann@example.com")]
    assert login("ann").get("/api/admin/leads").status_code == 403
