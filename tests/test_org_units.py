def _units_by_name(client):
    return {u["name"]: u for u in client.get("/api/org-units").json["orgUnits"]}


def test_list_with_member_counts(login):
    units = _units_by_name(login("ann"))
    assert units["West"]["directMembers"] == 0
    assert units["West"]["totalMembers"] == 3  # mia, bob (Bay) + ann (Alpha)
    assert units["Bay"]["directMembers"] == 2
    assert units["Alpha"]["path"] == ["West", "Bay", "Alpha"]


def test_owner_creates_team(login, org):
    r = login("owner").post("/api/org-units", json={"name": "Bravo", "type": "team", "parentId": org.bay})
    assert r.status_code == 201
    assert r.json["orgUnit"]["parentId"] == org.bay


def test_level_nesting_enforced(login, org):
    owner = login("owner")
    r = owner.post("/api/org-units", json={"name": "Oops", "type": "region", "parentId": org.west})
    assert r.status_code == 400
    r = owner.post("/api/org-units", json={"name": "Oops", "type": "area", "parentId": org.alpha})
    assert r.status_code == 400


def test_cycle_rejected(login, org):
    r = login("owner").put(f"/api/org-units/{org.bay}", json={"parentId": org.alpha})
    assert r.status_code == 400


def test_manager_creates_beneath_own_unit(login, org):
    mia = login("mia")
    r = mia.post("/api/org-units", json={"name": "Charlie", "type": "team", "parentId": org.bay})
    assert r.status_code == 201
    r = mia.post("/api/org-units", json={"name": "Nope", "type": "team", "parentId": org.east})
    assert r.status_code == 403


def test_manager_edits_only_descendants(login, org):
    mia = login("mia")
    assert mia.put(f"/api/org-units/{org.alpha}", json={"name": "Alpha One"}).status_code == 200
    assert mia.put(f"/api/org-units/{org.bay}", json={"name": "Bay Two"}).status_code == 403
    assert mia.put(f"/api/org-units/{org.east}", json={"name": "x"}).status_code == 403


def test_rep_cannot_create(login, org):
    assert login("ann").post("/api/org-units", json={"name": "x", "type": "team"}).status_code == 403


def test_missing_unit_is_404(login):
    assert login("owner").put("/api/org-units/9999", json={"name": "x"}).status_code == 404


def test_delete_reparents_children(login, org):
    owner = login("owner")
    assert login("mia").delete(f"/api/org-units/{org.alpha}").status_code == 403

    r = owner.delete(f"/api/org-units/{org.bay}")
    assert r.status_code == 200
    units = _units_by_name(owner)
    assert "Bay" not in units
    assert units["Alpha"]["parentId"] == org.west

    users = {u["username"]: u for u in owner.get("/api/users").json["users"]}
    assert users["mia"]["orgUnitId"] is None
    assert users["ann"]["orgUnitId"] == org.alpha
