import pytest

from invtrack.crud import catalog as catalog_crud


@pytest.fixture()
def seeded(factory):
    dept = factory.department("Housekeeping")
    other = factory.department("Kitchen")
    area = factory.area(dept, "Linen room")
    linen = factory.category(dept, "Linen")
    towel = factory.item(linen, "Towel", areas=[area])
    sheet = factory.item(linen, "Sheet", areas=[area])
    factory.user("root", role="super_admin")
    factory.user("boss", role="admin", department=dept)
    factory.user("lead", department=dept)
    factory.snapshot(dept, towel, 4, 2024, 3)
    factory.snapshot(dept, sheet, 4, 2024, 3)
    return {"dept": dept, "other": other, "area": area, "towel": towel, "sheet": sheet}


def test_api_requires_credentials(client):
    response = client.get("/api/v1/records")

    assert response.status_code == 401
    assert response.json()["code"] == "http_error"


def test_pages_redirect_to_login(client):
    response = client.get("/inventory", headers={"Accept": "text/html"}, follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "/login?next=/inventory"


def test_token_exchange_and_me(client, seeded, login):
    headers = login("boss")

    me = client.get("/api/v1/auth/me", headers=headers)

    assert me.status_code == 200
    assert me.json()["role"] == "admin"
    assert "password" not in me.json()


def test_refresh_token_issues_new_pair(client, seeded):
    pair = client.post("/api/v1/auth/token", json={"username": "lead", "password": "secret123"}).json()

    refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": pair["refresh_token"]})
    rejected = client.post("/api/v1/auth/refresh", json={"refresh_token": pair["access_token"]})

    assert refreshed.status_code == 200
    assert rejected.status_code == 401


def test_bad_credentials_are_rejected(client, seeded):
    response = client.post("/api/v1/auth/token", json={"username": "lead", "password": "wrong"})

    assert response.status_code == 401
    assert response.json()["code"] == "authentication_failed"


def test_count_then_reconcile_and_save(client, seeded, login):
    lead = login("lead")
    boss = login("boss")
    towel, sheet = seeded["towel"], seeded["sheet"]

    sheet_lines = client.get("/api/v1/records/sheet", params={"area_id": seeded["area"].id}, headers=lead)
    assert [line["name"] for line in sheet_lines.json()] == ["Sheet", "Towel"]

    created = client.post(
        "/api/v1/records",
        json={"area_id": seeded["area"].id, "inventory_date": "2024-05-31", "quantities": {str(towel.id): "5"}},
        headers=lead,
    )
    assert created.status_code == 201, created.text
    assert {line["item_name"]: line["qty"] for line in created.json()["lines"]} == {"Sheet": 0, "Towel": 5}

    reconciled = client.get("/api/v1/monthly", params={"month": 5, "year": 2024}, headers=boss).json()
    assert {row["item_name"]: row["diff"] for row in reconciled["rows"]} == {"Sheet": -3, "Towel": 2}

    rejected = client.post(
        "/api/v1/monthly", json={"month": 5, "year": 2024, "notes": {str(towel.id): "Delivery"}}, headers=boss
    )
    assert rejected.status_code == 422
    assert rejected.json()["code"] == "notes_required"
    assert rejected.json()["details"]["item_ids"] == [sheet.id]

    saved = client.post(
        "/api/v1/monthly",
        json={"month": 5, "year": 2024, "notes": {str(towel.id): "Delivery", str(sheet.id): "Laundry"}},
        headers=boss,
    )
    assert saved.status_code == 200, saved.text
    assert saved.json()["saved_rows"] == 2

    history = client.get("/api/v1/monthly/history", params={"month": 6, "year": 2024, "periods": 2}, headers=boss)
    assert [p["label"] for p in history.json()["periods"]] == ["APR 2024", "MAY 2024"]


def test_standard_user_cannot_save_monthly(client, seeded, login):
    lead = login("lead")

    response = client.post("/api/v1/monthly", json={"month": 5, "year": 2024, "notes": {}}, headers=lead)

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_department_scoping_on_api(client, seeded, login):
    boss = login("boss")
    root = login("root")

    foreign = client.get("/api/v1/inventory/matrix", params={"department_id": seeded["other"].id}, headers=boss)
    assert foreign.status_code == 403

    missing = client.get("/api/v1/inventory/matrix", headers=root)
    assert missing.status_code == 422

    allowed = client.get("/api/v1/inventory/matrix", params={"department_id": seeded["dept"].id}, headers=root)
    assert allowed.status_code == 200
    assert allowed.json()["groups"] == []


def test_valuable_quantity_rejected_over_api(client, seeded, factory, login):
    tagged = factory.category(seeded["dept"], "Equipment", tagged=True)
    dryer = factory.item(tagged, "Dryer", areas=[seeded["area"]], article_number="EQ-1")
    lead = login("lead")

    response = client.post(
        "/api/v1/spot",
        json={"area_id": seeded["area"].id, "inventory_date": "2024-06-01", "quantities": {str(dryer.id): 2}},
        headers=lead,
    )

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_quantity"


def test_super_admin_builds_catalog(client, seeded, login):
    root = login("root")
    dept_id = seeded["dept"].id

    area = client.post("/api/v1/areas", json={"name": "Floor 3", "department_id": dept_id}, headers=root)
    assert area.status_code == 201
    category = client.post(
        "/api/v1/categories", json={"name": "Equipment", "department_id": dept_id, "tagged": True}, headers=root
    ).json()
    missing_number = client.post("/api/v1/items", json={"name": "Dryer", "category_id": category["id"]}, headers=root)
    assert missing_number.status_code == 422

    item = client.post(
        "/api/v1/items",
        json={"name": "Dryer", "category_id": category["id"], "article_number": "EQ-9"},
        headers=root,
    ).json()
    assert item["is_valuable"] is True

    linked = client.put(f"/api/v1/items/{item['id']}/areas", json={"area_ids": [area.json()["id"]]}, headers=root)
    assert linked.json()["area_ids"] == [area.json()["id"]]

    deleted = client.delete(f"/api/v1/items/{item['id']}", headers=root)
    assert deleted.json() == {"status": "archived"}


def test_admin_cannot_manage_departments(client, seeded, login):
    boss = login("boss")

    response = client.post("/api/v1/departments", json={"name": "Spa"}, headers=boss)

    assert response.status_code == 403


def test_account_lockout_over_api(client, seeded, monkeypatch):
    from invtrack.core.config import settings

    monkeypatch.setattr(settings, "LOGIN_MAX_FAILED_ATTEMPTS", 2)
    payload = {"username": "lead", "password": "wrong"}

    assert client.post("/api/v1/auth/token", json=payload).status_code == 401
    locked = client.post("/api/v1/auth/token", json=payload)

    assert locked.status_code == 423
    assert locked.json()["details"]["retry_after"] > 0


def test_browser_login_and_count_sheet(client, seeded):
    area = seeded["area"]

    login_page = client.get("/login")
    assert login_page.status_code == 200
    assert 'name="username"' in login_page.text

    failed = client.post("/login", data={"username": "lead", "password": "nope", "next": "/"})
    assert failed.status_code == 401
    assert "Invalid username or password" in failed.text

    ok = client.post("/login", data={"username": "lead", "password": "secret123", "next": "/"}, follow_redirects=False)
    assert ok.status_code == 302

    page = client.get("/", params={"area_id": area.id})
    assert page.status_code == 200
    assert f'name="qty_{seeded["towel"].id}"' in page.text

    submitted = client.post(
        "/",
        data={"area_id": str(area.id), "inventory_date": "2024-05-31", f"qty_{seeded['towel'].id}": "4"},
        follow_redirects=False,
    )
    assert submitted.status_code == 303
    assert submitted.headers["location"].startswith("/records?record_id=")

    bad = client.post(
        "/",
        data={"area_id": str(area.id), "inventory_date": "2024-05-31", f"qty_{seeded['towel'].id}": "-2"},
    )
    assert bad.status_code == 422
    assert "cannot be negative" in bad.text

    records = client.get("/records")
    assert "Linen room" in records.text


def test_admin_pages_render(client, seeded):
    client.post("/login", data={"username": "boss", "password": "secret123", "next": "/"})

    for path in ("/inventory", "/thresholds", "/spot", "/monthly?month=5&year=2024&periods=2", "/archived", "/dashboard"):
        response = client.get(path)
        assert response.status_code == 200, path


def test_monthly_form_rejects_non_numeric_period(client, seeded):
    client.post("/login", data={"username": "boss", "password": "secret123", "next": "/"})

    response = client.post("/monthly", data={"month": "may", "year": "2024"}, headers={"Accept": "text/html"})

    assert response.status_code == 422
    assert "month must be a whole number" in response.text


def test_standard_user_is_kept_off_admin_pages(client, seeded):
    client.post("/login", data={"username": "lead", "password": "secret123", "next": "/"})

    response = client.get("/monthly", headers={"Accept": "text/html"})

    assert response.status_code == 403
    assert "Administrator role required" in response.text


def test_responses_carry_request_id_and_security_headers(client):
    response = client.get("/login", headers={"X-Request-ID": "abc123"})

    assert response.headers["X-Request-ID"] == "abc123"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_admin_cannot_relink_items_of_another_department(client, seeded, factory, login, db_session):
    pantry = factory.area(seeded["other"], "Pantry")
    cutlery = factory.category(seeded["other"], "Cutlery")
    spoon = factory.item(cutlery, "Spoon", areas=[pantry])
    boss = login("boss")

    cleared = client.put(f"/api/v1/items/{spoon.id}/areas", json={"area_ids": []}, headers=boss)
    assert cleared.status_code == 403
    assert client.get(f"/api/v1/items/{spoon.id}", headers=boss).status_code == 403
    assert client.get(f"/api/v1/items/{spoon.id}/areas", headers=boss).status_code == 403

    moved = client.put(f"/api/v1/areas/{seeded['area'].id}/items", json=[spoon.id], headers=boss)
    assert moved.status_code == 422
    assert moved.json()["code"] == "assignment_error"

    assert catalog_crud.item_area_ids(db_session, spoon.id) == [pantry.id]


def test_shared_item_links_are_replaced_per_department(client, seeded, factory, login, db_session):
    pantry = factory.area(seeded["other"], "Pantry")
    cleaning = factory.category(None, "Cleaning")
    soap = factory.item(cleaning, "Soap", areas=[seeded["area"], pantry])
    boss = login("boss")

    visible = client.get(f"/api/v1/items/{soap.id}/areas", headers=boss)
    assert visible.json()["area_ids"] == [seeded["area"].id]

    cleared = client.put(f"/api/v1/items/{soap.id}/areas", json={"area_ids": []}, headers=boss)
    assert cleared.status_code == 200
    assert catalog_crud.item_area_ids(db_session, soap.id) == [pantry.id]

    foreign = client.put(f"/api/v1/items/{soap.id}/areas", json={"area_ids": [pantry.id]}, headers=boss)
    assert foreign.status_code == 422
