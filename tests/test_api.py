import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, create_ledger_engine
from main import app, get_db


@pytest.fixture()
def client():
    engine = create_ledger_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _signup(client, email="owner@example.com"):
    resp = client.post(
        "/api/signup",
        json={"email": email, "user_type": "organization", "password": "pw"},
    )
    assert resp.status_code == 201
    body = resp.json()
    return body["user"]["id"], {"Authorization": f"Bearer {body['access_token']}"}


def _category_id(client, headers, name):
    rows = client.get("/api/categories", headers=headers).json()
    return next(row["id"] for row in rows if row["name"] == name)


def test_health_and_unknown_route(client) -> None:
    health = client.get("/api/health")
    assert health.status_code == 200
    assert health.json()["database"] == "connected"

    missing = client.get("/api/nope")
    assert missing.status_code == 404
    assert "GET /api/health" in missing.json()["available_endpoints"]


def test_ledger_routes_require_token(client) -> None:
    assert client.get("/api/transactions?user_id=1").status_code == 401
    bad = client.get(
        "/api/categories", headers={"Authorization": "Bearer not-a-token"}
    )
    assert bad.status_code == 401


def test_login_failure_is_bad_request(client) -> None:
    _signup(client)
    resp = client.post(
        "/api/login", json={"email": "owner@example.com", "password": "nope"}
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid email or password"

    ok = client.post("/api/login", json={"email": "OWNER@example.com", "password": "pw"})
    assert ok.status_code == 200
    assert ok.json()["access_token"]


def test_list_requires_matching_user_id(client) -> None:
    user_id, headers = _signup(client)
    missing = client.get("/api/transactions", headers=headers)
    assert missing.status_code == 400
    assert missing.json()["message"] == "user_id is required"

    assert client.get("/api/transactions?user_id=abc", headers=headers).status_code == 400
    assert (
        client.get(f"/api/transactions?user_id={user_id + 1}", headers=headers).status_code
        == 403
    )


def test_transaction_lifecycle(client) -> None:
    user_id, headers = _signup(client)
    sales = _category_id(client, headers, "Sales Revenue")

    created = client.post(
        "/api/transactions",
        headers=headers,
        json={
            "user_id": user_id,
            "amount": 110,
            "type": "income",
            "date": "2024-01-10",
            "category_id": sales,
            "account": "",
            "description": "Invoice 7",
        },
    )
    assert created.status_code == 201
    body = created.json()
    assert body["amount"] == "110.00"
    assert body["account"] is None
    assert body["category"]["name"] == "Sales Revenue"

    listed = client.get(f"/api/transactions?user_id={user_id}", headers=headers).json()
    assert [row["id"] for row in listed] == [body["id"]]

    updated = client.put(
        f"/api/transactions/{body['id']}",
        headers=headers,
        json={"amount": "99.5", "type": "income", "date": "2024-01-11"},
    )
    assert updated.status_code == 200
    assert updated.json()["amount"] == "99.50"
    assert updated.json()["category"] is None
    assert updated.json()["description"] is None

    first = client.delete(f"/api/transactions/{body['id']}", headers=headers)
    assert first.status_code == 200
    assert first.json()["transaction"]["id"] == body["id"]
    second = client.delete(f"/api/transactions/{body['id']}", headers=headers)
    assert second.status_code == 404


def test_rejects_invalid_bodies(client) -> None:
    user_id, headers = _signup(client)
    not_json = client.post(
        "/api/transactions",
        headers={**headers, "Content-Type": "application/json"},
        content=b"{broken",
    )
    assert not_json.status_code == 400

    negative = client.post(
        "/api/transactions",
        headers=headers,
        json={"user_id": user_id, "amount": -5, "type": "expense", "date": "2024-01-01"},
    )
    assert negative.status_code == 400
    assert "amount" in negative.json()["message"]


def test_cannot_touch_another_users_rows(client) -> None:
    owner_id, owner = _signup(client)
    _, intruder = _signup(client, email="intruder@example.com")
    txn = client.post(
        "/api/transactions",
        headers=owner,
        json={"user_id": owner_id, "amount": 5, "type": "expense", "date": "2024-01-01"},
    ).json()

    assert client.delete(f"/api/transactions/{txn['id']}", headers=intruder).status_code == 404
    forged = client.post(
        "/api/transactions",
        headers=intruder,
        json={"user_id": owner_id, "amount": 5, "type": "expense", "date": "2024-01-01"},
    )
    assert forged.status_code == 403


def test_deleting_category_detaches_transactions(client) -> None:
    user_id, headers = _signup(client)
    rent = _category_id(client, headers, "Rent")
    client.post(
        "/api/transactions",
        headers=headers,
        json={
            "user_id": user_id,
            "amount": 900,
            "type": "expense",
            "date": "2024-02-01",
            "category_id": rent,
        },
    )

    assert client.delete(f"/api/categories/{rent}", headers=headers).status_code == 200
    rows = client.get(f"/api/transactions?user_id={user_id}", headers=headers).json()
    assert rows[0]["category_id"] is None
    assert rows[0]["category"] is None


def test_tax_uses_company_settings(client) -> None:
    _, headers = _signup(client)
    default = client.post(
        "/api/tax/calculate", headers=headers, json={"amount": 110, "type": "income"}
    ).json()
    assert default["vat_amount"] == 0.0
    assert default["income_tax_amount"] == 11.0

    saved = client.put(
        "/api/company-settings",
        headers=headers,
        json={
            "company_name": "Bold LLC",
            "registration_number": "1234567",
            "vat_registered": True,
            "ebarimt_api_key": "secret",
        },
    )
    assert saved.status_code == 200
    assert "ebarimt_api_key" not in saved.json()

    taxed = client.post(
        "/api/tax/calculate", headers=headers, json={"amount": 110, "type": "income"}
    ).json()
    assert taxed["vat_amount"] == 10.0
    assert taxed["amount_without_vat"] == 100.0
    assert taxed["income_tax_amount"] == 10.0


def test_company_settings_missing_is_not_found(client) -> None:
    _, headers = _signup(client)
    assert client.get("/api/company-settings", headers=headers).status_code == 404


def test_report_summary_and_csv(client) -> None:
    user_id, headers = _signup(client)
    for amount, txn_type, day in [
        (100, "income", "2024-01-10"),
        (40, "expense", "2024-01-15"),
        (60, "income", "2024-02-01"),
    ]:
        client.post(
            "/api/transactions",
            headers=headers,
            json={"user_id": user_id, "amount": amount, "type": txn_type, "date": day},
        )

    summary = client.get(
        "/api/reports/summary?start=2024-01-01&end=2024-01-31", headers=headers
    ).json()
    assert summary["total_income"] == 100.0
    assert summary["total_expenses"] == 40.0
    assert summary["net_balance"] == 60.0
    assert summary["monthly_trend"] == [
        {"month": "Jan 2024", "income": 100.0, "expenses": 40.0, "profit": 60.0}
    ]

    export = client.get(
        "/api/reports/export.csv?start=2024-01-01&end=2024-02-29", headers=headers
    )
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "financial-report-2024-01-01-2024-02-29.csv" in export.headers["content-disposition"]
    assert export.text.splitlines() == [
        "Month,Income,Expenses,Profit/Loss",
        "Jan 2024,100.00,40.00,60.00",
        "Feb 2024,60.00,0.00,60.00",
    ]

    inverted = client.get(
        "/api/reports/summary?start=2024-02-01&end=2024-01-01", headers=headers
    )
    assert inverted.status_code == 400


def test_tax_endpoint_requires_token(client) -> None:
    resp = client.post("/api/tax/calculate", json={"amount": 110, "type": "income"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Unauthorized"
