from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from datafeed.api import main
from datafeed.config import NO_CACHE_HEADERS
from datafeed.sample_data import sample_records
from datafeed.sheets import PermissionDenied
from datafeed.users import InMemoryUserStore


LEADS_ROWS = [
    ["Branch", "Cluster", "MTD Target Leads", "MTD Actual Leads"],
    ["Gurugram", "Gurugram", "50", "12"],
    ["Faridabad", "Faridabad", "50", "55"],
]


@pytest.fixture()
def gateway(make_gateway):
    return make_gateway({"Branch Target Leads": LEADS_ROWS})


@pytest.fixture()
def store():
    return InMemoryUserStore()


@pytest.fixture()
def client(gateway, store, settings, cluster_map):
    main.app.dependency_overrides[main.get_gateway] = lambda: gateway
    main.app.dependency_overrides[main.get_settings] = lambda: settings
    main.app.dependency_overrides[main.get_cluster_map] = lambda: cluster_map
    main.app.dependency_overrides[main.get_user_store] = lambda: store
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()


def _assert_no_cache(response):
    for key, value in NO_CACHE_HEADERS.items():
        assert response.headers[key] == value


def test_branch_target_leads_cluster_scope(client):
    response = client.get("/branch-target-leads", params={"role": "Cluster Level", "cluster": "Gurugram"})
    assert response.status_code == 200
    _assert_no_cache(response)
    body = response.json()
    assert body["dataSource"] == "real-time"
    assert [r["Branch"] for r in body["data"]] == ["Gurugram"]
    assert body["summary"]["mtdLeads"] == {"target": 50.0, "actual": 12.0, "achievement": 24.0}


def test_branch_param_filters_for_anonymous_viewer(client):
    body = client.get("/branch-target-leads", params={"branch": "Faridabad"}).json()
    assert [r["Branch"] for r in body["data"]] == ["Faridabad"]


def test_gateway_failure_is_still_200(client, gateway):
    gateway.errors["*"] = PermissionDenied("Permission denied")
    response = client.get("/credit-logins", params={"role": "Branch Level", "cluster": "Gurugram", "branch": "Gurugram"})
    assert response.status_code == 200
    _assert_no_cache(response)
    body = response.json()
    assert body["dataSource"] == "mock"
    assert body["data"] == sample_records("credit_logins")
    assert body["error"] == "Permission denied"


def test_invalid_viewer_is_400(client):
    response = client.get("/branch-disbursement-data", params={"role": "Branch Level"})
    assert response.status_code == 400
    _assert_no_cache(response)
    assert response.json()["type"] == "InvalidViewerError"

    assert client.get("/green-amber-leads-data", params={"role": "Admin"}).status_code == 400


def test_dashboard_data(client, gateway):
    gateway.errors["*"] = PermissionDenied("denied")
    body = client.get(
        "/dashboard-data", params={"role": "Chief Executive Officer", "timeFrame": "Daily", "branchAge": "0-6M"}
    ).json()
    assert body["dataSource"] == "mock"
    assert body["filters"]["timeFrame"] == "Daily"
    assert body["filters"]["branchAge"] == "0-6M"
    assert set(body["kpis"]) == {"salesBuddyLogin", "completedLead", "creditLogin", "casesSanctioned", "casesDisbursed"}


def test_ceo_dashboard_data(client):
    body = client.get("/ceo-dashboard-data", params={"cluster": "Faridabad"}).json()
    assert body["dataSource"] == "real-time"
    assert [r["Branch"] for r in body["data"]["Branch Target Leads"]["rows"]] == ["Faridabad"]
    assert body["filters"] == {"cluster": "Faridabad", "branch": None}


def test_chart_endpoint(client):
    response = client.get("/charts/branch-target-leads", params={"type": "pie", "metric": "mtdLeads"})
    assert response.status_code == 200
    body = response.json()
    assert body["widget"]["type"] == "pie"
    assert body["widget"]["labels"] == ["Gurugram", "Faridabad"]


@pytest.mark.parametrize(
    "path, params",
    [("/charts/unknown", {}), ("/charts/kpi_summary", {"metric": "nope"})],
)
def test_chart_endpoint_rejects_bad_input(client, path, params):
    assert client.get(path, params=params).status_code == 400


def test_branch_clusters(client):
    body = client.get("/branch-clusters").json()
    assert body["success"] is True
    assert "Panipat" in body["clusters"]["Karnal"]
    assert "Panipat" not in body["clusters"]["Delhi"]


def test_meta_endpoints(client):
    assert client.get("/meta/sheets").json()["sheets"] == [{"title": "Branch Target Leads", "id": 0}]
    status = client.get("/meta/connection").json()
    assert status["success"] is True


def test_user_lifecycle(client, store):
    payload = {
        "name": "Asha",
        "email": "asha@example.com",
        "password": "secret",
        "employeeId": "EMP100",
        "role": "Branch Level",
        "cluster": ["Gurugram"],
        "branch": ["Bhiwadi"],
    }
    created = client.post("/users", json=payload)
    assert created.status_code == 201
    user = created.json()["user"]
    assert "password" not in user
    assert user["branch"] == "Bhiwadi"

    assert client.post("/users", json=payload).status_code == 409
    assert client.post("/users", json={**payload, "employeeId": "EMP101", "email": ""}).status_code == 400

    found = client.get("/users/check-employee-id", params={"employeeId": "EMP100"})
    assert found.status_code == 200
    assert found.json()["user"]["id"] == user["id"]

    listed = client.get("/users").json()["users"]
    assert "EMP100" in [u["employeeId"] for u in listed]
    assert all("password" not in u for u in listed)

    assert client.delete("/users", params={"id": user["id"]}).status_code == 200
    assert client.delete("/users", params={"id": user["id"]}).status_code == 404
    assert client.delete("/users").status_code == 400
    assert client.get("/users/check-employee-id", params={"employeeId": "EMP100"}).status_code == 404


def test_users_posted_in_the_same_millisecond_are_all_kept(client, monkeypatch):
    monkeypatch.setattr("datafeed.users.new_user_id", lambda: "user-1700000000000")
    base = {"name": "N", "email": "n@example.com", "password": "p", "role": "Chief Executive Officer"}
    ids = [client.post("/users", json={**base, "employeeId": f"CEO9{i}"}).json()["user"]["id"] for i in range(3)]
    assert len(set(ids)) == 3
    for user_id in ids:
        assert client.delete("/users", params={"id": user_id}).status_code == 200


def test_branch_viewer_with_all_branches_sees_their_cluster(client):
    body = client.get(
        "/branch-target-leads", params={"role": "Branch Level", "cluster": "Gurugram", "branch": "All Branches"}
    ).json()
    assert [r["Branch"] for r in body["data"]] == ["Gurugram"]
    assert body["filters"]["role"] == "Cluster Level"
