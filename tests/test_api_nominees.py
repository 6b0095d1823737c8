from __future__ import annotations

import pytest
from fastapi.testclient import TestClient


def _nominee_payload(policy_id: str, **overrides) -> dict:
    payload = {
        "name": "Sarah Johnson",
        "relationship": "Spouse",
        "email": "sarah@example.com",
        "phone": "123-456-7890",
        "policyId": policy_id,
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def owner(client: TestClient, login, policy_payload):
    headers = login("owner@x.com")
    policy = client.post("/policies", json=policy_payload, headers=headers).json()["policy"]
    return headers, policy


def test_create_nominee(client: TestClient, owner) -> None:
    headers, policy = owner

    response = client.post("/nominees", json=_nominee_payload(policy["id"]), headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Nominee added successfully"
    nominee = body["nominee"]
    assert nominee["_id"] == nominee["id"]
    assert nominee["policyId"] == policy["id"]
    assert nominee["userId"] == policy["userId"]
    assert nominee["verified"] is False
    assert nominee["status"] == "Active"


def test_create_nominee_with_malformed_policy_reference(client: TestClient, owner) -> None:
    headers, _ = owner

    for bad in ("POL-ABC123", "", "123"):
        response = client.post("/nominees", json=_nominee_payload(bad), headers=headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid policy ID format. Please select a valid policy."}

    missing = {key: value for key, value in _nominee_payload("x").items() if key != "policyId"}
    assert client.post("/nominees", json=missing, headers=headers).status_code == 400
    assert client.get("/nominees", headers=headers).json() == []


def test_create_nominee_against_missing_or_foreign_policy(client: TestClient, owner, login) -> None:
    headers, policy = owner
    intruder = login("intruder@x.com")

    foreign = client.post("/nominees", json=_nominee_payload(policy["id"]), headers=intruder)
    absent = client.post("/nominees", json=_nominee_payload("f" * 24), headers=headers)

    assert foreign.status_code == 404
    assert absent.status_code == 404
    assert foreign.json() == {"error": "Policy not found or does not belong to you"}
    assert client.get("/nominees", headers=intruder).json() == []
    assert client.get("/nominees", headers=headers).json() == []


def test_create_nominee_missing_required_field_creates_nothing(client: TestClient, owner) -> None:
    headers, policy = owner
    payload = _nominee_payload(policy["id"])
    del payload["phone"]

    response = client.post("/nominees", json=payload, headers=headers)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create nominee"}
    assert client.get("/nominees", headers=headers).json() == []


def test_list_nominees_for_policy(client: TestClient, owner, policy_payload) -> None:
    headers, policy = owner
    other = client.post("/policies", json={**policy_payload, "name": "Health"}, headers=headers).json()["policy"]
    client.post("/nominees", json=_nominee_payload(policy["id"]), headers=headers)
    client.post("/nominees", json=_nominee_payload(policy["id"], name="Michael"), headers=headers)
    client.post("/nominees", json=_nominee_payload(other["id"], name="Other"), headers=headers)

    response = client.get(f"/policies/{policy['id']}/nominees", headers=headers)

    assert response.status_code == 200
    assert sorted(item["name"] for item in response.json()) == ["Michael", "Sarah Johnson"]
    assert len(client.get("/nominees", headers=headers).json()) == 3


def test_update_nominee_is_partial(client: TestClient, owner) -> None:
    headers, policy = owner
    nominee = client.post("/nominees", json=_nominee_payload(policy["id"]), headers=headers).json()["nominee"]

    response = client.put(
        f"/nominees/{nominee['id']}",
        json={"phone": "999-999-9999", "status": "Inactive"},
        headers=headers,
    )

    assert response.status_code == 200
    updated = response.json()["nominee"]
    assert updated["phone"] == "999-999-9999"
    assert updated["status"] == "Inactive"
    assert updated["name"] == "Sarah Johnson"
    assert updated["policyId"] == policy["id"]


def test_verify_nominee_is_idempotent(client: TestClient, owner) -> None:
    headers, policy = owner
    nominee = client.post("/nominees", json=_nominee_payload(policy["id"]), headers=headers).json()["nominee"]

    first = client.patch(f"/nominees/{nominee['id']}/verify", headers=headers)
    second = client.patch(f"/nominees/{nominee['id']}/verify", headers=headers)

    assert first.status_code == second.status_code == 200
    assert first.json()["message"] == "Nominee verified successfully"
    assert first.json()["nominee"]["verified"] is True
    assert second.json()["nominee"]["verified"] is True


def test_update_cannot_revoke_verification(client: TestClient, owner) -> None:
    headers, policy = owner
    nominee = client.post("/nominees", json=_nominee_payload(policy["id"]), headers=headers).json()["nominee"]
    client.patch(f"/nominees/{nominee['id']}/verify", headers=headers)

    response = client.put(f"/nominees/{nominee['id']}", json={"verified": False}, headers=headers)

    assert response.status_code == 200
    assert response.json()["nominee"]["verified"] is True


def test_delete_nominee(client: TestClient, owner) -> None:
    headers, policy = owner
    nominee = client.post("/nominees", json=_nominee_payload(policy["id"]), headers=headers).json()["nominee"]

    response = client.delete(f"/nominees/{nominee['id']}", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Nominee deleted successfully"}
    assert client.get("/nominees", headers=headers).json() == []
    assert client.delete(f"/nominees/{nominee['id']}", headers=headers).status_code == 404


def test_nominee_routes_are_ownership_opaque(client: TestClient, owner, login) -> None:
    headers, policy = owner
    intruder = login("intruder@x.com")
    nominee = client.post("/nominees", json=_nominee_payload(policy["id"]), headers=headers).json()["nominee"]

    for method, path, body in [
        ("PUT", f"/nominees/{nominee['id']}", {"name": "Hijacked"}),
        ("PATCH", f"/nominees/{nominee['id']}/verify", None),
        ("DELETE", f"/nominees/{nominee['id']}", None),
    ]:
        response = client.request(method, path, json=body, headers=intruder)
        assert response.status_code == 404, path
        assert response.json() == {"error": "Nominee not found"}

    stored = client.get("/nominees", headers=headers).json()
    assert stored[0]["name"] == "Sarah Johnson"
    assert stored[0]["verified"] is False
