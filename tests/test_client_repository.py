from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from policyvault.client import APIError, PolicyVaultClient, normalize_record
from policyvault.repository import (
    IntervalRefresh,
    OnDemandRefresh,
    PolicyVaultCache,
    Repository,
    remove_record,
    upsert_record,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def api(client: TestClient) -> PolicyVaultClient:
    api_client = PolicyVaultClient(http_client=client)
    api_client.register("a@x.com", "pw12345678", name="A")
    api_client.login("a@x.com", "pw12345678")
    return api_client


def test_normalize_record_accepts_legacy_alias() -> None:
    assert normalize_record({"_id": "abc", "name": "x"}) == {"id": "abc", "name": "x"}
    assert normalize_record({"id": "abc", "_id": "abc"}) == {"id": "abc"}
    with pytest.raises(APIError):
        normalize_record({"name": "no id"})


def test_client_login_stores_token(client: TestClient) -> None:
    api_client = PolicyVaultClient(http_client=client)
    api_client.register("b@x.com", "pw12345678")
    assert not api_client.is_authenticated()

    api_client.login("b@x.com", "pw12345678")

    assert api_client.is_authenticated()
    assert api_client.token
    assert api_client.get_profile()["email"] == "b@x.com"
    api_client.logout()
    assert not api_client.is_authenticated()
    assert api_client.token is None


def test_client_surfaces_server_errors(client: TestClient, api: PolicyVaultClient) -> None:
    with pytest.raises(APIError) as excinfo:
        api.get_policy("0" * 24)
    assert excinfo.value.status_code == 404
    assert str(excinfo.value) == "Policy not found"

    anonymous = PolicyVaultClient(http_client=client)
    with pytest.raises(APIError) as excinfo:
        anonymous.list_policies()
    assert excinfo.value.status_code == 401


def test_client_crud_flow(api: PolicyVaultClient, policy_payload) -> None:
    policy = api.create_policy(policy_payload)
    assert "_id" not in policy
    assert api.list_policies() == [policy]

    nominee = api.create_nominee(
        {
            "name": "Sarah",
            "relationship": "Spouse",
            "email": "sarah@example.com",
            "phone": "555",
            "policyId": policy["id"],
        }
    )
    assert api.list_policy_nominees(policy["id"]) == [nominee]
    assert api.verify_nominee(nominee["id"])["verified"] is True
    assert api.update_policy(policy["id"], {"premium": 20})["premium"] == 20
    assert api.get_analytics()["summary"]["totalNominees"] == 1

    api.delete_policy(policy["id"])
    assert api.list_nominees() == []


def test_interval_refresh_policy() -> None:
    policy = IntervalRefresh(timedelta(seconds=30))
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    assert policy.is_stale(None, now)
    assert not policy.is_stale(now, now + timedelta(seconds=29))
    assert policy.is_stale(now, now + timedelta(seconds=30))
    with pytest.raises(ValueError):
        IntervalRefresh(timedelta(0))


def test_on_demand_refresh_only_loads_once() -> None:
    calls = []

    def loader():
        calls.append(1)
        return [{"id": "1"}]

    repo = Repository(loader, refresh_policy=OnDemandRefresh())
    repo.fetch_all()
    repo.fetch_all()
    assert len(calls) == 1

    repo.fetch_all(force=True)
    assert len(calls) == 2
    repo.invalidate()
    repo.fetch_all()
    assert len(calls) == 3


def test_repository_refetches_after_interval() -> None:
    clock = FakeClock()
    calls = []

    def loader():
        calls.append(1)
        return [{"id": str(len(calls))}]

    repo = Repository(loader, refresh_policy=IntervalRefresh(timedelta(seconds=30)), clock=clock)
    assert repo.loaded_at is None

    assert repo.get_by_id("1") == {"id": "1"}
    assert repo.loaded_at == clock.now
    clock.advance(10)
    assert repo.fetch_all() == [{"id": "1"}]
    clock.advance(30)
    assert repo.fetch_all() == [{"id": "2"}]
    assert repo.loaded_at == clock.now
    assert repo.get_by_id("1") is None


def test_failed_mutation_leaves_snapshot_untouched() -> None:
    repo = Repository(lambda: [{"id": "1"}])
    repo.fetch_all()

    def boom():
        raise APIError("nope", status_code=500)

    with pytest.raises(APIError):
        repo.mutate(boom, upsert_record)
    assert repo.fetch_all() == [{"id": "1"}]


def test_upsert_and_remove_helpers() -> None:
    records = [{"id": "1", "v": 1}, {"id": "2", "v": 2}]
    assert upsert_record(records, {"id": "2", "v": 3}) == [{"id": "1", "v": 1}, {"id": "2", "v": 3}]
    assert upsert_record(records, {"id": "3", "v": 4})[-1] == {"id": "3", "v": 4}
    assert remove_record(records, "1") == [{"id": "2", "v": 2}]


def test_cache_mirrors_cascade_locally(api: PolicyVaultClient, policy_payload) -> None:
    cache = PolicyVaultCache(api, refresh_policy=OnDemandRefresh())
    cache.refresh()

    policy = cache.add_policy(policy_payload)
    nominee = cache.add_nominee(
        {
            "name": "Sarah",
            "relationship": "Spouse",
            "email": "sarah@example.com",
            "phone": "555",
            "policyId": policy["id"],
        }
    )
    verified = cache.verify_nominee(nominee["id"])

    assert cache.policies.get_by_id(policy["id"]) == policy
    assert cache.nominees_for_policy(policy["id"]) == [verified]
    assert verified["verified"] is True

    cache.delete_policy(policy["id"])

    assert cache.policies.fetch_all() == []
    assert cache.nominees.fetch_all() == []
    cache.refresh()
    assert cache.nominees.fetch_all() == []


def test_client_requires_base_url() -> None:
    with pytest.raises(ValueError):
        PolicyVaultClient("  ")


def test_client_uses_injected_transport() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/policies"
        assert request.headers["Authorization"] == "Bearer tkn"
        return httpx.Response(200, json=[{"_id": "abc", "name": "Term"}])

    http_client = httpx.Client(base_url="http://vault.local/api", transport=httpx.MockTransport(handler))
    api_client = PolicyVaultClient(token="tkn", http_client=http_client)

    assert api_client.list_policies() == [{"id": "abc", "name": "Term"}]
