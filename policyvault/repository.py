"""Client-side cache of a user's policies and nominees."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, TypeVar

from .client import PolicyVaultClient

Record = Dict[str, Any]
R = TypeVar("R")


class RefreshPolicy(Protocol):
    def is_stale(self, loaded_at: Optional[datetime], now: datetime) -> bool:
        ...


class IntervalRefresh:
    """Refetch when the snapshot is older than ``interval``."""

    def __init__(self, interval: timedelta = timedelta(seconds=30)) -> None:
        if interval <= timedelta(0):
            raise ValueError("Refresh interval must be positive")
        self._interval = interval

    def is_stale(self, loaded_at: Optional[datetime], now: datetime) -> bool:
        return loaded_at is None or now - loaded_at >= self._interval


class OnDemandRefresh:
    """Load once, then only refetch when asked to."""

    def is_stale(self, loaded_at: Optional[datetime], now: datetime) -> bool:
        return loaded_at is None


def upsert_record(records: Sequence[Record], record: Record) -> List[Record]:
    if not any(item.get("id") == record["id"] for item in records):
        return [*records, record]
    return [record if item.get("id") == record["id"] else item for item in records]


def remove_record(records: Sequence[Record], record_id: str) -> List[Record]:
    return [item for item in records if item.get("id") != record_id]


class Repository:
    """A locally held snapshot of one collection, refreshed by a :class:`RefreshPolicy`."""

    def __init__(
        self,
        loader: Callable[[], List[Record]],
        *,
        refresh_policy: RefreshPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._loader = loader
        self._refresh_policy = refresh_policy or OnDemandRefresh()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._records: List[Record] = []
        self._loaded_at: Optional[datetime] = None
        self._lock = threading.Lock()

    @property
    def loaded_at(self) -> Optional[datetime]:
        return self._loaded_at

    def fetch_all(self, *, force: bool = False) -> List[Record]:
        if force or self._refresh_policy.is_stale(self._loaded_at, self._clock()):
            records = self._loader()
            with self._lock:
                self._records = list(records)
                self._loaded_at = self._clock()
        with self._lock:
            return list(self._records)

    def get_by_id(self, record_id: str) -> Optional[Record]:
        for record in self.fetch_all():
            if record.get("id") == record_id:
                return record
        return None

    def mutate(
        self,
        operation: Callable[[], R],
        apply: Callable[[List[Record], R], List[Record]],
    ) -> R:
        """Run ``operation`` remotely, then fold its result into the local snapshot.

        The snapshot is left untouched when ``operation`` raises.
        """

        result = operation()
        with self._lock:
            self._records = list(apply(list(self._records), result))
        return result

    def invalidate(self) -> None:
        with self._lock:
            self._loaded_at = None


class PolicyVaultCache:
    """Policies and nominees for the logged-in user, kept in step with the API."""

    def __init__(
        self,
        client: PolicyVaultClient,
        *,
        refresh_policy: RefreshPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self.policies = Repository(client.list_policies, refresh_policy=refresh_policy, clock=clock)
        self.nominees = Repository(client.list_nominees, refresh_policy=refresh_policy, clock=clock)

    def refresh(self) -> None:
        self.policies.fetch_all(force=True)
        self.nominees.fetch_all(force=True)

    def add_policy(self, fields: Dict[str, Any]) -> Record:
        return self.policies.mutate(lambda: self._client.create_policy(fields), upsert_record)

    def update_policy(self, policy_id: str, fields: Dict[str, Any]) -> Record:
        return self.policies.mutate(lambda: self._client.update_policy(policy_id, fields), upsert_record)

    def delete_policy(self, policy_id: str) -> None:
        self.policies.mutate(
            lambda: self._client.delete_policy(policy_id),
            lambda records, _: remove_record(records, policy_id),
        )
        # The server cascades; mirror it locally.
        self.nominees.mutate(
            lambda: None,
            lambda records, _: [item for item in records if item.get("policyId") != policy_id],
        )

    def add_nominee(self, fields: Dict[str, Any]) -> Record:
        return self.nominees.mutate(lambda: self._client.create_nominee(fields), upsert_record)

    def update_nominee(self, nominee_id: str, fields: Dict[str, Any]) -> Record:
        return self.nominees.mutate(lambda: self._client.update_nominee(nominee_id, fields), upsert_record)

    def verify_nominee(self, nominee_id: str) -> Record:
        return self.nominees.mutate(lambda: self._client.verify_nominee(nominee_id), upsert_record)

    def delete_nominee(self, nominee_id: str) -> None:
        self.nominees.mutate(
            lambda: self._client.delete_nominee(nominee_id),
            lambda records, _: remove_record(records, nominee_id),
        )

    def nominees_for_policy(self, policy_id: str) -> List[Record]:
        return [item for item in self.nominees.fetch_all() if item.get("policyId") == policy_id]


__all__ = [
    "IntervalRefresh",
    "OnDemandRefresh",
    "PolicyVaultCache",
    "RefreshPolicy",
    "Repository",
    "remove_record",
    "upsert_record",
]
