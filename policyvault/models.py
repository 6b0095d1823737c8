"""Domain records persisted by the PolicyVault record store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class PolicyStatus(str, Enum):
    ACTIVE = "Active"
    PENDING = "Pending"
    RENEWAL_DUE = "Renewal Due"


@dataclass(frozen=True)
class Account:
    """Represents a registered account. The password hash never leaves the store."""

    id: str
    name: str
    email: str
    created_at: datetime


@dataclass(frozen=True)
class Policy:
    id: str
    owner_id: str
    name: str
    company: str
    value: float
    premium: float
    start_date: str
    end_date: str
    status: str
    created_at: datetime


@dataclass(frozen=True)
class Nominee:
    id: str
    owner_id: str
    policy_id: str
    name: str
    relationship: str
    email: str
    phone: str
    verified: bool
    status: str
    created_at: datetime


@dataclass(frozen=True)
class OwnerContext:
    """Identity resolved from a validated bearer token."""

    owner_id: str
    email: str


__all__ = ["Account", "Nominee", "OwnerContext", "Policy", "PolicyStatus"]
