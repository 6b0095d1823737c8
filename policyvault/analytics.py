"""Aggregate statistics over a caller's policies and nominees."""
from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from .models import Nominee, Policy, PolicyStatus


def _grouped(totals: Dict[str, float]) -> List[Dict[str, object]]:
    return [{"name": name, "value": value} for name, value in totals.items()]


def compute_analytics(policies: Sequence[Policy], nominees: Iterable[Nominee]) -> Dict[str, Dict[str, object]]:
    """Summarise owner-scoped records.

    Policies are grouped by name; groups keep the order in which each name
    first appears. Nothing is persisted.
    """

    distribution: Dict[str, float] = {}
    values: Dict[str, float] = {}
    for policy in policies:
        distribution[policy.name] = distribution.get(policy.name, 0) + 1
        values[policy.name] = values.get(policy.name, 0) + policy.value

    return {
        "summary": {
            "totalPolicies": len(policies),
            "activePolicies": sum(1 for policy in policies if policy.status == PolicyStatus.ACTIVE.value),
            "totalCoverage": sum(policy.value for policy in policies),
            "totalNominees": sum(1 for _ in nominees),
        },
        "charts": {
            "policyDistribution": _grouped(distribution),
            "policyValues": _grouped(values),
        },
    }


__all__ = ["compute_analytics"]
