"""HTTP client for the PolicyVault API."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import httpx


class APIError(RuntimeError):
    """Raised when the PolicyVault API rejects a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("API base URL must not be empty")
    return cleaned.rstrip("/")


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def normalize_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``record`` whose ``id`` is set from ``id`` or the legacy ``_id``."""

    normalized = dict(record)
    identifier = normalized.get("id") or normalized.get("_id")
    if not identifier:
        raise APIError("Record returned by the API has no identifier")
    normalized["id"] = str(identifier)
    normalized.pop("_id", None)
    return normalized


class PolicyVaultClient:
    """Thin wrapper over the JSON API.

    Every record that comes back passes through :func:`normalize_record`, so
    callers only ever compare records by ``id``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000/api",
        *,
        token: str | None = None,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if http_client is None:
            http_client = httpx.Client(base_url=_normalize_base_url(base_url), timeout=timeout)
        self._http = http_client
        self._token = token

    @property
    def token(self) -> Optional[str]:
        return self._token

    def is_authenticated(self) -> bool:
        return bool(self._token)

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def register(self, email: str, password: str, name: str | None = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"email": email, "password": password}
        if name is not None:
            payload["name"] = name
        return self._request("POST", "/register", json=payload, authenticated=False)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self._request(
            "POST",
            "/login",
            json={"email": email, "password": password},
            authenticated=False,
        )
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise APIError("Login response did not include a token")
        self._token = str(token)
        return data

    def logout(self) -> None:
        self._token = None

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self._request("POST", "/forgot-password", json={"email": email}, authenticated=False)

    def get_profile(self) -> Dict[str, Any]:
        return self._request("GET", "/user/profile")

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------
    def list_policies(self) -> List[Dict[str, Any]]:
        return [normalize_record(item) for item in self._request_list("GET", "/policies")]

    def get_policy(self, policy_id: str) -> Dict[str, Any]:
        return normalize_record(self._request("GET", f"/policies/{policy_id}"))

    def create_policy(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", "/policies", json=dict(fields))
        return normalize_record(data["policy"])

    def update_policy(self, policy_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        data = self._request("PUT", f"/policies/{policy_id}", json=dict(fields))
        return normalize_record(data["policy"])

    def delete_policy(self, policy_id: str) -> None:
        self._request("DELETE", f"/policies/{policy_id}")

    def list_policy_nominees(self, policy_id: str) -> List[Dict[str, Any]]:
        items = self._request_list("GET", f"/policies/{policy_id}/nominees")
        return [normalize_record(item) for item in items]

    # ------------------------------------------------------------------
    # Nominees
    # ------------------------------------------------------------------
    def list_nominees(self) -> List[Dict[str, Any]]:
        return [normalize_record(item) for item in self._request_list("GET", "/nominees")]

    def create_nominee(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", "/nominees", json=dict(fields))
        return normalize_record(data["nominee"])

    def update_nominee(self, nominee_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        data = self._request("PUT", f"/nominees/{nominee_id}", json=dict(fields))
        return normalize_record(data["nominee"])

    def verify_nominee(self, nominee_id: str) -> Dict[str, Any]:
        data = self._request("PATCH", f"/nominees/{nominee_id}/verify")
        return normalize_record(data["nominee"])

    def delete_nominee(self, nominee_id: str) -> None:
        self._request("DELETE", f"/nominees/{nominee_id}")

    def get_analytics(self) -> Dict[str, Any]:
        return self._request("GET", "/analytics")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _headers(self, authenticated: bool) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if authenticated and self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _request_list(self, method: str, path: str) -> List[Dict[str, Any]]:
        data = self._request(method, path)
        if not isinstance(data, list):
            raise APIError(f"Expected a list from {path}")
        return data

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        authenticated: bool = True,
    ) -> Any:
        try:
            response = self._http.request(
                method,
                path,
                json=json,
                headers=self._headers(authenticated),
            )
        except httpx.RequestError as exc:  # pragma: no cover - network failure
            raise APIError(f"Failed to contact PolicyVault API: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        if response.status_code >= 400:
            message = _extract_error_message(
                payload,
                f"Request failed with status {response.status_code}",
            )
            raise APIError(message, status_code=response.status_code)

        return payload


__all__ = ["APIError", "PolicyVaultClient", "normalize_record"]
