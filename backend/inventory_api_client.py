"""
inventory_api_client.py

A tiny client for the Inventory Tracking API, for scripts and chat bots.

What it provides:
- JWT login + authenticated requests (re-login once when the token expires)
- Helpers for searching inventory, logging shipments (applied or queued as a
  request depending on the account's role), and reviewing requests

Environment variables expected:
- INVENTORY_API_URL: e.g. "https://your-domain.com/api"
- INVENTORY_API_EMAIL: bot user's email (must exist and be approved)
- INVENTORY_API_PASSWORD: bot user's password

Optional:
- INVENTORY_API_TOKEN: if you want to pre-seed a token (otherwise we login)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

import requests


class ApiError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DuplicateShipmentId(ApiError):
    """The label is already used; resend with confirm_duplicate=True to log it anyway."""

    @property
    def matches(self) -> list:
        return (self.body or {}).get("matches", [])


def _body(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


@dataclass
class InventoryApiClient:
    base_url: str
    email: str
    password: str
    token: Optional[str] = None
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def login(self) -> str:
        """
        FastAPI-Users JWT login endpoint.
        The backend uses: POST /auth/jwt/login with form fields: username, password
        """
        url = f"{self.base_url.rstrip('/')}/auth/jwt/login"
        resp = self.session.post(
            url,
            data={"username": self.email, "password": self.password},
            headers={"Accept": "application/json"},
            timeout=30,
        )
        if resp.status_code >= 400:
            raise ApiError(f"Login failed ({resp.status_code}): {resp.text}", resp.status_code, _body(resp))
        data = resp.json()
        token = data.get("access_token")
        if not token:
            raise ApiError(f"Login response missing access_token: {data}")
        self.token = token
        return token

    def _request(self, method: str, path: str, *, json: Any = None, params: Dict[str, Any] | None = None) -> Any:
        if not self.token:
            self.login()

        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        resp = self.session.request(method, url, json=json, params=params, headers=self._headers(), timeout=60)

        # Token expired: retry once with a fresh login.
        if resp.status_code == 401:
            self.login()
            resp = self.session.request(method, url, json=json, params=params, headers=self._headers(), timeout=60)

        if resp.status_code >= 400:
            body = _body(resp)
            if resp.status_code == 409 and isinstance(body, dict) and body.get("warning") == "duplicate_shipment_id":
                raise DuplicateShipmentId(f"Shipment ID already used: {body.get('shipment_id')}", 409, body)
            raise ApiError(f"{method} {path} failed ({resp.status_code}): {resp.text}", resp.status_code, body)

        if resp.status_code == 204:
            return None
        return resp.json()

    # ----------------------------
    # Inventory helpers
    # ----------------------------

    def search_inventory(self, q: Optional[str] = None) -> Any:
        """Calls: GET /inventory/items?q=..."""
        return self._request("GET", "/inventory/items", params={"q": q} if q else None)

    def get_item(self, sku: str) -> Any:
        return self._request("GET", f"/inventory/items/{sku}")

    # ----------------------------
    # Shipments + requests
    # ----------------------------

    def log_shipment(
        self,
        *,
        shipment_id: str,
        type: str,  # "incoming" | "outgoing"
        lines: Iterable[Dict[str, Any]],  # {"sku", "quantity", "description"?}
        confirm_duplicate: bool = False,
    ) -> Any:
        """
        Calls: POST /shipments/
        Returns {"outcome": "applied" | "requested", ...}. Raises DuplicateShipmentId
        when the label is already in use and confirm_duplicate is False.
        """
        payload = {
            "shipment_id": shipment_id,
            "type": type,
            "lines": list(lines),
            "confirm_duplicate": confirm_duplicate,
        }
        return self._request("POST", "/shipments/", json=payload)

    def list_pending_requests(self) -> Any:
        """admin-only."""
        return self._request("GET", "/requests/")

    def approve_request(self, request_id: str) -> Any:
        return self._request("POST", f"/requests/{request_id}/approve")

    def reject_request(self, request_id: str) -> Any:
        return self._request("POST", f"/requests/{request_id}/reject")


def make_client_from_env() -> InventoryApiClient:
    base_url = os.getenv("INVENTORY_API_URL", "").strip()
    email = os.getenv("INVENTORY_API_EMAIL", "").strip()
    password = os.getenv("INVENTORY_API_PASSWORD", "").strip()
    token = os.getenv("INVENTORY_API_TOKEN", "").strip() or None

    if not base_url:
        raise RuntimeError("Missing INVENTORY_API_URL")
    if not email:
        raise RuntimeError("Missing INVENTORY_API_EMAIL")
    if not password:
        raise RuntimeError("Missing INVENTORY_API_PASSWORD")

    return InventoryApiClient(base_url=base_url, email=email, password=password, token=token)


if __name__ == "__main__":
    client = make_client_from_env()

    # Example: log an incoming shipment
    # print(client.log_shipment(shipment_id="20250440", type="incoming", lines=[{"sku": "DF44", "quantity": 10}]))

    print("OK: client configured. Uncomment examples to run.")
