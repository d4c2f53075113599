import logging
import os
from typing import Any

import httpx

logger = logging.getLogger("mktops.client")


class ClientError(Exception):
    def __init__(self, status_code: int, detail: Any) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


class MktopsClient:
    """Cliente HTTP da API.

    ``http`` aceita qualquer objeto com a interface do ``httpx.Client``
    (inclusive o ``TestClient`` do FastAPI).
    """

    def __init__(
        self,
        base_url: str | None = None,
        http: httpx.Client | None = None,
        token: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = (base_url or os.getenv("MKTOPS_API_URL", "http://127.0.0.1:8000")).rstrip("/")
        self.http = http or httpx.Client(base_url=self.base_url, timeout=timeout)
        self.token = token

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self.http.request(method, f"/api{path}", headers=self._headers(), **kwargs)
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            logger.warning("api error method=%s path=%s status=%s", method, path, response.status_code)
            raise ClientError(response.status_code, detail)
        return response.json()

    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/auth/login", json={"usuario": email, "senha": password})
        self.token = data["access_token"]
        return data

    def logout(self) -> None:
        if self.token:
            self._request("POST", "/auth/logout")
        self.token = None

    def me(self) -> dict:
        return self._request("GET", "/me")

    def statuses(self) -> list[dict]:
        return self._request("GET", "/statuses")

    def list_demands(self, **params) -> dict:
        clean = {key: value for key, value in params.items() if value is not None}
        return self._request("GET", "/demands", params=clean)

    def get_demand(self, demand_id: str) -> dict:
        return self._request("GET", f"/demands/{demand_id}")

    def create_demand(self, payload: dict) -> dict:
        return self._request("POST", "/demands", json=payload)

    def update_demand(self, demand_id: str, patch: dict) -> dict:
        return self._request("PATCH", f"/demands/{demand_id}", json=patch)

    def change_status(self, demand_id: str, status_id: str, from_status_id: str | None = None) -> dict:
        return self._request(
            "POST",
            f"/demands/{demand_id}/status",
            json={"status_id": status_id, "from_status_id": from_status_id},
        )

    def bulk_change_status(self, ids: list[str], status_id: str) -> dict:
        return self._request("POST", "/demands/bulk/status", json={"ids": ids, "status_id": status_id})

    def bulk_assign(self, ids: list[str], responsible_id: str | None) -> dict:
        return self._request("POST", "/demands/bulk/assign", json={"ids": ids, "responsible_id": responsible_id})

    def bulk_delete(self, ids: list[str]) -> dict:
        return self._request("POST", "/demands/bulk/delete", json={"ids": ids})

    def timer(self, demand_id: str) -> dict:
        return self._request("GET", f"/demands/{demand_id}/timer")

    def predictions(self) -> dict:
        return self._request("GET", "/analytics/predictions")

    def designer_report(self, **params) -> dict:
        clean = {key: value for key, value in params.items() if value is not None}
        return self._request("GET", "/analytics/designers", params=clean)

    def capacity(self, **params) -> dict:
        clean = {key: value for key, value in params.items() if value is not None}
        return self._request("GET", "/analytics/capacity", params=clean)

    def permissions(self) -> dict:
        return self._request("GET", "/me/permissions")

    def changes(self, since: int = 0) -> dict:
        return self._request("GET", "/changes", params={"since": since})
