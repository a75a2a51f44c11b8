import os
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import urljoin

import requests
from dotenv import load_dotenv

from .utils import open_session


class BackendClient:
    """Thin client for the hosted backend: REST row store plus remote functions."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        url = base_url or os.getenv("SUPABASE_URL")
        if not url:
            raise ValueError("Environment variable 'SUPABASE_URL' is not set")
        key = anon_key or os.getenv("SUPABASE_ANON_KEY")
        if not key:
            raise ValueError("Environment variable 'SUPABASE_ANON_KEY' is not set")

        self.base_url = url.rstrip("/")
        self.session = session or open_session(key)
        self.timeout = timeout

    # -------- headers --------
    @property
    def json_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json", "Content-Type": "application/json"}

    @property
    def representation_headers(self) -> Mapping[str, str]:
        return {**self.json_headers, "Prefer": "return=representation"}

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[dict] = None,
        json: Optional[Any] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=headers or self.json_headers,
            params=params,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None

    # -------- row store --------
    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Mapping[str, str]] = None,
        order: Optional[str] = None,
    ) -> list[dict]:
        params = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        return self._request("GET", f"/rest/v1/{table}", params=params) or []

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[dict]:
        return (
            self._request(
                "POST",
                f"/rest/v1/{table}",
                headers=self.representation_headers,
                json=list(rows),
            )
            or []
        )

    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        filters: Mapping[str, str],
    ) -> list[dict]:
        """PATCH rows matching ``filters`` and return the rows that changed."""
        return (
            self._request(
                "PATCH",
                f"/rest/v1/{table}",
                headers=self.representation_headers,
                params=dict(filters),
                json=dict(values),
            )
            or []
        )

    def delete(self, table: str, *, filters: Mapping[str, str]) -> None:
        self._request("DELETE", f"/rest/v1/{table}", params=dict(filters))

    # -------- remote functions --------
    def invoke_function(self, name: str, body: Mapping[str, Any]) -> Any:
        return self._request(
            "POST",
            f"/functions/v1/{name}",
            json=dict(body),
        )
