"""HTTP backend for a PostgREST-style holdings service."""

import httpx

from ..config import Config
from ..errors import RemoteUnavailableError


class HoldingsApiClient:
    """HTTP client for the hosted holdings table.

    Speaks the PostgREST dialect: filters go in the query string as
    ``column=op.value`` and the ``Prefer`` header controls whether writes
    echo rows back.
    """

    TABLE_PATH = "/rest/v1/holdings"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        access_token: str | None = None,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
        token = access_token or api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: Config) -> "HoldingsApiClient":
        return cls(config.remote_url, api_key=config.remote_api_key, timeout=config.request_timeout)

    def _request(self, method: str, params: dict, **kwargs) -> httpx.Response:
        """Send a request to the holdings table, mapping failures to RemoteUnavailableError."""
        try:
            response = self._client.request(method, self.TABLE_PATH, params=params, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(f"{method} {self.TABLE_PATH} failed: {e}") from e
        return response

    def _rows(self, response: httpx.Response) -> list[dict]:
        """Decode a JSON array of rows, rejecting anything else as an unusable answer."""
        try:
            rows = response.json()
        except ValueError as e:
            raise RemoteUnavailableError(f"{self.TABLE_PATH} returned a non-JSON body: {e}") from e
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise RemoteUnavailableError(f"{self.TABLE_PATH} returned {type(rows).__name__}, expected a list of rows")
        return rows

    def select_active(self, user_id: str) -> list[dict]:
        """Rows for a user that are not tombstoned, newest first."""
        response = self._request(
            "GET",
            {
                "select": "*",
                "user_id": f"eq.{user_id}",
                "deleted_at": "is.null",
                "order": "created_at.desc",
            },
        )
        return self._rows(response)

    def insert_rows(self, rows: list[dict]) -> None:
        """Insert rows in a single request."""
        if not rows:
            return
        self._request("POST", {}, json=rows, headers={"Prefer": "return=minimal"})

    def update_row(self, holding_id: str, user_id: str, changes: dict) -> dict | None:
        """
        Patch a live row owned by ``user_id``.

        Returns:
            The updated row, or None if no live row matched
        """
        response = self._request(
            "PATCH",
            {
                "id": f"eq.{holding_id}",
                "user_id": f"eq.{user_id}",
                "deleted_at": "is.null",
            },
            json=changes,
            headers={"Prefer": "return=representation"},
        )
        rows = self._rows(response)
        return rows[0] if rows else None

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "HoldingsApiClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()
