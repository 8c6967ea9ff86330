"""HTTP transport collaborator used when the caller supplies none."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from ..config import TransportConfig
from ..errors import FetchError
from ..infra.ua_pool import DEFAULT_USER_AGENT, UserAgentPool
from .hooks import BodyBuilder, default_body
from .seeds import SeedRow

DEFAULT_HEADERS = {
    "Accept": "application/json, text/javascript, */*; q=0.01",
    "Accept-Encoding": "deflate, gzip;q=1.0, *;q=0.5",
}


class HttpTransport:
    """Send one form-encoded request per seed row and return the decoded payload."""

    def __init__(
        self,
        config: TransportConfig,
        body_builder: BodyBuilder | None = None,
        *,
        run_type: str = "DEFAULT",
        ua_pool: UserAgentPool | None = None,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.body_builder = body_builder or default_body
        self.run_type = run_type
        self.ua_pool = ua_pool or (UserAgentPool(config.user_agents) if config.randomize_user_agent else None)
        self.logger = logger or structlog.get_logger("seed_fetcher.fetcher")
        self._client = client
        if self._client is None and config.fetch_enabled:
            self._client = httpx.Client(
                follow_redirects=True,
                timeout=config.timeout,
                proxy=config.proxy,
            )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def __call__(self, seed_row: SeedRow) -> Any:
        body = dict(self.body_builder(seed_row))
        if not self.config.fetch_enabled:
            self.logger.warning("fetch_disabled", ordinal=seed_row.ordinal)
            return {
                "_runType": self.run_type,
                "_fetchEnabled": False,
                "_body": urlencode(body),
            }
        return self._send(body)

    def _send(self, body: dict[str, Any]) -> Any:
        headers = {**DEFAULT_HEADERS, "User-Agent": self._user_agent(), **self.config.headers}
        request_kwargs: dict[str, Any] = {
            "method": self.config.method,
            "url": self.config.remote_service_url,
            "headers": headers,
        }
        if self.config.method == "GET":
            request_kwargs["params"] = body
        else:
            request_kwargs["data"] = body
        try:
            response = self._client.request(**request_kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"Remote service answered {exc.response.status_code} for {self.config.remote_service_url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Request to {self.config.remote_service_url} failed: {exc}") from exc
        return self._decode(response)

    def _user_agent(self) -> str:
        if self.ua_pool is not None:
            return self.ua_pool.get() or DEFAULT_USER_AGENT
        return DEFAULT_USER_AGENT

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text


__all__ = ["DEFAULT_HEADERS", "HttpTransport"]
