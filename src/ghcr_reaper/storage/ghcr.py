"""Storage driver for the ghcr.io package registry."""

import datetime
import time
from collections.abc import Callable
from email.utils import parsedate_to_datetime
from urllib.parse import quote

import httpx
import structlog
from pydantic import SecretStr
from structlog.stdlib import BoundLogger

from ..exceptions import (
    AuthError,
    PackageNotFoundError,
    RateLimitedError,
    RegistryResponseError,
    ServerError,
)
from ..models.owner import OwnerScope
from ..models.version import VersionId, VersionPage, VersionRecord

__all__ = ["GITHUB_API_URL", "GhcrClient"]

GITHUB_API_URL = "https://api.github.com"


class GhcrClient:
    """Storage client for the GitHub packages API backing ghcr.io.

    Each method performs exactly one HTTP request and translates the
    response into records or exceptions.  Retrying is the caller's job:
    rate limits surface as `RateLimitedError` and 5xx or transport
    failures as `ServerError`.

    Parameters
    ----------
    http_client
        Shared HTTP client.  Only its headers are set here, once, by
        `authenticate`.
    api_url
        Base URL of the GitHub REST API.
    page_size
        Versions requested per page.
    clock
        Source of the current epoch time, for ``X-RateLimit-Reset``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        api_url: str = GITHUB_API_URL,
        page_size: int = 100,
        clock: Callable[[], float] = time.time,
        logger: BoundLogger | None = None,
    ) -> None:
        self._http_client = http_client
        self._http_client.headers.update(
            {
                "accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        self._url = api_url.rstrip("/")
        self._page_size = page_size
        self._clock = clock
        self._logger = logger or structlog.get_logger(__name__)

    def authenticate(self, token: SecretStr) -> None:
        """Send the token as a bearer credential on every call."""
        self._http_client.headers["authorization"] = (
            f"Bearer {token.get_secret_value()}"
        )

    def _versions_url(self, scope: OwnerScope, package_name: str) -> str:
        # Package names may contain '/', which must stay in one segment
        package = quote(package_name, safe="")
        return (
            f"{self._url}/{scope.api_path}/packages/container/{package}"
            "/versions"
        )

    async def fetch_page(
        self, scope: OwnerScope, package_name: str, page: int
    ) -> VersionPage:
        """Fetch one page of a package's versions.

        Raises
        ------
        PackageNotFoundError
            Raised if the package does not exist under ``scope``.
        AuthError
            Raised if the token was rejected.
        RateLimitedError
            Raised if the registry rate-limited the request.
        ServerError
            Raised on a 5xx response or transport failure.
        RegistryResponseError
            Raised if the response is not a list of versions.
        """
        url = self._versions_url(scope, package_name)
        params = {"per_page": self._page_size, "page": page}
        self._logger.debug(
            f"Requesting {scope}/{package_name}: versions "
            f"{(page - 1) * self._page_size + 1}-{page * self._page_size}"
        )
        r = await self._request("GET", url, package_name, params=params)
        if r.status_code == 404:
            raise PackageNotFoundError(
                f"Package does not exist under {scope.api_path}",
                package=package_name,
            )
        self._raise_for_status(r, package_name)
        try:
            body = r.json()
        except ValueError as e:
            raise RegistryResponseError(
                f"Version listing is not JSON: {e}", package=package_name
            ) from e
        if not isinstance(body, list):
            raise RegistryResponseError(
                "Version listing is not a list", package=package_name
            )
        versions = [
            VersionRecord.from_api(x, package=package_name) for x in body
        ]
        return VersionPage(
            number=page, versions=versions, next_page=self._next_page(r, page)
        )

    async def delete_version(
        self, scope: OwnerScope, package_name: str, version_id: VersionId
    ) -> bool:
        """Delete one package version.

        Returns
        -------
        bool
            `True` if the version was deleted, `False` if the registry
            reported it as already absent.

        Raises
        ------
        AuthError
            Raised if the token was rejected.
        RateLimitedError
            Raised if the registry rate-limited the request.
        ServerError
            Raised on a 5xx response or transport failure.
        RegistryResponseError
            Raised if the registry refused the deletion for another reason.
        """
        url = f"{self._versions_url(scope, package_name)}/{version_id}"
        r = await self._request("DELETE", url, package_name, version_id)
        if r.status_code == 404:
            return False
        self._raise_for_status(r, package_name, version_id)
        return True

    async def _request(
        self,
        method: str,
        url: str,
        package_name: str,
        version_id: VersionId | None = None,
        params: dict[str, int] | None = None,
    ) -> httpx.Response:
        try:
            return await self._http_client.request(
                method, url, params=params
            )
        except httpx.TransportError as e:
            raise ServerError(
                f"{method} {url} failed: {type(e).__name__}: {e}",
                package=package_name,
                version_id=version_id,
            ) from e

    def _raise_for_status(
        self,
        r: httpx.Response,
        package_name: str,
        version_id: VersionId | None = None,
    ) -> None:
        if r.is_success:
            return
        where = {"package": package_name, "version_id": version_id}
        status = r.status_code
        message = f"{r.request.method} {r.url} returned {status}"
        detail = self._error_message(r)
        if detail:
            message += f": {detail}"
        if self._is_rate_limited(r):
            raise RateLimitedError(
                message, retry_after=self._retry_after(r), **where
            )
        if status in (401, 403):
            raise AuthError(message, **where)
        if status >= 500:
            raise ServerError(message, status=status, **where)
        raise RegistryResponseError(message, **where)

    def _is_rate_limited(self, r: httpx.Response) -> bool:
        if r.status_code == 429:
            return True
        if r.status_code != 403:
            return False
        return (
            "retry-after" in r.headers
            or r.headers.get("x-ratelimit-remaining") == "0"
        )

    def _retry_after(self, r: httpx.Response) -> float | None:
        """Seconds the registry asked us to wait, if it said."""
        retry_after = r.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
            try:
                when = parsedate_to_datetime(retry_after)
            except (TypeError, ValueError):
                self._logger.warning(
                    f"Unparseable Retry-After header '{retry_after}'"
                )
            else:
                if when.tzinfo is None:
                    when = when.replace(tzinfo=datetime.UTC)
                now = datetime.datetime.now(tz=datetime.UTC)
                return max(0.0, (when - now).total_seconds())
        reset = r.headers.get("x-ratelimit-reset")
        if reset and r.headers.get("x-ratelimit-remaining") == "0":
            try:
                return max(0.0, float(reset) - self._clock())
            except ValueError:
                self._logger.warning(
                    f"Unparseable X-RateLimit-Reset header '{reset}'"
                )
        return None

    def _next_page(self, r: httpx.Response, page: int) -> int | None:
        nxt = r.links.get("next")
        if not nxt or "url" not in nxt:
            return None
        page_param = httpx.URL(nxt["url"]).params.get("page")
        if page_param is None:
            return page + 1
        try:
            return int(page_param)
        except ValueError:
            return page + 1

    @staticmethod
    def _error_message(r: httpx.Response) -> str | None:
        try:
            body = r.json()
        except ValueError:
            return None
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            return body["message"]
        return None
