"""
Dropbox origin store client.

A small aiohttp client for the handful of Dropbox v2 endpoints the pipeline
uses: folder listing with cursors, content download, and temporary links for
streaming large files without buffering them in memory.

Example:
    ```python
    async with DropboxClient(app_key, app_secret, refresh_token) as dropbox:
        page = await dropbox.list_folder("/0 US/alice", recursive=True)
        while page.has_more:
            page = await dropbox.list_folder_continue(page.cursor)
    ```
"""

import asyncio
import json
import time
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from mediamirror.exceptions import OriginError
from mediamirror.origin.base import DownloadResult, ListResult, RemoteEntry
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.origin.dropbox")

API_URL = "https://api.dropboxapi.com"
CONTENT_URL = "https://content.dropboxapi.com"
TOKEN_PATH = "/oauth2/token"

DEFAULT_CHUNK_SIZE = 1024 * 1024

# Statuses worth redelivering; anything else non-2xx is still an OriginError,
# but the message says so
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})

# Bodies with these types are API error documents, never file content
NON_CONTENT_TYPES = ("application/json", "text/html")


class DropboxClient:
    """
    Dropbox API client with refresh-token authentication.

    The access token is fetched lazily and refreshed once when a call comes
    back 401. Sessions are shared across concurrent `async with` blocks and
    closed when the last one exits.
    """

    def __init__(
        self,
        app_key: str,
        app_secret: str,
        refresh_token: str,
        *,
        timeout: int = 120,
        api_url: str = API_URL,
        content_url: str = CONTENT_URL,
    ):
        """
        Initialize Dropbox client.

        Args:
            app_key: Dropbox app key (OAuth client id)
            app_secret: Dropbox app secret
            refresh_token: Long-lived offline refresh token
            timeout: Timeout in seconds for RPC calls and whole-file downloads
            api_url: RPC endpoint base (overridable for tests)
            content_url: Content endpoint base (overridable for tests)
        """
        self.app_key = app_key
        self.app_secret = app_secret
        self.refresh_token = refresh_token
        self.api_url = api_url.rstrip("/")
        self.content_url = content_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

        self.session: aiohttp.ClientSession | None = None
        self._access_token: str | None = None
        self._token_expires_at = 0.0
        self._session_lock = asyncio.Lock()
        self._token_lock = asyncio.Lock()
        self._session_refcount = 0

    async def _ensure_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self.session is None or self.session.closed:
                self.session = aiohttp.ClientSession(timeout=self.timeout)
            return self.session

    async def __aenter__(self) -> "DropboxClient":
        await self._ensure_session()
        async with self._session_lock:
            self._session_refcount += 1
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        async with self._session_lock:
            self._session_refcount -= 1
            if self._session_refcount <= 0 and self.session and not self.session.closed:
                await self.session.close()
                self.session = None

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    # -- authentication -------------------------------------------------------

    async def _get_access_token(self, *, force: bool = False) -> str:
        async with self._token_lock:
            if not force and self._access_token and time.monotonic() < self._token_expires_at:
                return self._access_token

            session = await self._ensure_session()
            data = {
                "grant_type": "refresh_token",
                "refresh_token": self.refresh_token,
                "client_id": self.app_key,
                "client_secret": self.app_secret,
            }
            try:
                async with session.post(f"{self.api_url}{TOKEN_PATH}", data=data) as resp:
                    if resp.status != 200:
                        body = await resp.text()
                        raise OriginError(
                            f"Dropbox token refresh failed ({resp.status}): {body[:200]}",
                            status=resp.status,
                            endpoint=TOKEN_PATH,
                        )
                    payload = await resp.json()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise OriginError(f"Dropbox token refresh failed: {e}", endpoint=TOKEN_PATH) from e

            self._access_token = payload["access_token"]
            # Refresh a minute early so long passes never send an expired token
            self._token_expires_at = time.monotonic() + max(int(payload.get("expires_in", 14400)) - 60, 0)
            logger.debug("Refreshed Dropbox access token")
            return self._access_token

    # -- transport ------------------------------------------------------------

    async def _rpc(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON RPC call, refreshing the token once on 401."""
        session = await self._ensure_session()
        url = f"{self.api_url}/2{endpoint}"

        for attempt in range(2):
            token = await self._get_access_token(force=attempt > 0)
            try:
                async with session.post(url, json=body, headers={"Authorization": f"Bearer {token}"}) as resp:
                    if resp.status == 401 and attempt == 0:
                        logger.debug(f"Dropbox {endpoint} returned 401, refreshing token")
                        continue
                    if resp.status != 200:
                        raise await _status_error(resp, endpoint)
                    return await resp.json()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise OriginError(f"Dropbox {endpoint} request failed: {e}", endpoint=endpoint) from e

        raise OriginError(f"Dropbox {endpoint} unauthorized after token refresh", status=401, endpoint=endpoint)

    # -- operations -----------------------------------------------------------

    async def list_folder(self, path: str, *, recursive: bool = True) -> ListResult:
        """List a folder from the beginning."""
        payload = await self._rpc(
            "/files/list_folder",
            {"path": path, "recursive": recursive, "include_non_downloadable_files": False},
        )
        return _list_result(payload)

    async def list_folder_continue(self, cursor: str) -> ListResult:
        """Fetch the next page, or the changes since `cursor` was issued."""
        payload = await self._rpc("/files/list_folder/continue", {"cursor": cursor})
        return _list_result(payload)

    async def get_temporary_link(self, remote_id: str) -> str:
        """Short-lived direct URL for a file's content."""
        payload = await self._rpc("/files/get_temporary_link", {"path": remote_id})
        link = payload.get("link")
        if not link:
            raise OriginError(f"Dropbox returned no temporary link for {remote_id}", endpoint="/files/get_temporary_link")
        return link

    async def download(self, remote_id: str) -> DownloadResult:
        """
        Download a whole file into memory.

        Only meant for images; videos go through get_temporary_link() and
        stream_url().
        """
        endpoint = "/files/download"
        session = await self._ensure_session()
        url = f"{self.content_url}/2{endpoint}"

        for attempt in range(2):
            token = await self._get_access_token(force=attempt > 0)
            headers = {
                "Authorization": f"Bearer {token}",
                "Dropbox-API-Arg": json.dumps({"path": remote_id}),
            }
            try:
                async with session.post(url, headers=headers) as resp:
                    if resp.status == 401 and attempt == 0:
                        continue
                    if resp.status != 200:
                        raise await _status_error(resp, endpoint)

                    metadata = _parse_api_result(resp.headers.get("Dropbox-API-Result"))
                    content_type = resp.headers.get("Content-Type", "")
                    if content_type.startswith(NON_CONTENT_TYPES):
                        return DownloadResult.unsupported(remote_id, f"unexpected content type {content_type}")
                    return DownloadResult.ok(remote_id, await resp.read(), metadata)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise OriginError(f"Dropbox download of {remote_id} failed: {e}", endpoint=endpoint) from e

        raise OriginError("Dropbox download unauthorized after token refresh", status=401, endpoint=endpoint)

    async def stream_url(self, url: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """
        Stream the body of a temporary link.

        No total timeout applies, since originals can be many gigabytes; a
        stalled read still fails after the per-read timeout.
        """
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=120)
        try:
            async with session.get(url, timeout=timeout) as resp:
                if resp.status != 200:
                    raise OriginError(
                        f"Failed to fetch temporary link ({resp.status})",
                        status=resp.status,
                        endpoint="temporary_link",
                    )
                async for chunk in resp.content.iter_chunked(chunk_size):
                    yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise OriginError(f"Streaming temporary link failed: {e}", endpoint="temporary_link") from e


def _list_result(payload: dict[str, Any]) -> ListResult:
    return ListResult(
        entries=[RemoteEntry.from_api(record) for record in payload.get("entries", [])],
        cursor=payload["cursor"],
        has_more=bool(payload.get("has_more", False)),
    )


def _parse_api_result(header: str | None) -> dict[str, Any]:
    if not header:
        return {}
    try:
        return json.loads(header)
    except ValueError:
        logger.debug(f"Ignoring unparseable Dropbox-API-Result header: {header[:100]}")
        return {}


async def _status_error(resp: aiohttp.ClientResponse, endpoint: str) -> OriginError:
    body = await resp.text()
    summary = body[:200]
    if resp.status == 409:
        # Endpoint-specific error, e.g. path/not_found or reset (expired cursor)
        try:
            summary = json.loads(body).get("error_summary", summary)
        except ValueError:
            pass
    kind = "transient" if resp.status in RETRYABLE_STATUSES else "error"
    return OriginError(f"Dropbox {endpoint} {kind} ({resp.status}): {summary}", status=resp.status, endpoint=endpoint)
