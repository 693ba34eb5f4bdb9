"""Async REST client for the StudyMate server API."""

import httpx

from studymate.logging_config import get_logger
from studymate.retry import retry_with_backoff
from studymate.storage import AUTH_TOKEN, USER_INFO, LocalFallbackStore

log = get_logger(__name__)

_RETRYABLE = (httpx.ConnectError, httpx.TimeoutException)


class ApiError(Exception):
    """Raised when the StudyMate API is unreachable or returns an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StudyMateClient:
    """Client for ``/api/auth`` and ``/api/tasks``.

    The bearer token is read from the store on every request, so logging in
    from another command is picked up without rebuilding the client.
    """

    def __init__(
        self,
        base_url: str,
        store: LocalFallbackStore,
        api_prefix: str = "/api",
        timeout: float = 10.0,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.client = httpx.AsyncClient(
            base_url=f"{self.base_url}{api_prefix}",
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def _auth_headers(self) -> dict:
        token = self.store.get_auth_token()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _send(self, method: str, path: str, payload: dict | None = None) -> httpx.Response:
        return await self.client.request(method, path, json=payload, headers=self._auth_headers())

    async def _request(self, method: str, path: str, payload: dict | None = None):
        """Send a request and unwrap the ``{"success", "data"}`` envelope."""
        try:
            response = await retry_with_backoff(
                self._send, method, path, payload,
                max_retries=self.max_retries,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                retryable_exceptions=_RETRYABLE,
            )
        except httpx.ConnectError:
            log.error("Cannot connect to StudyMate API (%s %s)", method, path)
            raise ApiError("Cannot connect to the StudyMate server. Check your network.")
        except httpx.TimeoutException:
            log.error("StudyMate API request timed out (%s %s)", method, path)
            raise ApiError("StudyMate server request timed out.")
        except httpx.HTTPError as e:
            log.error("StudyMate API request failed (%s %s): %s", method, path, e)
            raise ApiError(f"Request failed: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            raise ApiError(
                message or f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )

        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    # -- Auth --

    async def register(self, user_data: dict) -> dict:
        data = await self._request("POST", "/auth/register", user_data)
        self._store_session(data)
        return data

    async def login(self, email: str, password: str) -> dict:
        data = await self._request("POST", "/auth/login", {"email": email, "password": password})
        self._store_session(data)
        return data

    def _store_session(self, data) -> None:
        if not isinstance(data, dict) or not data.get("token"):
            return
        self.store.set_auth_token(data["token"])
        if data.get("user"):
            self.store.set_user_info(data["user"])
        log.info("Stored session for %s", (data.get("user") or {}).get("email", "user"))

    def logout(self) -> None:
        self.store.remove(AUTH_TOKEN)
        self.store.remove(USER_INFO)

    async def get_current_user(self) -> dict:
        return await self._request("GET", "/auth/me")

    # -- Tasks --

    async def list_tasks(self) -> list[dict]:
        return await self._request("GET", "/tasks")

    async def get_task(self, task_id: str) -> dict:
        return await self._request("GET", f"/tasks/{task_id}")

    async def create_task(self, task: dict) -> dict:
        return await self._request("POST", "/tasks", task)

    async def update_task(self, task_id: str, updates: dict) -> dict:
        return await self._request("PUT", f"/tasks/{task_id}", updates)

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")

    async def aclose(self) -> None:
        await self.client.aclose()
