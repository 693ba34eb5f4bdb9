"""Server health probe and diagnostic report types."""

from dataclasses import dataclass, field

import httpx

from studymate.logging_config import get_logger

log = get_logger(__name__)

DEFAULT_TIMEOUT = 5.0


@dataclass
class CheckResult:
    name: str
    status: str  # "pass", "fail", "warn"
    detail: str = ""


@dataclass
class HealthReport:
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def has_critical_failure(self) -> bool:
        return any(c.status == "fail" for c in self.checks)

    def summary_lines(self) -> list[str]:
        lines = []
        for c in self.checks:
            icon = {"pass": "[green]PASS[/green]", "fail": "[red]FAIL[/red]", "warn": "[yellow]WARN[/yellow]"}
            lines.append(f"  {icon.get(c.status, c.status):>20s}  {c.name}: {c.detail}")
        return lines


class HealthProbe:
    """One bounded GET against the server's health endpoint.

    Calling the probe returns True only for a 2xx response whose JSON body
    has ``"status": "ok"``. Every failure mode (timeout, transport error,
    bad status code, unexpected body) returns False; nothing is raised.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT,
                 client: httpx.AsyncClient | None = None):
        self.url = url
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
        )

    async def __call__(self) -> bool:
        try:
            response = await self.client.get(
                self.url,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            log.warning("Health check timed out after %.1fs", self.timeout)
            return False
        except httpx.HTTPError as e:
            log.warning("Health check failed: %s", e)
            return False

        if not response.is_success:
            log.warning("Health check returned HTTP %d", response.status_code)
            return False

        try:
            data = response.json()
        except ValueError:
            log.warning("Health check returned a non-JSON body")
            return False

        return isinstance(data, dict) and data.get("status") == "ok"

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
