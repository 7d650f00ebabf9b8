"""Archival of committed rounds to an external snippet store.

Archiving is best-effort: a failure leaves the round without a receipt and
the ledger marks it LOCAL_ONLY.
"""

from typing import Protocol, runtime_checkable

import httpx
import structlog

from gotme.core.contract import Contract
from gotme.core.errors import PersistenceError
from gotme.core.session import Round
from gotme.core.types import Result

log = structlog.get_logger()

DEFAULT_ARCHIVE_URL = "http://localhost:1000"


@runtime_checkable
class ArchivalService(Protocol):
    """Stores a round and hands back an opaque receipt id."""

    enabled: bool

    async def archive(self, round_: Round, contract: Contract) -> Result[str, PersistenceError]: ...

    async def check_reachable(self) -> bool: ...


def render_round_snippet(round_: Round, contract: Contract) -> str:
    """Markdown body stored for one round."""
    contributions = "\n".join(
        f"#### {run.display_name} ({run.model_class})\n{run.response}\n" for run in round_.runs
    )
    return f"""# GOTME Evolution Round {round_.round_number}
## Topic: {contract.topic}
## Timestamp: {round_.timestamp.isoformat()}

### Synthesis
{round_.synthesis}

### Individual Partner Contributions
{contributions}
---
Metadata:
- Convergence Chars: {round_.synthesis_char_count}
- Partner Count: {len(round_.runs)}
- IAT Signature: {round_.iat_signature}
"""


class NullArchive:
    """Archival disabled: every round stays local."""

    enabled = False

    async def archive(self, round_: Round, contract: Contract) -> Result[str, PersistenceError]:
        return Result.err(PersistenceError("Archival is disabled", operation="archive"))

    async def check_reachable(self) -> bool:
        return False


class HttpArchive:
    """Archive rounds to an HTTP snippet service.

    ``POST /assets`` with ``{"name", "content", "metadata"}`` must answer
    with JSON carrying an ``id``; ``GET /health`` is the reachability probe.

    Args:
        base_url: Root URL of the service.
        probe_timeout: Seconds allowed for the reachability probe.
        request_timeout: Seconds allowed for one archive request.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    enabled = True

    def __init__(
        self,
        base_url: str = DEFAULT_ARCHIVE_URL,
        *,
        probe_timeout: float = 2.0,
        request_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._probe_timeout = probe_timeout
        self._request_timeout = request_timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
        )

    async def check_reachable(self) -> bool:
        try:
            async with self._client(self._probe_timeout) as client:
                response = await client.get("/health")
        except httpx.HTTPError as e:
            log.debug("archive.service.probe_failed", base_url=self._base_url, error=str(e))
            return False
        return response.status_code == 200

    async def archive(self, round_: Round, contract: Contract) -> Result[str, PersistenceError]:
        payload = {
            "name": f"GOTME Round {round_.round_number}: {contract.topic}",
            "content": render_round_snippet(round_, contract),
            "metadata": {
                "round_number": round_.round_number,
                "iat_signature": round_.iat_signature,
                "char_count": round_.synthesis_char_count,
            },
        }
        try:
            async with self._client(self._request_timeout) as client:
                response = await client.post("/assets", json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return Result.err(
                PersistenceError(
                    f"Archive request failed: {e}",
                    operation="archive",
                    path=f"{self._base_url}/assets",
                    details={"original_exception": type(e).__name__},
                )
            )

        asset_id = data.get("id") if isinstance(data, dict) else None
        if not asset_id:
            return Result.err(
                PersistenceError(
                    "Archive response carried no asset id",
                    operation="archive",
                    path=f"{self._base_url}/assets",
                )
            )
        log.debug("archive.round.stored", round=round_.round_number, archive_id=asset_id)
        return Result.ok(str(asset_id))
