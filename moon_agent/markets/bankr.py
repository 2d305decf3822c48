"""
Bankr managed-wallet trading.

Swaps are submitted as natural-language jobs and executed on Bankr's side,
so no key ever touches this process. A job is polled at a fixed interval
until it finishes or the wall-clock budget runs out.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests

from moon_agent.config import require_env
from moon_agent.console import log
from moon_agent.errors import UpstreamError


DONE_STATUSES = ("completed", "success", "done")
FAILED_STATUSES = ("failed", "error")


@dataclass
class JobResult:
    success: bool
    job_id: str
    status: str = ""
    error: Optional[str] = None
    tx_hash: Optional[str] = None
    raw: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "job_id": self.job_id,
            "status": self.status,
            "error": self.error,
            "tx_hash": self.tx_hash,
            "response": self.raw.get("response") or self.raw.get("message"),
        }


def _chain_name(chain: str) -> str:
    return "Solana" if chain == "sol" else "Base"


def build_buy_prompt(chain: str, token: str, amount, slippage_pct: float = 5) -> str:
    native = "SOL" if chain == "sol" else "ETH"
    return f"Buy {amount} {native} worth of token {token} on {_chain_name(chain)} with {slippage_pct}% slippage"


def build_sell_prompt(chain: str, token: str, amount, slippage_pct: float = 5) -> str:
    if amount in ("all", "100%"):
        return f"Sell all of token {token} on {_chain_name(chain)} with {slippage_pct}% slippage"
    return f"Sell {amount} of token {token} on {_chain_name(chain)} with {slippage_pct}% slippage"


class BankrClient:
    def __init__(self, config, sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.session = requests.Session()
        self._sleep = sleep
        self._clock = clock

    @property
    def headers(self) -> dict:
        key = self.config.bankr.api_key or require_env(
            "BANKR_API_KEY", "Required for buy/sell. Get one at https://bankr.fyi",
        )
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-API-Key": key,
        }

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self.session.request(
                method, f"{self.config.bankr.api_url}{path}",
                headers=self.headers, timeout=30, **kwargs,
            )
        except requests.RequestException as e:
            raise UpstreamError("Bankr", None, str(e))
        if not response.ok:
            raise UpstreamError("Bankr", response.status_code, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("Bankr", response.status_code, f"malformed JSON: {e}")

    def submit_job(self, prompt: str) -> str:
        data = self._request("POST", "/agent/prompt", json={"prompt": prompt})
        job_id = data.get("jobId") or data.get("id") or data.get("job_id")
        if not job_id:
            raise UpstreamError("Bankr", None, "job submission returned no job id")
        return str(job_id)

    def poll_job(self, job_id: str, timeout: Optional[float] = None) -> JobResult:
        """Sleep-and-retry until the job finishes. Never blocks past ``timeout``."""
        timeout = self.config.bankr.poll_timeout if timeout is None else timeout
        interval = self.config.bankr.poll_interval
        start = self._clock()

        while self._clock() - start < timeout:
            data = self._request("GET", f"/agent/job/{job_id}")
            status = str(data.get("status") or "").lower()

            if status in DONE_STATUSES:
                return JobResult(
                    success=True, job_id=job_id, status=status,
                    tx_hash=data.get("txHash") or data.get("transactionHash"),
                    raw=data,
                )
            if status in FAILED_STATUSES:
                return JobResult(
                    success=False, job_id=job_id, status=status,
                    error=data.get("error") or data.get("message") or "Job failed",
                    raw=data,
                )

            log("Bankr", f"job {job_id} {status or 'pending'}, waiting {interval:.0f}s")
            self._sleep(interval)

        return JobResult(
            success=False, job_id=job_id, status="timed_out",
            error=f"Job timed out after {timeout:.0f}s",
        )

    def execute_prompt(self, prompt: str) -> JobResult:
        return self.poll_job(self.submit_job(prompt))
