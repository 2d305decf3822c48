import pytest

from moon_agent.config import BankrConfig, MoonConfig
from moon_agent.errors import PreconditionError, UpstreamError
from moon_agent.markets.bankr import BankrClient, build_buy_prompt, build_sell_prompt


class FakeResponse:
    def __init__(self, data, status=200):
        self.data = data
        self.status_code = status
        self.ok = status < 400
        self.text = str(data)

    def json(self):
        return self.data


class FakeHTTP:
    """Answers POST with a job id and each GET with the next queued status."""

    def __init__(self, statuses, submit_status=200):
        self.statuses = list(statuses)
        self.submit_status = submit_status
        self.calls = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.calls.append((method, url, headers))
        if method == "POST":
            return FakeResponse({"jobId": "job_42"}, self.submit_status)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return FakeResponse({"status": status, "txHash": "0xabc", "response": "Swapped"})


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_client(monkeypatch, clock, statuses, submit_status=200):
    monkeypatch.setenv("BANKR_API_KEY", "bk_test")
    client = BankrClient(MoonConfig(), sleep=clock.sleep, clock=clock)
    client.session = FakeHTTP(statuses, submit_status)
    return client


class TestPolling:
    def test_completes_after_pending(self, monkeypatch, clock):
        client = make_client(monkeypatch, clock, ["pending", "processing", "completed"])
        result = client.execute_prompt("Buy 0.1 SOL worth of token X on Solana")
        assert result.success is True
        assert result.job_id == "job_42"
        assert result.tx_hash == "0xabc"
        assert clock.sleeps == [2.0, 2.0]
        assert result.to_dict()["response"] == "Swapped"

    def test_failed_job(self, monkeypatch, clock):
        client = make_client(monkeypatch, clock, ["failed"])
        result = client.execute_prompt("Sell all of token X on Base")
        assert result.success is False
        assert result.status == "failed"

    def test_times_out_after_sixty_seconds(self, monkeypatch, clock):
        client = make_client(monkeypatch, clock, ["pending"])
        result = client.execute_prompt("Buy")
        assert result.success is False
        assert result.status == "timed_out"
        assert clock.now == 60.0
        assert len(clock.sleeps) == 30

    def test_api_key_header(self, monkeypatch, clock):
        client = make_client(monkeypatch, clock, ["completed"])
        client.execute_prompt("Buy")
        assert client.session.calls[0][2]["X-API-Key"] == "bk_test"

    def test_submit_error(self, monkeypatch, clock):
        client = make_client(monkeypatch, clock, ["completed"], submit_status=500)
        with pytest.raises(UpstreamError) as exc:
            client.execute_prompt("Buy")
        assert exc.value.status == 500

    def test_configured_key_is_preferred(self, clock):
        config = MoonConfig(bankr=BankrConfig(api_key="bk_config"))
        client = BankrClient(config, sleep=clock.sleep, clock=clock)
        client.session = FakeHTTP(["completed"])
        client.execute_prompt("Buy")
        assert client.session.calls[0][2]["X-API-Key"] == "bk_config"

    def test_missing_key(self, clock):
        client = BankrClient(MoonConfig(), sleep=clock.sleep, clock=clock)
        with pytest.raises(PreconditionError) as exc:
            client.execute_prompt("Buy")
        assert exc.value.variable == "BANKR_API_KEY"


class TestPrompts:
    def test_buy(self):
        assert build_buy_prompt("base", "0xtoken", 0.01) == \
            "Buy 0.01 ETH worth of token 0xtoken on Base with 5% slippage"

    def test_sell_all(self):
        assert build_sell_prompt("sol", "Mint", "all", 3) == "Sell all of token Mint on Solana with 3% slippage"

    def test_sell_amount(self):
        assert build_sell_prompt("sol", "Mint", 1000.0) == "Sell 1000.0 of token Mint on Solana with 5% slippage"
