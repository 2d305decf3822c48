import json

import pytest
from py_clob_client.clob_types import ApiCreds, AssetType
from py_clob_client.exceptions import PolyApiException

from moon_agent.config import MoonConfig, PolymarketConfig
from moon_agent.errors import PreconditionError, UpstreamError
from moon_agent.markets.polymarket import PolymarketMarket, PolymarketSession


TEST_KEY = "0x" + "11" * 32


def poly_config(private_key=TEST_KEY):
    return MoonConfig(polymarket=PolymarketConfig(private_key=private_key))


def api_error(status):
    error = PolyApiException(error_msg="request rejected")
    error.status_code = status
    return error


class FakeClobFactory:
    """Builds fake CLOB clients; calls answer from one shared response queue."""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.clients = []
        self.derivations = 0
        self.balance_params = None

    def __call__(self, host, key=None, chain_id=None, creds=None):
        client = FakeClob(self, host, key, chain_id, creds)
        self.clients.append(client)
        return client


class FakeClob:
    def __init__(self, factory, host, key, chain_id, creds):
        self.factory = factory
        self.host = host
        self.key = key
        self.chain_id = chain_id
        self.creds = creds

    def create_or_derive_api_creds(self):
        self.factory.derivations += 1
        n = self.factory.derivations
        return ApiCreds(api_key=f"key{n}", api_secret=f"secret{n}", api_passphrase=f"pass{n}")

    def _next(self):
        response = self.factory.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get_orders(self):
        return self._next()

    def get_trades(self):
        return self._next()

    def get_balance_allowance(self, params):
        self.factory.balance_params = params
        return self._next()


@pytest.fixture
def creds_path(tmp_path):
    return tmp_path / "polymarket-creds.json"


def make_session(creds_path, responses=(), **config):
    factory = FakeClobFactory(responses)
    return PolymarketSession(poly_config(**config), creds_path, client_factory=factory), factory


class TestMarketParsing:
    def test_from_gamma_decodes_string_lists(self):
        m = PolymarketMarket.from_gamma({
            "conditionId": "0xc",
            "question": "Q?",
            "outcomePrices": '["0.62", "0.38"]',
            "clobTokenIds": '["111", "222"]',
            "closed": False,
            "active": True,
            "volume": "1234.5",
            "liquidity": "800",
        }, {"title": "Event", "negRisk": True})
        assert m.yes_price == pytest.approx(0.62)
        assert m.token_for("no") == "222"
        assert m.neg_risk is True
        assert m.event_title == "Event"
        assert m.liquidity == 800.0

    def test_from_clob(self):
        m = PolymarketMarket.from_clob({
            "condition_id": "0xc",
            "question": "Q?",
            "tokens": [
                {"outcome": "Yes", "price": 0.99, "token_id": "y"},
                {"outcome": "No", "price": 0.01, "token_id": "n"},
            ],
            "closed": True,
        })
        assert m.closed is True
        assert m.price_for("YES") == pytest.approx(0.99)
        assert m.clob_token_ids == ["y", "n"]


class TestCredentials:
    def test_address_from_private_key(self, creds_path):
        session, _ = make_session(creds_path)
        assert session.address.startswith("0x")
        assert len(session.address) == 42

    def test_missing_private_key(self, creds_path):
        session, factory = make_session(creds_path, private_key="")
        with pytest.raises(PreconditionError) as exc:
            session.creds
        assert exc.value.variable == "POLYMARKET_PRIVATE_KEY"
        assert factory.derivations == 0

    def test_derived_once_and_cached_on_disk(self, creds_path):
        session, factory = make_session(creds_path, [[{"id": "o1"}]])
        session.get_open_orders()
        assert factory.derivations == 1
        assert json.loads(creds_path.read_text())["api_key"] == "key1"

        client = factory.clients[-1]
        assert client.creds.api_key == "key1"
        assert client.chain_id == 137
        assert client.host == "https://clob.polymarket.com"

    def test_cached_creds_skip_derivation(self, creds_path):
        creds_path.write_text(json.dumps({
            "api_key": "cached", "api_secret": "s", "api_passphrase": "p",
        }))
        session, factory = make_session(creds_path, [[]])
        session.get_open_orders()
        assert factory.derivations == 0
        assert factory.clients[0].creds.api_key == "cached"

    def test_invalidate_drops_memory_and_disk(self, creds_path):
        session, _ = make_session(creds_path)
        assert session.creds.api_key == "key1"
        session.invalidate()
        assert not creds_path.exists()
        assert session._creds is None
        assert session._client is None


class TestAuthRetry:
    def test_rederives_once_on_auth_failure(self, creds_path):
        session, factory = make_session(creds_path, [api_error(401), {"data": [{"id": "order1"}]}])
        assert session.get_open_orders() == [{"id": "order1"}]
        assert factory.derivations == 2
        assert json.loads(creds_path.read_text())["api_key"] == "key2"

    def test_second_auth_failure_propagates(self, creds_path):
        session, _ = make_session(creds_path, [api_error(403), api_error(403)])
        with pytest.raises(UpstreamError) as exc:
            session.get_open_orders()
        assert exc.value.status == 403

    def test_other_errors_are_not_retried(self, creds_path):
        session, factory = make_session(creds_path, [api_error(500), []])
        with pytest.raises(UpstreamError) as exc:
            session.get_open_orders()
        assert exc.value.status == 500
        assert len(factory.responses) == 1

    def test_non_json_body_is_an_upstream_error(self, creds_path):
        session, _ = make_session(creds_path, ["<html>502 Bad Gateway</html>"])
        with pytest.raises(UpstreamError) as exc:
            session.get_trades()
        assert "malformed JSON" in str(exc.value)


class TestAccountQueries:
    def test_trades_are_limited(self, creds_path):
        session, _ = make_session(creds_path, [[{"id": i} for i in range(30)]])
        assert len(session.get_trades(limit=5)) == 5

    def test_collateral_balance(self, creds_path):
        session, factory = make_session(creds_path, [{"balance": "5000000", "allowance": "0"}])
        assert session.get_collateral()["balance"] == "5000000"
        assert factory.balance_params.asset_type == AssetType.COLLATERAL
