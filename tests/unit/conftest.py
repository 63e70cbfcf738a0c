import pytest

from tests.unit.fakes import FakeFaucetClient, FakeLedgerClient


@pytest.fixture
def ledger_client() -> FakeLedgerClient:
    return FakeLedgerClient()


@pytest.fixture
def faucet_client(ledger_client: FakeLedgerClient) -> FakeFaucetClient:
    return FakeFaucetClient(ledger_client)
