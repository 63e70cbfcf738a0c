from .faucet_client import FaucetClient as FaucetClient
from .ledger_client import LedgerClient as LedgerClient
from .object_id import parse_object_id as parse_object_id
