from .json_rpc_client import (
    MoveFunctions as MoveFunctions,
    SuiJsonRpcClient as SuiJsonRpcClient,
)
