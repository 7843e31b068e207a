import logging

from web3 import Web3
from web3.exceptions import Web3Exception

from .data_models import SessionStartedEvent

logger = logging.getLogger(__name__)

# RPC transport failures (requests, sockets) are OSError subclasses
LEDGER_ERRORS = (Web3Exception, OSError)

SESSION_STARTED_ABI = [
    {
        "anonymous": False,
        "name": "SessionStarted",
        "type": "event",
        "inputs": [
            {"indexed": False, "name": "sessionId", "type": "uint256"},
            {"indexed": False, "name": "networkId", "type": "uint256"},
            {"indexed": False, "name": "guest", "type": "address"},
            {"indexed": False, "name": "duration", "type": "uint256"},
            {"indexed": False, "name": "amount", "type": "uint256"},
            {"indexed": False, "name": "expiry", "type": "uint256"},
        ],
    }
]


def parse_session_started(log) -> SessionStartedEvent:
    args = log["args"]
    return SessionStartedEvent(
        session_id=str(args["sessionId"]),
        network_id=str(args["networkId"]),
        guest=str(args["guest"]).lower(),
        duration=int(args["duration"]),
        amount=int(args["amount"]),
        expiry=int(args["expiry"]),
        block_number=int(log["blockNumber"]),
    )


class LedgerClient:
    """Read-only view of the payment contract's SessionStarted log."""

    def __init__(self, rpc_url: str, contract_address: str):
        self.w3 = Web3(Web3.HTTPProvider(rpc_url))
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=SESSION_STARTED_ABI,
        )

    def block_number(self) -> int:
        return self.w3.eth.block_number

    def session_started_events(self, from_block: int, to_block: int) -> list[SessionStartedEvent]:
        logger.debug("Querying SessionStarted logs %s..%s", from_block, to_block)
        logs = self.contract.events.SessionStarted.get_logs(from_block=from_block, to_block=to_block)
        return [parse_session_started(log) for log in logs]
