"""On-chain staking for newly created tasks (web3.py)."""
import json
import logging
from datetime import timezone
from decimal import Decimal, InvalidOperation

from web3 import Web3

from errors import ExternalServiceError

logger = logging.getLogger(__name__)

DEFAULT_RECEIPT_TIMEOUT = 120

# createTask(uint256 taskId, uint256 deadline) payable; the stake travels as msg.value
TASK_STAKING_ABI = [
    {
        'type': 'function',
        'name': 'createTask',
        'stateMutability': 'payable',
        'inputs': [
            {'name': 'taskId', 'type': 'uint256'},
            {'name': 'deadline', 'type': 'uint256'},
        ],
        'outputs': [],
    },
]


def to_wei(amount):
    """Decimal ether amount (string or Decimal) to integer wei."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"Invalid stake amount: {amount!r}") from e
    return Web3.to_wei(value, 'ether')


def to_epoch_seconds(deadline):
    if deadline is None:
        return 0
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    return int(deadline.timestamp())


def load_abi(path):
    """Read an ABI from a plain ABI file or a compiled Foundry artifact."""
    with open(path, 'r') as f:
        data = json.load(f)
    return data['abi'] if isinstance(data, dict) else data


class Web3Ledger:
    def __init__(self, rpc_url, contract_address, private_key, abi=None,
                 receipt_timeout=DEFAULT_RECEIPT_TIMEOUT, web3=None):
        self.w3 = web3 or Web3(Web3.HTTPProvider(rpc_url))
        self.account = self.w3.eth.account.from_key(private_key)
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=abi or TASK_STAKING_ABI,
        )
        self.receipt_timeout = receipt_timeout

    @classmethod
    def from_config(cls, config):
        abi_path = config.get('LEDGER_ABI_PATH')
        return cls(
            rpc_url=config['LEDGER_RPC_URL'],
            contract_address=config['LEDGER_CONTRACT_ADDRESS'],
            private_key=config['LEDGER_PRIVATE_KEY'],
            abi=load_abi(abi_path) if abi_path else None,
            receipt_timeout=config.get('LEDGER_RECEIPT_TIMEOUT', DEFAULT_RECEIPT_TIMEOUT),
        )

    def is_connected(self):
        try:
            return self.w3.is_connected()
        except Exception as e:
            logger.warning("Ledger connectivity check failed: %s", e)
            return False

    def create_task(self, task_id, stake_wei, deadline_ts):
        """Submit createTask and block until it is mined. Returns the tx hash hex."""
        try:
            tx = self.contract.functions.createTask(task_id, deadline_ts).build_transaction({
                'from': self.account.address,
                'value': stake_wei,
                'nonce': self.w3.eth.get_transaction_count(self.account.address),
                'chainId': self.w3.eth.chain_id,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info("createTask sent | task=%s tx=%s", task_id, Web3.to_hex(tx_hash))
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as e:
            logger.error("createTask failed | task=%s: %s", task_id, e)
            raise ExternalServiceError('Ledger transaction failed') from e

        if receipt['status'] != 1:
            logger.error("createTask reverted | task=%s tx=%s", task_id, Web3.to_hex(tx_hash))
            raise ExternalServiceError('Ledger transaction reverted')

        logger.info("createTask confirmed | task=%s block=%s", task_id, receipt['blockNumber'])
        return Web3.to_hex(tx_hash)
