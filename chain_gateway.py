"""
Thin JSON-RPC gateway to the chain. Single-shot calls, no retries.

Receipts come back as plain Receipt/Log values with hex-string topics so the
rest of the service never touches web3's AttributeDict/HexBytes types.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from web3 import Web3
from web3.datastructures import AttributeDict
from web3.exceptions import TransactionNotFound, Web3Exception

from errors import TransportError

logger = logging.getLogger(__name__)

ZERO_HASH = '0x' + '00' * 32


def to_hex(value) -> str:
    """Normalise bytes/HexBytes/str to a lowercase 0x-prefixed hex string."""
    if value is None:
        return '0x'
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value).lower()
    value = str(value).lower()
    return value if value.startswith('0x') else '0x' + value


@dataclass
class Log:
    address: str
    topics: List[str]
    data: str = '0x'
    log_index: int = 0
    block_number: Optional[int] = None
    tx_hash: Optional[str] = None
    block_hash: Optional[str] = None
    transaction_index: int = 0

    def to_web3(self):
        """Rebuild the log entry shape web3's event processing expects."""
        return AttributeDict({
            'address': Web3.to_checksum_address(self.address),
            'topics': [Web3.to_bytes(hexstr=t) for t in self.topics],
            'data': Web3.to_bytes(hexstr=self.data or '0x'),
            'logIndex': self.log_index,
            'transactionIndex': self.transaction_index,
            'transactionHash': Web3.to_bytes(hexstr=self.tx_hash or ZERO_HASH),
            'blockHash': Web3.to_bytes(hexstr=self.block_hash or ZERO_HASH),
            'blockNumber': self.block_number or 0,
        })

    def to_dict(self):
        return {
            'index': self.log_index,
            'address': self.address,
            'topics': list(self.topics),
            'data': self.data,
        }


@dataclass
class Receipt:
    tx_hash: str
    block_number: Optional[int]
    status: str
    logs: List[Log] = field(default_factory=list)

    SUCCESS = 'success'
    FAILURE = 'failure'

    @property
    def succeeded(self):
        return self.status == self.SUCCESS


def receipt_from_web3(raw) -> Receipt:
    tx_hash = to_hex(raw['transactionHash'])
    block_hash = to_hex(raw['blockHash']) if raw.get('blockHash') is not None else None
    logs = []
    for entry in raw.get('logs') or []:
        logs.append(Log(
            address=str(entry['address']),
            topics=[to_hex(t) for t in entry.get('topics') or []],
            data=to_hex(entry.get('data')),
            log_index=int(entry.get('logIndex') or 0),
            block_number=entry.get('blockNumber', raw.get('blockNumber')),
            tx_hash=tx_hash,
            block_hash=block_hash,
            transaction_index=int(entry.get('transactionIndex') or 0),
        ))
    status = Receipt.SUCCESS if raw.get('status') == 1 else Receipt.FAILURE
    return Receipt(
        tx_hash=tx_hash,
        block_number=raw.get('blockNumber'),
        status=status,
        logs=logs,
    )


class ChainGateway:
    def __init__(self, rpc_url, timeout=10.0, web3=None):
        self.rpc_url = rpc_url
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': timeout}))

    def get_transaction_receipt(self, tx_hash) -> Optional[Receipt]:
        try:
            raw = self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except (requests.exceptions.RequestException, Web3Exception, ValueError) as e:
            raise TransportError(f'eth_getTransactionReceipt failed for {tx_hash}: {e}') from e
        if raw is None:
            return None
        try:
            return receipt_from_web3(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f'Malformed receipt for {tx_hash}: {e}') from e

    def get_block_number(self) -> int:
        try:
            return int(self.web3.eth.block_number)
        except (requests.exceptions.RequestException, Web3Exception, ValueError, TypeError) as e:
            raise TransportError(f'eth_blockNumber failed: {e}') from e

    def call(self, contract_address, function_selector) -> bytes:
        tx = {
            'to': Web3.to_checksum_address(contract_address),
            'data': function_selector,
        }
        try:
            result = self.web3.eth.call(tx)
        except (requests.exceptions.RequestException, Web3Exception, ValueError) as e:
            raise TransportError(f'eth_call {function_selector} on {contract_address} failed: {e}') from e
        return bytes(result)
