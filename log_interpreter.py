"""
Token id extraction from mint transaction receipts.

Tiers, first hit wins:
  1. structured decode of a Transfer(from=0x0) log through the contract event ABI
  2. manual topic parsing of the same log shape when the ABI decode rejects it
  3. totalSupply() when the receipt is only a few blocks old (heuristic)
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from eth_abi.exceptions import DecodingError
from web3 import Web3
from web3.exceptions import Web3Exception

from errors import TransportError

logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = '0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef'
# keccak256("totalSupply()")[:4]
TOTAL_SUPPLY_SELECTOR = '0x18160ddd'
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'

TRANSFER_EVENT_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "from", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "to", "type": "address"},
            {"indexed": True, "internalType": "uint256", "name": "tokenId", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    }
]

EXACT = 'exact'
HEURISTIC = 'heuristic'

SOURCE_TRANSFER_EVENT = 'transfer-event'
SOURCE_MANUAL_TOPICS = 'manual-topics'
SOURCE_TOTAL_SUPPLY = 'total-supply'

DECODE_ERRORS = (Web3Exception, DecodingError, KeyError, IndexError, TypeError, ValueError)


@dataclass
class Interpretation:
    token_id: Optional[int] = None
    confidence: Optional[str] = None
    source: Optional[str] = None
    log_index: Optional[int] = None
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    total_supply: Optional[int] = None
    notes: List[str] = field(default_factory=list)

    @property
    def resolved(self):
        return self.token_id is not None


def topic_to_int(topic):
    return int(topic, 16)


def is_zero_topic(topic):
    try:
        return topic_to_int(topic) == 0
    except (TypeError, ValueError):
        return False


def describe_topic(topic):
    """Best-effort readings of a 32-byte topic for diagnostics."""
    try:
        value = topic_to_int(topic)
    except (TypeError, ValueError):
        return f'Could not decode: {topic}'
    body = topic[2:] if topic.startswith('0x') else topic
    if len(body) == 64 and body[:24] == '0' * 24 and value != 0 and value.bit_length() > 64:
        return f'Possible address: 0x{body[24:]}'
    return f'BigInt: {value}'


class LogInterpreter:
    def __init__(self, contract_address, gateway=None, supply_heuristic=True,
                 recency_blocks=10, signature_topic=TRANSFER_TOPIC):
        self.contract_address = contract_address.lower()
        self.gateway = gateway
        self.supply_heuristic = supply_heuristic
        self.recency_blocks = recency_blocks
        self.signature_topic = signature_topic.lower()
        self._transfer_event = Web3().eth.contract(abi=TRANSFER_EVENT_ABI).events.Transfer()

    def contract_logs(self, receipt):
        return [log for log in receipt.logs if log.address.lower() == self.contract_address]

    def is_signature_match(self, log):
        return bool(log.topics) and log.topics[0].lower() == self.signature_topic

    def decode_structured(self, log):
        """Decode through the ABI. Returns (from, to, tokenId); raises on mismatch."""
        event = self._transfer_event.process_log(log.to_web3())
        args = event['args']
        return args['from'], args['to'], int(args['tokenId'])

    def decode_manual(self, log):
        """Read the mint shape straight off the topics. None unless from is zero."""
        if len(log.topics) < 4 or not is_zero_topic(log.topics[1]):
            return None
        return topic_to_int(log.topics[3])

    def interpret_logs(self, receipt) -> Interpretation:
        """Exact tiers only. Never touches the network."""
        result = Interpretation()
        if not receipt.succeeded:
            result.notes.append('Receipt status is failure; skipping extraction')
            return result

        for log in self.contract_logs(receipt):
            if not self.is_signature_match(log):
                continue
            candidate = {'logIndex': log.log_index, 'topics': list(log.topics)}
            result.candidates.append(candidate)

            try:
                from_addr, to_addr, token_id = self.decode_structured(log)
            except DECODE_ERRORS as e:
                candidate['decodeError'] = str(e)
                candidate['manuallyParsed'] = True
                token_id = self.decode_manual(log)
                if token_id is not None:
                    candidate['tokenId'] = str(token_id)
                    candidate['isMint'] = True
                    logger.debug(f'Manual topic parse found token {token_id} at log {log.log_index}')
                    self._resolve(result, token_id, EXACT, SOURCE_MANUAL_TOPICS, log.log_index)
                    return result
                continue

            is_mint = from_addr.lower() == ZERO_ADDRESS
            candidate.update({
                'from': from_addr,
                'to': to_addr,
                'tokenId': str(token_id),
                'isMint': is_mint,
            })
            if is_mint:
                self._resolve(result, token_id, EXACT, SOURCE_TRANSFER_EVENT, log.log_index)
                return result

        result.notes.append('No mint-shaped Transfer log from the contract')
        return result

    async def infer_from_supply(self, receipt, result=None):
        """Latest-supply guess. Lower confidence: two rows can land on one id."""
        if self.gateway is None or not self.supply_heuristic:
            return None
        if receipt.block_number is None:
            return None
        try:
            raw = await asyncio.to_thread(self.gateway.call, self.contract_address, TOTAL_SUPPLY_SELECTOR)
            head = await asyncio.to_thread(self.gateway.get_block_number)
        except TransportError as e:
            logger.warning(f'totalSupply heuristic unavailable for {receipt.tx_hash}: {e}')
            if result is not None:
                result.notes.append(f'Supply lookup failed: {e}')
            return None
        if not raw:
            return None

        supply = int.from_bytes(raw[:32], 'big')
        behind = max(head - receipt.block_number, 0)
        if result is not None:
            result.total_supply = supply
        if behind >= self.recency_blocks:
            if result is not None:
                result.notes.append(f'Receipt is {behind} blocks behind head; supply not trusted')
            return None
        return supply

    async def extract_token_id(self, receipt) -> Interpretation:
        result = self.interpret_logs(receipt)
        if result.resolved or not receipt.succeeded:
            return result

        supply = await self.infer_from_supply(receipt, result)
        if supply is not None:
            logger.warning(f'Token id for {receipt.tx_hash} inferred from totalSupply={supply}')
            self._resolve(result, supply, HEURISTIC, SOURCE_TOTAL_SUPPLY, None)
        return result

    @staticmethod
    def _resolve(result, token_id, confidence, source, log_index):
        result.token_id = token_id
        result.confidence = confidence
        result.source = source
        result.log_index = log_index
