import logging
import re
from dataclasses import dataclass
from typing import Optional

from errors import ChainExecutionFailure, RecordConflictError, ValidationError
from log_interpreter import (
    HEURISTIC,
    SOURCE_MANUAL_TOPICS,
    SOURCE_TOTAL_SUPPLY,
    SOURCE_TRANSFER_EVENT,
    Interpretation,
    describe_topic,
)
from models import UINT256_MAX, MintStatus

logger = logging.getLogger(__name__)

TX_HASH_RE = re.compile(r'^0x[0-9a-f]{64}$')
TX_HASH_LENGTH = 66
ROW_ID_MAX = 2 ** 63 - 1

TOKEN_ID_SOURCES = {
    SOURCE_TRANSFER_EVENT: 'Found from Transfer mint event',
    SOURCE_MANUAL_TOPICS: 'Found from manually parsed Transfer mint topics',
    SOURCE_TOTAL_SUPPLY: 'Inferred from totalSupply of a recent block',
}


def normalize_tx_hash(tx_hash, truncate=False):
    if not isinstance(tx_hash, str):
        raise ValidationError('Transaction hash must be a string', message='Invalid transaction hash')
    tx_hash = tx_hash.strip().lower()
    if truncate and len(tx_hash) > TX_HASH_LENGTH:
        tx_hash = tx_hash[:TX_HASH_LENGTH]
        logger.info(f'Truncated long txHash to: {tx_hash}')
    if len(tx_hash) != TX_HASH_LENGTH:
        raise ValidationError(
            f'Hash should be {TX_HASH_LENGTH} characters (0x + 64 hex chars), got {len(tx_hash)}',
            message='Invalid transaction hash length',
        )
    if not TX_HASH_RE.match(tx_hash):
        raise ValidationError('Hash must be 0x followed by 64 hex characters', message='Invalid transaction hash')
    return tx_hash


def parse_row_id(row_id):
    if row_id is None or row_id == '':
        raise ValidationError(message='Missing required field: rowId')
    if isinstance(row_id, bool):
        raise ValidationError(f'rowId must be an integer, got {row_id!r}', message='Invalid rowId')
    if isinstance(row_id, float) and not row_id.is_integer():
        raise ValidationError(f'rowId must be an integer, got {row_id!r}', message='Invalid rowId')
    try:
        value = int(row_id)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f'rowId must be an integer, got {row_id!r}', message='Invalid rowId')
    if not 0 <= value <= ROW_ID_MAX:
        raise ValidationError(f'rowId out of range: {row_id!r}', message='Invalid rowId')
    return value


def parse_token_id(token_id):
    if isinstance(token_id, bool):
        raise ValidationError(f'tokenId must be a non-negative integer, got {token_id!r}', message='Invalid tokenId')
    try:
        value = int(token_id)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f'tokenId must be a non-negative integer, got {token_id!r}', message='Invalid tokenId')
    if not 0 <= value <= UINT256_MAX or (isinstance(token_id, float) and not token_id.is_integer()):
        raise ValidationError(f'tokenId must be a non-negative integer, got {token_id!r}', message='Invalid tokenId')
    return value


def _blank(value):
    return value is None or value == ''


@dataclass
class ReconcileResult:
    row_id: int
    token_id: Optional[int]
    tx_hash: Optional[str]
    status: MintStatus
    confidence: Optional[str] = None

    def to_dict(self):
        return {
            'success': True,
            'rowId': self.row_id,
            'tokenId': self.token_id,
            'txHash': self.tx_hash,
            'status': self.status.value,
            'confidence': self.confidence,
        }


class TransactionTracker:
    """Drives one mint attempt (a favorite row) from tx hash to token id."""

    def __init__(self, store, poller, interpreter, recheck_attempts=5, recheck_backoff=None):
        self.store = store
        self.poller = poller
        self.interpreter = interpreter
        self.recheck_attempts = recheck_attempts
        self.recheck_backoff = recheck_backoff

    async def reconcile(self, row_id, tx_hash=None, token_id=None):
        """
        One reconciliation pass. Returns the best-known state of the row.

        A supplied token id is trusted and stored without touching the chain.
        Otherwise the hash is stored first, then the receipt is polled and
        interpreted; anything short of a token id leaves the row pending (or
        failed on a reverted receipt) so a later call can finish the job.
        """
        row_id = parse_row_id(row_id)
        if _blank(tx_hash) and _blank(token_id):
            raise ValidationError(message='Missing token information: either tokenId or txHash is required')
        tx_hash = None if _blank(tx_hash) else normalize_tx_hash(tx_hash)
        token_id = None if _blank(token_id) else parse_token_id(token_id)

        row = self.store.read(row_id)

        if token_id is not None:
            logger.info(f'Updating row {row_id} with tokenId {token_id} and txHash {tx_hash}')
            row = self.store.update(row_id, tx_hash=tx_hash, token_id=token_id, status=MintStatus.CONFIRMED)
            return self._result(row)

        if row.token_id is not None and row.tx == tx_hash:
            logger.debug(f'Row {row_id} already resolved to token {row.token_id}')
            return self._result(row)

        self.store.update(row_id, tx_hash=tx_hash, status=MintStatus.SUBMITTED)

        try:
            receipt = await self.poller.poll(tx_hash)
        except Exception as e:
            logger.warning(f'Polling {tx_hash} for row {row_id} failed: {e}')
            receipt = None

        if receipt is None:
            row = self.store.update(row_id, status=MintStatus.PENDING)
            return self._result(row)

        try:
            interpretation = await self._interpret(receipt)
        except ChainExecutionFailure as e:
            logger.warning(f'Row {row_id}: {e}')
            row = self.store.update(row_id, status=MintStatus.FAILED)
            return self._result(row)

        if not interpretation.resolved:
            logger.info(f'No token id in receipt for {tx_hash}; row {row_id} left pending')
            row = self.store.update(row_id, status=MintStatus.PENDING)
            return self._result(row)

        try:
            row = self.store.update(row_id, token_id=interpretation.token_id, status=MintStatus.CONFIRMED)
        except RecordConflictError as e:
            if interpretation.confidence != HEURISTIC:
                raise
            logger.warning(f'Discarding heuristic token {interpretation.token_id} for row {row_id}: {e}')
            row = self.store.update(row_id, status=MintStatus.PENDING)
            return self._result(row)

        logger.info(f'Found token ID {row.token_id} from transaction {tx_hash} ({interpretation.source})')
        return self._result(row, interpretation.confidence)

    async def recheck_transaction(self, tx_hash):
        """Read-only inspection of a transaction with diagnostic detail."""
        tx_hash = normalize_tx_hash(tx_hash, truncate=True)
        logger.info(f'Processing transaction hash: {tx_hash}')
        debug_info = {'pollAttempts': []}

        receipt = await self.poller.poll(tx_hash, max_attempts=self.recheck_attempts,
                                         backoff=self.recheck_backoff,
                                         trace=debug_info['pollAttempts'])
        if receipt is None:
            return {
                'success': False,
                'message': 'Transaction not found after multiple attempts',
                'transaction': tx_hash,
                'tokenId': None,
                'confidence': None,
                'status': MintStatus.PENDING.value,
                'debugInfo': debug_info,
            }

        contract_address = self.interpreter.contract_address
        debug_info.update({
            'transactionHash': receipt.tx_hash,
            'blockNumber': receipt.block_number,
            'status': 'Success' if receipt.succeeded else 'Failed',
            'contractAddress': contract_address,
            'allLogs': [
                dict(log.to_dict(),
                     isFromContract=log.address.lower() == contract_address,
                     topicsDecoded=[describe_topic(t) for t in log.topics])
                for log in receipt.logs
            ],
            'contractLogsCount': len(self.interpreter.contract_logs(receipt)),
        })

        try:
            interpretation = await self._interpret(receipt)
            status = MintStatus.CONFIRMED if interpretation.resolved else MintStatus.PENDING
        except ChainExecutionFailure as e:
            interpretation = Interpretation(notes=[str(e)])
            status = MintStatus.FAILED

        debug_info['transferEvents'] = interpretation.candidates
        if interpretation.total_supply is not None:
            debug_info['totalSupply'] = str(interpretation.total_supply)
        if interpretation.source:
            debug_info['tokenIdSource'] = TOKEN_ID_SOURCES[interpretation.source]
        if interpretation.notes:
            debug_info['notes'] = interpretation.notes

        return {
            'success': True,
            'transaction': tx_hash,
            'tokenId': interpretation.token_id,
            'confidence': interpretation.confidence,
            'status': status.value,
            'debugInfo': debug_info,
        }

    async def _interpret(self, receipt):
        if not receipt.succeeded:
            raise ChainExecutionFailure(f'{receipt.tx_hash} reverted in block {receipt.block_number}')
        return await self.interpreter.extract_token_id(receipt)

    @staticmethod
    def _result(row, confidence=None):
        return ReconcileResult(
            row_id=row.id,
            token_id=row.token_id,
            tx_hash=row.tx,
            status=row.mint_status,
            confidence=confidence,
        )
