import asyncio
import logging
import time

from errors import TransportError

logger = logging.getLogger(__name__)

MIN_ATTEMPTS = 1
MAX_ATTEMPTS = 10
MIN_BACKOFF = 1.2
MAX_BACKOFF = 2.0


def exponential_backoff(factor=1.5):
    """Wait before retry n (1-based) is base * factor ** (n - 1)."""
    factor = min(max(factor, MIN_BACKOFF), MAX_BACKOFF)

    def backoff(retry, base_seconds):
        return base_seconds * factor ** (retry - 1)

    return backoff


def fixed_schedule(*waits_seconds):
    """Explicit per-retry waits; the last value repeats once exhausted."""
    def backoff(retry, base_seconds):
        return waits_seconds[min(retry, len(waits_seconds)) - 1]

    return backoff


class ReceiptPoller:
    """
    Retry eth_getTransactionReceipt until a receipt shows up or the attempt
    and time budgets run out. Holds no per-poll state, so concurrent polls
    of the same hash don't interfere.
    """

    def __init__(self, gateway, max_attempts=5, base_interval_ms=2000,
                 backoff=None, max_total_seconds=45.0, sleep=asyncio.sleep,
                 clock=time.monotonic):
        self.gateway = gateway
        self.max_attempts = max_attempts
        self.base_interval_ms = base_interval_ms
        self.backoff = backoff or exponential_backoff()
        self.max_total_seconds = max_total_seconds
        self.sleep = sleep
        self.clock = clock

    async def poll(self, tx_hash, max_attempts=None, base_interval_ms=None, backoff=None, trace=None):
        attempts = max_attempts or self.max_attempts
        attempts = min(max(attempts, MIN_ATTEMPTS), MAX_ATTEMPTS)
        base_seconds = (base_interval_ms if base_interval_ms is not None else self.base_interval_ms) / 1000.0
        backoff = backoff or self.backoff
        trace = trace if trace is not None else []
        deadline = self.clock() + self.max_total_seconds

        for attempt in range(1, attempts + 1):
            if attempt > 1:
                wait = backoff(attempt - 1, base_seconds)
                remaining = deadline - self.clock()
                if remaining <= 0:
                    trace.append(f'Time budget exhausted before attempt {attempt}')
                    break
                wait = min(wait, remaining)
                trace.append(f'Waiting {int(wait * 1000)}ms before attempt {attempt}')
                await self.sleep(wait)

            try:
                receipt = await asyncio.to_thread(self.gateway.get_transaction_receipt, tx_hash)
            except TransportError as e:
                logger.warning(f'Receipt lookup attempt {attempt}/{attempts} for {tx_hash} failed: {e}')
                trace.append(f'RPC error on attempt {attempt}: {e}')
                continue

            if receipt is not None:
                trace.append(f'Got receipt on attempt {attempt}')
                logger.debug(f'Receipt for {tx_hash} found on attempt {attempt}')
                return receipt
            trace.append(f'No receipt on attempt {attempt}')

        logger.info(f'No receipt for {tx_hash} after {attempts} attempts')
        return None
