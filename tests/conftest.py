import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from chain_gateway import Log, Receipt
from errors import TransportError
from log_interpreter import TRANSFER_TOPIC
from models import UserFavoriteLLM, db

CONTRACT = '0x3f54188e5b815b60da5b9354137f3e2c04435322'
OTHER_CONTRACT = '0x1e8461598caf86db994a0395a9389716e99f6d87'
USER = '0xe3bf624f20c5a1991b7185eaca4c30da3c831698'
ZERO = '0x0000000000000000000000000000000000000000'
TX_HASH = '0xabc' + '1' * 61
OTHER_TX_HASH = '0xdef' + '2' * 61


def addr_topic(address):
    return '0x' + '0' * 24 + address[2:].lower()


def int_topic(value):
    return '0x' + format(value, '064x')


def transfer_log(token_id, from_addr=ZERO, to_addr=USER, address=CONTRACT, log_index=0, extra_topics=()):
    topics = [TRANSFER_TOPIC, addr_topic(from_addr), addr_topic(to_addr), int_topic(token_id)]
    topics.extend(extra_topics)
    return Log(address=address, topics=topics, data='0x', log_index=log_index,
               block_number=100, tx_hash=TX_HASH)


def make_receipt(logs=(), status=Receipt.SUCCESS, block_number=100, tx_hash=TX_HASH):
    return Receipt(tx_hash=tx_hash, block_number=block_number, status=status, logs=list(logs))


class FakeGateway:
    """Scripted stand-in for ChainGateway. The last scripted receipt repeats."""

    def __init__(self, receipts=None, supply=None, head=None):
        self.receipts = list(receipts) if receipts is not None else [None]
        self.supply = supply
        self.head = head
        self.receipt_calls = 0
        self.eth_calls = []

    def get_transaction_receipt(self, tx_hash):
        self.receipt_calls += 1
        item = self.receipts.pop(0) if len(self.receipts) > 1 else self.receipts[0]
        if isinstance(item, Exception):
            raise item
        return item

    def get_block_number(self):
        if self.head is None:
            raise TransportError('no head configured')
        return self.head

    def call(self, contract_address, function_selector):
        self.eth_calls.append((contract_address, function_selector))
        if self.supply is None:
            raise TransportError('eth_call unavailable')
        return self.supply.to_bytes(32, 'big')


class SleepRecorder:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'MINT_CONTRACT_ADDRESS': CONTRACT,
    'RECEIPT_POLL_ATTEMPTS': 5,
    'RECEIPT_POLL_INTERVAL_MS': 0,
    'RECHECK_POLL_ATTEMPTS': 3,
    'SUPPLY_HEURISTIC_ENABLED': True,
    'SUPPLY_RECENCY_BLOCKS': 10,
    'LEGACY_TOKEN_ZERO_SOURCE_ROW_ID': None,
    'METADATA_EXTERNAL_URL': 'https://llm-rater.kasra.codes/tokens',
}


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def make_app(gateway, sleep):
    def factory(**overrides):
        config = dict(TEST_CONFIG)
        config.update(overrides)
        return create_app(config, gateway=gateway, sleep=sleep)
    return factory


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def tracker(app):
    return app.extensions['transaction_tracker']


@pytest.fixture
def add_row(app):
    def factory(**fields):
        fields.setdefault('fid', 1234)
        fields.setdefault('favorite_llm', 'claude-3.5')
        with app.app_context():
            row = UserFavoriteLLM(**fields)
            db.session.add(row)
            db.session.commit()
            return row.id
    return factory


def load_row(app, row_id):
    with app.app_context():
        row = db.session.get(UserFavoriteLLM, row_id)
        db.session.expunge(row)
        return row
