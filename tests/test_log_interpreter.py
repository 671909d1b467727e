"""
Tests for token id extraction from mint receipts.

Covers each tier on its own: ABI decode, manual topic parsing and the
totalSupply heuristic, plus receipts that must not yield a token id.
"""
import asyncio

import pytest

from chain_gateway import Log, Receipt
from log_interpreter import (
    EXACT,
    HEURISTIC,
    SOURCE_MANUAL_TOPICS,
    SOURCE_TOTAL_SUPPLY,
    SOURCE_TRANSFER_EVENT,
    TOTAL_SUPPLY_SELECTOR,
    TRANSFER_TOPIC,
    LogInterpreter,
    describe_topic,
)
from tests.conftest import (
    CONTRACT,
    OTHER_CONTRACT,
    USER,
    FakeGateway,
    addr_topic,
    int_topic,
    make_receipt,
    transfer_log,
)

APPROVAL_TOPIC = '0x8c5be1e5ebec7d5bd14f71427d1e84f3dd0314c0f7b2291e5b200ac8c7c3b925'


def interpreter(gateway=None, **kwargs):
    return LogInterpreter(CONTRACT, gateway=gateway, **kwargs)


class TestExactTiers:

    @pytest.mark.parametrize('token_id', [0, 7, 1234, 2 ** 200])
    def test_structured_and_manual_agree(self, token_id):
        log = transfer_log(token_id)
        interp = interpreter()

        from_addr, to_addr, decoded = interp.decode_structured(log)

        assert from_addr.lower() == '0x' + '0' * 40
        assert to_addr.lower() == USER
        assert decoded == token_id
        assert interp.decode_manual(log) == token_id

    def test_mint_log_resolves_through_structured_decode(self):
        result = interpreter().interpret_logs(make_receipt([transfer_log(7, log_index=3)]))

        assert result.token_id == 7
        assert result.confidence == EXACT
        assert result.source == SOURCE_TRANSFER_EVENT
        assert result.log_index == 3
        assert result.candidates[0]['isMint'] is True

    def test_manual_parse_when_abi_decode_rejects_log(self):
        # A fifth topic makes the ABI decode fail on topic count
        log = transfer_log(42, extra_topics=[int_topic(1)])
        interp = interpreter()

        result = interp.interpret_logs(make_receipt([log]))

        assert result.token_id == 42
        assert result.confidence == EXACT
        assert result.source == SOURCE_MANUAL_TOPICS
        assert result.candidates[0]['manuallyParsed'] is True
        assert 'decodeError' in result.candidates[0]

    def test_manual_parse_used_when_structured_decoder_breaks(self, monkeypatch):
        interp = interpreter()

        def broken(log):
            raise ValueError('codec mismatch')

        monkeypatch.setattr(interp, 'decode_structured', broken)
        result = interp.interpret_logs(make_receipt([transfer_log(9)]))

        assert result.token_id == 9
        assert result.source == SOURCE_MANUAL_TOPICS

    def test_address_match_is_case_insensitive(self):
        log = transfer_log(5, address=CONTRACT.upper().replace('0X', '0x'))

        assert interpreter().interpret_logs(make_receipt([log])).token_id == 5

    def test_logs_from_other_contracts_are_ignored(self):
        result = interpreter().interpret_logs(make_receipt([transfer_log(5, address=OTHER_CONTRACT)]))

        assert result.token_id is None
        assert result.candidates == []

    def test_non_transfer_events_are_skipped(self):
        approval = Log(address=CONTRACT, topics=[APPROVAL_TOPIC, addr_topic(USER), addr_topic(USER), int_topic(1)])
        result = interpreter().interpret_logs(make_receipt([approval, transfer_log(11, log_index=1)]))

        assert result.token_id == 11
        assert len(result.candidates) == 1

    def test_plain_transfer_is_not_a_mint(self):
        log = transfer_log(3, from_addr=USER, to_addr=OTHER_CONTRACT)
        result = interpreter().interpret_logs(make_receipt([log]))

        assert result.token_id is None
        assert result.candidates[0]['isMint'] is False
        assert result.candidates[0]['tokenId'] == '3'

    def test_erc20_shaped_transfer_is_not_a_mint(self):
        log = Log(address=CONTRACT, topics=[TRANSFER_TOPIC, addr_topic('0x' + '0' * 40), addr_topic(USER)],
                  data=int_topic(10 ** 18))
        result = interpreter().interpret_logs(make_receipt([log]))

        assert result.token_id is None

    def test_failed_receipt_without_logs_returns_none(self):
        result = interpreter().interpret_logs(make_receipt([], status=Receipt.FAILURE))

        assert result.token_id is None
        assert result.confidence is None

    def test_failed_receipt_skips_heuristic(self):
        gateway = FakeGateway(supply=15, head=101)
        result = asyncio.run(interpreter(gateway).extract_token_id(make_receipt([], status=Receipt.FAILURE)))

        assert result.token_id is None
        assert gateway.eth_calls == []


class TestSupplyHeuristic:

    def test_recent_block_uses_total_supply(self):
        gateway = FakeGateway(supply=15, head=103)
        result = asyncio.run(interpreter(gateway).extract_token_id(make_receipt([], block_number=100)))

        assert result.token_id == 15
        assert result.confidence == HEURISTIC
        assert result.source == SOURCE_TOTAL_SUPPLY
        assert gateway.eth_calls == [(CONTRACT, TOTAL_SUPPLY_SELECTOR)]

    def test_stale_block_is_not_trusted(self):
        gateway = FakeGateway(supply=15, head=200)
        result = asyncio.run(interpreter(gateway).extract_token_id(make_receipt([], block_number=100)))

        assert result.token_id is None
        assert result.total_supply == 15

    def test_exact_result_never_consults_supply(self):
        gateway = FakeGateway(supply=15, head=101)
        result = asyncio.run(interpreter(gateway).extract_token_id(make_receipt([transfer_log(7)])))

        assert result.token_id == 7
        assert gateway.eth_calls == []

    def test_rpc_failure_yields_none(self):
        gateway = FakeGateway(supply=None, head=101)
        result = asyncio.run(interpreter(gateway).extract_token_id(make_receipt([])))

        assert result.token_id is None
        assert any('Supply lookup failed' in note for note in result.notes)

    def test_disabled_heuristic_makes_no_calls(self):
        gateway = FakeGateway(supply=15, head=101)
        result = asyncio.run(interpreter(gateway, supply_heuristic=False).extract_token_id(make_receipt([])))

        assert result.token_id is None
        assert gateway.eth_calls == []


def test_describe_topic():
    assert describe_topic(addr_topic(USER)) == f'Possible address: {USER}'
    assert describe_topic(int_topic(7)) == 'BigInt: 7'
    assert describe_topic('nothex').startswith('Could not decode')
