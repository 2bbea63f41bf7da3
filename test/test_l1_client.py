#!/usr/bin/env python3
"""Unit tests for the L1 bridge pool client."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from hexbytes import HexBytes

from insured_bridge_validator.l1_client import InsuredBridgeL1Client
from insured_bridge_validator.models import Deposit, RateModel

BRIDGE_POOL = "0x" + "22" * 20
L1_TOKEN = "0x" + "33" * 20
OTHER_TOKEN = "0x" + "66" * 20
SLOW_RELAYER = "0x" + "77" * 20

DEPOSIT_A = HexBytes(b"\xaa" * 32)
DEPOSIT_B = HexBytes(b"\xbb" * 32)

LATEST_BLOCK = {"number": 100, "timestamp": 10_000}
LIVENESS = 7200
ONE = 10 ** 18


def relayed_event(deposit_hash: HexBytes, ancillary_byte: bytes, price_request_time: int,
                  block_number: int, log_index: int = 0, fee: int = 10 ** 15) -> dict:
    return {
        "event": "DepositRelayed",
        "args": {
            "depositHash": deposit_hash,
            "depositData": {
                "chainId": 10,
                "depositId": block_number,
                "l1Recipient": "0x" + "11" * 20,
                "l2Sender": "0x" + "12" * 20,
                "amount": ONE,
                "slowRelayFeePct": 0,
                "instantRelayFeePct": 0,
                "quoteTimestamp": price_request_time - 60
            },
            "relay": {
                "relayState": 1,
                "slowRelayer": SLOW_RELAYER,
                "relayId": block_number,
                "realizedLpFeePct": fee,
                "priceRequestTime": price_request_time,
                "proposerBond": 0,
                "finalFee": 0
            },
            "relayAncillaryDataHash": HexBytes(ancillary_byte * 32)
        },
        "blockNumber": block_number,
        "logIndex": log_index
    }


def removal_event(name: str, deposit_hash: HexBytes, block_number: int) -> dict:
    return {
        "event": name,
        "args": {"depositHash": deposit_hash},
        "blockNumber": block_number,
        "logIndex": 0
    }


@pytest.fixture
def mock_contract():
    """Create a mock BridgePool contract with no events."""
    mock = MagicMock()
    for event_name in ("DepositRelayed", "RelaySettled", "RelayDisputed", "RelayCanceled"):
        getattr(mock.events, event_name).get_logs = AsyncMock(return_value=[])
    mock.functions.l1Token.return_value.call = AsyncMock(return_value=L1_TOKEN)
    return mock


@pytest.fixture
def mock_contract_util(mock_contract):
    mock = MagicMock()
    mock.w3.eth.get_block = AsyncMock(return_value=LATEST_BLOCK)
    mock.get_contract = MagicMock(return_value=mock_contract)
    return mock


@pytest.fixture
def rate_model():
    return RateModel(u_bar=ONE // 2, r0=0, r1=4 * ONE // 100, r2=60 * ONE // 100)


@pytest.fixture
def mock_block_finder():
    mock = MagicMock()
    mock.get_block_for_timestamp = AsyncMock(return_value=42)
    return mock


@pytest.fixture
def client(mock_contract_util, rate_model, mock_block_finder):
    return InsuredBridgeL1Client(
        contract_util=mock_contract_util,
        bridge_pool_addresses=[BRIDGE_POOL],
        rate_models={L1_TOKEN: rate_model},
        optimistic_oracle_liveness=LIVENESS,
        lookback_blocks=50,
        block_finder=mock_block_finder
    )


def make_deposit(l1_token: str = L1_TOKEN) -> Deposit:
    return Deposit(
        deposit_hash="0x" + "aa" * 32,
        chain_id=10,
        deposit_id=1,
        l1_recipient="0x" + "11" * 20,
        l2_sender="0x" + "12" * 20,
        l1_token=l1_token,
        l2_token="0x" + "44" * 20,
        amount=ONE,
        slow_relay_fee_pct=0,
        instant_relay_fee_pct=0,
        quote_timestamp=9_000
    )


class TestRelayTracking:
    """Tests for folding bridge pool events into pending relays."""

    def test_requires_bridge_pool(self, mock_contract_util, rate_model):
        with pytest.raises(ValueError, match="bridge pool"):
            InsuredBridgeL1Client(contract_util=mock_contract_util, bridge_pool_addresses=[], rate_models={})

    def test_parse_relay_event_from_tuples(self):
        """Test struct arguments decoded as plain tuples are supported."""
        event = relayed_event(DEPOSIT_A, b"\x01", 5_000, block_number=60)
        args = event["args"]
        args["depositData"] = tuple(args["depositData"].values())
        args["relay"] = tuple(args["relay"].values())

        relay = InsuredBridgeL1Client.parse_relay_event(event, BRIDGE_POOL, L1_TOKEN)

        assert relay.relay_ancillary_data_hash == "0x" + "01" * 32
        assert relay.deposit_hash == "0x" + "aa" * 32
        assert relay.realized_lp_fee_pct == 10 ** 15
        assert relay.price_request_time == 5_000
        assert relay.chain_id == 10
        assert relay.relay_id == 60

    @pytest.mark.asyncio
    async def test_update_tracks_pending_relays(self, client, mock_contract):
        """Test relayed deposits become pending relays with settleable flags."""
        mock_contract.events.DepositRelayed.get_logs.return_value = [
            relayed_event(DEPOSIT_A, b"\x01", price_request_time=2_000, block_number=60),
            relayed_event(DEPOSIT_B, b"\x02", price_request_time=5_000, block_number=61),
        ]

        await client.update()

        mock_contract.events.DepositRelayed.get_logs.assert_awaited_once_with(from_block=50, to_block=100)
        relays = {relay.deposit_hash: relay for relay in client.get_pending_relays()}
        assert set(relays) == {"0x" + "aa" * 32, "0x" + "bb" * 32}
        # 2000 + 7200 <= 10000 but 5000 + 7200 > 10000
        assert relays["0x" + "aa" * 32].settleable is True
        assert relays["0x" + "bb" * 32].settleable is False
        assert relays["0x" + "aa" * 32].l1_token == L1_TOKEN
        assert relays["0x" + "aa" * 32].bridge_pool == BRIDGE_POOL

    @pytest.mark.asyncio
    async def test_finalized_relays_are_removed(self, client, mock_contract):
        """Test settled and disputed relays leave the pending set."""
        mock_contract.events.DepositRelayed.get_logs.return_value = [
            relayed_event(DEPOSIT_A, b"\x01", 5_000, block_number=60),
            relayed_event(DEPOSIT_B, b"\x02", 5_000, block_number=61),
        ]
        mock_contract.events.RelaySettled.get_logs.return_value = [
            removal_event("RelaySettled", DEPOSIT_A, block_number=70)
        ]
        mock_contract.events.RelayDisputed.get_logs.return_value = [
            removal_event("RelayDisputed", DEPOSIT_B, block_number=71)
        ]

        await client.update()

        assert client.get_pending_relays() == ()

    @pytest.mark.asyncio
    async def test_relay_after_dispute_is_pending(self, client, mock_contract):
        """Test events are applied in chain order across event types."""
        mock_contract.events.DepositRelayed.get_logs.return_value = [
            relayed_event(DEPOSIT_A, b"\x01", 5_000, block_number=60),
            relayed_event(DEPOSIT_A, b"\x03", 6_000, block_number=80),
        ]
        mock_contract.events.RelayDisputed.get_logs.return_value = [
            removal_event("RelayDisputed", DEPOSIT_A, block_number=70)
        ]

        await client.update()

        (relay,) = client.get_pending_relays()
        assert relay.relay_ancillary_data_hash == "0x" + "03" * 32

    @pytest.mark.asyncio
    async def test_settleable_is_recomputed(self, client, mock_contract, mock_contract_util):
        """Test a relay becomes settleable once the liveness window passes."""
        mock_contract.events.DepositRelayed.get_logs.return_value = [
            relayed_event(DEPOSIT_A, b"\x01", 5_000, block_number=60)
        ]
        await client.update()
        assert client.get_pending_relays()[0].settleable is False

        mock_contract_util.w3.eth.get_block.return_value = {"number": 110, "timestamp": 12_200}
        mock_contract.events.DepositRelayed.get_logs.return_value = []
        await client.update()

        assert client.get_pending_relays()[0].settleable is True

    @pytest.mark.asyncio
    async def test_failed_update_keeps_state(self, client, mock_contract, mock_contract_util):
        """Test a failing log request commits nothing."""
        mock_contract.events.DepositRelayed.get_logs.return_value = [
            relayed_event(DEPOSIT_A, b"\x01", 5_000, block_number=60)
        ]
        await client.update()

        mock_contract_util.w3.eth.get_block.return_value = {"number": 120, "timestamp": 20_000}
        mock_contract.events.DepositRelayed.get_logs.return_value = [
            relayed_event(DEPOSIT_B, b"\x02", 5_000, block_number=110)
        ]
        mock_contract.events.RelaySettled.get_logs.side_effect = ConnectionError("rpc down")

        with pytest.raises(ConnectionError):
            await client.update()

        (relay,) = client.get_pending_relays()
        assert relay.deposit_hash == "0x" + "aa" * 32
        assert relay.settleable is False
        assert client.last_processed_block == 100


class TestRealizedLpFee:
    """Tests for expected realized LP fee computation."""

    @pytest.mark.asyncio
    async def test_fee_from_pool_utilization(self, client, mock_contract, mock_block_finder):
        """Test utilization is read at the quote block and run through the rate model."""
        await client.update()
        mock_contract.functions.liquidityUtilizationCurrent.return_value.call = AsyncMock(return_value=0)
        mock_contract.functions.liquidityUtilizationPostRelay.return_value.call = AsyncMock(
            return_value=ONE // 2
        )

        fee = await client.calculate_realized_lp_fee_pct(make_deposit())

        # Average rate from 0 to the kink is exactly 2%
        assert fee == 380892276744451
        mock_block_finder.get_block_for_timestamp.assert_awaited_once_with(9_000)
        mock_contract.functions.liquidityUtilizationPostRelay.assert_called_once_with(ONE)
        mock_contract.functions.liquidityUtilizationCurrent.return_value.call.assert_awaited_once_with(
            block_identifier=42
        )

    @pytest.mark.asyncio
    async def test_unknown_token(self, client):
        await client.update()
        with pytest.raises(ValueError, match="No bridge pool"):
            await client.calculate_realized_lp_fee_pct(make_deposit(l1_token=OTHER_TOKEN))

    @pytest.mark.asyncio
    async def test_missing_rate_model(self, mock_contract_util, mock_block_finder):
        client = InsuredBridgeL1Client(
            contract_util=mock_contract_util,
            bridge_pool_addresses=[BRIDGE_POOL],
            rate_models={},
            block_finder=mock_block_finder
        )
        await client.update()

        with pytest.raises(ValueError, match="No rate model"):
            await client.calculate_realized_lp_fee_pct(make_deposit())
