"""
Tests for the payment gateway.

Covers:
- Batch validation and wei conversion
- Batch sending with mocked web3 (nonce, gas, signing, broadcast)
- Receipt wait outcomes (confirmed, reverted, timeout)
- Transaction status lookup
- Contract balance lookup
- Gateway construction from settings
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import pytest
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from autopool.config.constants import DEFAULT_BATCH_GAS_LIMIT
from autopool.config.settings import settings
from autopool.services.payment_gateway import (
    ContractPaymentGateway,
    create_payment_gateway,
    to_wei_amount,
    validate_batch,
)
from autopool.services.payment_gateway.balance_checker import BalanceChecker
from autopool.services.payment_gateway.batch_sender import BatchSender
from autopool.services.payment_gateway.transaction_status import (
    TransactionStatusChecker,
)
from autopool.utils.exceptions import ConfigurationError, PaymentBatchError

TEST_KEY = "0x" + "11" * 32
SENDER = "0x2222222222222222222222222222222222222222"
RECIPIENT = "0x3333333333333333333333333333333333333333"
TX_BYTES = b"\xab" * 32
TX_HEX = "0x" + "ab" * 32


async def _value(value):
    return value


@pytest.fixture
def mock_web3():
    """AsyncWeb3 stand-in with real conversion helpers."""
    web3 = MagicMock()
    web3.to_checksum_address = Web3.to_checksum_address
    web3.to_hex = Web3.to_hex
    web3.from_wei = Web3.from_wei
    web3.eth.get_transaction_count = AsyncMock(return_value=7)
    web3.eth.send_raw_transaction = AsyncMock(return_value=TX_BYTES)
    type(web3.eth).gas_price = PropertyMock(side_effect=lambda: _value(10**9))
    return web3


@pytest.fixture
def payout_function():
    function = MagicMock()
    function.estimate_gas = AsyncMock(return_value=100_000)
    function.build_transaction = AsyncMock(
        return_value={"to": RECIPIENT, "data": "0x", "gas": 120_000, "nonce": 7}
    )
    return function


@pytest.fixture
def mock_contract(payout_function):
    contract = MagicMock()
    contract.functions.executeBatchPayouts = MagicMock(return_value=payout_function)
    return contract


@pytest.fixture
def mock_account():
    with patch(
        "autopool.services.payment_gateway.batch_sender.Account"
    ) as account_cls:
        signed = MagicMock()
        signed.raw_transaction = b"\x02signed"
        signed.hash = TX_BYTES
        account_cls.from_key.return_value.sign_transaction.return_value = signed
        yield account_cls


def make_sender(web3, contract, private_key=TEST_KEY):
    return BatchSender(
        web3=web3,
        contract=contract,
        sender_address=SENDER,
        private_key=private_key,
        nonce_lock=asyncio.Lock(),
        timeout=5,
    )


class TestValidateBatch:
    """Batch shape checks before sending."""

    def test_valid_batch(self):
        validate_batch([RECIPIENT], [Decimal("1")], ["DIRECT_INCOME"])

    def test_length_mismatch(self):
        with pytest.raises(PaymentBatchError, match="Array length mismatch"):
            validate_batch([RECIPIENT, RECIPIENT], [Decimal("1")], ["A"])

    def test_empty(self):
        with pytest.raises(PaymentBatchError, match="empty arrays"):
            validate_batch([], [], [])

    def test_oversized(self):
        users = [RECIPIENT] * 51
        with pytest.raises(PaymentBatchError, match="exceeds contract limit: 51 > 50"):
            validate_batch(users, [Decimal("1")] * 51, ["A"] * 51)

    def test_configured_limit_below_contract_limit(self):
        with pytest.raises(PaymentBatchError, match="3 > 2"):
            validate_batch(
                [RECIPIENT] * 3, [Decimal("1")] * 3, ["A"] * 3, max_batch_size=2
            )

    def test_non_positive_amount(self):
        with pytest.raises(PaymentBatchError, match="Non-positive"):
            validate_batch([RECIPIENT], [Decimal("0")], ["A"])


class TestToWei:
    def test_whole_and_fractional(self):
        assert to_wei_amount(Decimal("1")) == 10**18
        assert to_wei_amount(Decimal("12.5")) == 12_500_000_000_000_000_000

    def test_rounds_down(self):
        assert to_wei_amount(Decimal("0.0000000000000000019")) == 1


class TestBatchSender:
    """executeBatchPayouts building and broadcast."""

    @pytest.mark.asyncio
    async def test_send_batch_success(
        self, mock_web3, mock_contract, payout_function, mock_account
    ):
        sender = make_sender(mock_web3, mock_contract)

        result = await sender.send_batch(
            [RECIPIENT], [Decimal("18")], ["DIRECT_INCOME"]
        )

        assert result == {
            "success": True,
            "tx_hash": TX_HEX,
            "error": None,
            "status": "submitted",
        }
        mock_contract.functions.executeBatchPayouts.assert_called_once_with(
            [Web3.to_checksum_address(RECIPIENT)],
            [18 * 10**18],
            ["DIRECT_INCOME"],
        )
        tx_params = payout_function.build_transaction.await_args.args[0]
        assert tx_params["gas"] == 120_000
        assert tx_params["nonce"] == 7
        assert tx_params["gasPrice"] == 10**9
        mock_web3.eth.get_transaction_count.assert_awaited_once_with(SENDER, "pending")
        mock_web3.eth.send_raw_transaction.assert_awaited_once_with(b"\x02signed")
        mock_account.from_key.assert_called_once_with(TEST_KEY)

    @pytest.mark.asyncio
    async def test_gas_estimation_failure_uses_default(
        self, mock_web3, mock_contract, payout_function, mock_account
    ):
        payout_function.estimate_gas = AsyncMock(
            side_effect=ContractLogicError("execution reverted")
        )
        sender = make_sender(mock_web3, mock_contract)

        result = await sender.send_batch([RECIPIENT], [Decimal("1")], ["A"])

        assert result["success"] is True
        tx_params = payout_function.build_transaction.await_args.args[0]
        assert tx_params["gas"] == DEFAULT_BATCH_GAS_LIMIT

    @pytest.mark.asyncio
    async def test_without_private_key(self, mock_web3, mock_contract):
        sender = make_sender(mock_web3, mock_contract, private_key=None)

        result = await sender.send_batch([RECIPIENT], [Decimal("1")], ["A"])

        assert result["success"] is False
        assert result["status"] == "failed"
        mock_web3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_batch_raises(self, mock_web3, mock_contract):
        sender = make_sender(mock_web3, mock_contract)

        with pytest.raises(PaymentBatchError):
            await sender.send_batch([], [], [])

    @pytest.mark.asyncio
    async def test_invalid_recipient_raises(self, mock_web3, mock_contract):
        sender = make_sender(mock_web3, mock_contract)

        with pytest.raises(PaymentBatchError, match="Invalid recipient"):
            await sender.send_batch(["0xnot-an-address"], [Decimal("1")], ["A"])

    @pytest.mark.asyncio
    async def test_nonce_timeout(self, mock_web3, mock_contract, mock_account):
        mock_web3.eth.get_transaction_count = AsyncMock(side_effect=TimeoutError)
        sender = make_sender(mock_web3, mock_contract)

        result = await sender.send_batch([RECIPIENT], [Decimal("1")], ["A"])

        assert result["success"] is False
        assert result["error"] == "Timeout getting nonce"

    @pytest.mark.asyncio
    async def test_broadcast_rpc_error_keeps_signed_hash(
        self, mock_web3, mock_contract, mock_account
    ):
        mock_web3.eth.send_raw_transaction = AsyncMock(
            side_effect=Web3Exception("nonce too low")
        )
        sender = make_sender(mock_web3, mock_contract)

        result = await sender.send_batch([RECIPIENT], [Decimal("1")], ["A"])

        assert result["success"] is False
        assert result["status"] == "unknown"
        assert "nonce too low" in result["error"]
        assert result["tx_hash"] == TX_HEX

    @pytest.mark.asyncio
    async def test_broadcast_timeout_reports_unknown_with_hash(
        self, mock_web3, mock_contract, mock_account
    ):
        """A timed out broadcast may still land; its hash must survive."""
        mock_web3.eth.send_raw_transaction = AsyncMock(side_effect=TimeoutError)
        sender = make_sender(mock_web3, mock_contract)

        result = await sender.send_batch([RECIPIENT], [Decimal("1")], ["A"])

        assert result["success"] is False
        assert result["status"] == "unknown"
        assert result["tx_hash"] == TX_HEX
        assert "TimeoutError" in result["error"]
        mock_web3.eth.send_raw_transaction.assert_awaited_once_with(b"\x02signed")

    @pytest.mark.asyncio
    async def test_build_timeout_is_failed_without_hash(
        self, mock_web3, mock_contract, payout_function, mock_account
    ):
        payout_function.build_transaction = AsyncMock(side_effect=TimeoutError)
        sender = make_sender(mock_web3, mock_contract)

        result = await sender.send_batch([RECIPIENT], [Decimal("1")], ["A"])

        assert result["status"] == "failed"
        assert result["tx_hash"] is None
        mock_web3.eth.send_raw_transaction.assert_not_awaited()


class TestWaitForConfirmation:
    """Bounded receipt wait."""

    @pytest.mark.asyncio
    async def test_confirmed(self, mock_web3, mock_contract):
        mock_web3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 1, "blockNumber": 55}
        )
        sender = make_sender(mock_web3, mock_contract)

        result = await sender.wait_for_confirmation(TX_HEX, timeout=5)

        assert result["status"] == "confirmed"
        assert result["success"] is True
        assert result["block_number"] == 55

    @pytest.mark.asyncio
    async def test_reverted(self, mock_web3, mock_contract):
        mock_web3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 0, "blockNumber": 56}
        )
        sender = make_sender(mock_web3, mock_contract)

        result = await sender.wait_for_confirmation(TX_HEX, timeout=5)

        assert result["status"] == "failed"
        assert result["error"] == "Transaction reverted"

    @pytest.mark.asyncio
    async def test_timeout_is_pending_not_failed(self, mock_web3, mock_contract):
        mock_web3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=TimeoutError)
        sender = make_sender(mock_web3, mock_contract)

        result = await sender.wait_for_confirmation(TX_HEX, timeout=5)

        assert result["status"] == "pending"
        assert result["success"] is False
        assert result["tx_hash"] == TX_HEX


class TestTransactionStatusChecker:
    """On-chain status of a broadcast batch."""

    @pytest.mark.asyncio
    async def test_confirmed_receipt(self):
        web3 = MagicMock()
        web3.eth.get_transaction_receipt = AsyncMock(
            return_value={"status": 1, "blockNumber": 10}
        )
        checker = TransactionStatusChecker(web3, timeout=5)

        status = await checker.check_transaction_status(TX_HEX)

        assert status["status"] == "confirmed"
        assert status["block_number"] == 10

    @pytest.mark.asyncio
    async def test_pending_when_known_but_unmined(self):
        web3 = MagicMock()
        web3.eth.get_transaction_receipt = AsyncMock(
            side_effect=TransactionNotFound("no receipt")
        )
        web3.eth.get_transaction = AsyncMock(return_value={"hash": TX_HEX})
        checker = TransactionStatusChecker(web3, timeout=5)

        status = await checker.check_transaction_status(TX_HEX)

        assert status["status"] == "pending"

    @pytest.mark.asyncio
    async def test_not_found(self):
        web3 = MagicMock()
        web3.eth.get_transaction_receipt = AsyncMock(
            side_effect=TransactionNotFound("no receipt")
        )
        web3.eth.get_transaction = AsyncMock(
            side_effect=TransactionNotFound("no transaction")
        )
        checker = TransactionStatusChecker(web3, timeout=5)

        status = await checker.check_transaction_status(TX_HEX)

        assert status["status"] == "not_found"

    @pytest.mark.asyncio
    async def test_rpc_error_is_undeterminable(self):
        web3 = MagicMock()
        web3.eth.get_transaction_receipt = AsyncMock(side_effect=ConnectionError("down"))
        checker = TransactionStatusChecker(web3, timeout=5)

        assert await checker.check_transaction_status(TX_HEX) is None


class TestBalanceChecker:
    @pytest.mark.asyncio
    async def test_balance_in_whole_coins(self):
        contract = MagicMock()
        contract.functions.getContractBalance.return_value.call = AsyncMock(
            return_value=250 * 10**18
        )
        checker = BalanceChecker(MagicMock(), contract, timeout=5)

        assert await checker.get_contract_balance() == Decimal("250")

    @pytest.mark.asyncio
    async def test_balance_unavailable(self):
        contract = MagicMock()
        contract.functions.getContractBalance.return_value.call = AsyncMock(
            side_effect=TimeoutError
        )
        checker = BalanceChecker(MagicMock(), contract, timeout=5)

        assert await checker.get_contract_balance() is None

    @pytest.mark.asyncio
    async def test_company_wallet_lowercased(self):
        contract = MagicMock()
        contract.functions.companyWallet.return_value.call = AsyncMock(
            return_value=Web3.to_checksum_address(RECIPIENT)
        )
        checker = BalanceChecker(MagicMock(), contract, timeout=5)

        assert await checker.get_company_wallet() == RECIPIENT


class TestCreatePaymentGateway:
    """Gateway construction from settings."""

    def test_missing_private_key(self):
        config = settings.model_copy(update={"backend_private_key": None})

        with pytest.raises(ConfigurationError, match="BACKEND_PRIVATE_KEY"):
            create_payment_gateway(config)

    def test_builds_contract_gateway(self):
        config = settings.model_copy(update={"backend_private_key": TEST_KEY})

        gateway = create_payment_gateway(config)

        assert isinstance(gateway, ContractPaymentGateway)
        assert gateway.sender_address == Account.from_key(TEST_KEY).address
        assert gateway.get_platform_wallet() == settings.platform_wallet_address

    @pytest.mark.asyncio
    async def test_submit_batch_waits_for_receipt(self):
        config = settings.model_copy(update={"backend_private_key": TEST_KEY})
        gateway = create_payment_gateway(config)
        gateway._batch_sender = MagicMock()
        gateway._batch_sender.send_batch = AsyncMock(
            return_value={"success": True, "tx_hash": TX_HEX, "status": "submitted"}
        )
        gateway._batch_sender.wait_for_confirmation = AsyncMock(
            return_value={"success": True, "tx_hash": TX_HEX, "status": "confirmed"}
        )

        result = await gateway.submit_batch([RECIPIENT], [Decimal("1")], ["A"])

        assert result["status"] == "confirmed"
        gateway._batch_sender.wait_for_confirmation.assert_awaited_once_with(
            TX_HEX, config.confirmation_timeout
        )
