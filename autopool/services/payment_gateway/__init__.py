"""
Payment Gateway Module.

Module structure:
- constants.py - Payout contract ABI and limits
- balance_checker.py - Contract balance and company wallet queries
- transaction_status.py - Transaction status checking
- batch_sender.py - executeBatchPayouts building, signing and sending
- This file (__init__.py) - PaymentGateway interface and the contract adapter

The engine only talks to PaymentGateway; tests substitute a mock.
"""

import asyncio
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3

from autopool.config.settings import Settings, settings
from autopool.utils.exceptions import ConfigurationError

from .balance_checker import BalanceChecker
from .batch_sender import BatchSender, to_wei_amount, validate_batch
from .constants import CONTRACT_MAX_BATCH_SIZE, PAYOUT_CONTRACT_ABI
from .transaction_status import TransactionStatusChecker


class PaymentGateway(ABC):
    """
    Payment rail executing batch payouts.

    Result dicts carry: success, tx_hash, error, status, block_number.
    """

    @abstractmethod
    async def send_batch(
        self, users: list[str], amounts: list[Decimal], reward_types: list[str]
    ) -> dict[str, Any]:
        """
        Broadcast a batch; status is "submitted", "failed" or "unknown".

        "unknown" carries the signed transaction's tx_hash: it may be on
        chain and must be looked up, never resent.
        """

    @abstractmethod
    async def wait_for_confirmation(
        self, tx_hash: str, timeout: float | None = None
    ) -> dict[str, Any]:
        """Bounded wait; status is "confirmed", "failed" or "pending"."""

    @abstractmethod
    async def get_transaction_status(self, tx_hash: str) -> dict[str, Any] | None:
        """Status of a broadcast batch, None if undeterminable."""

    @abstractmethod
    async def get_available_balance(self) -> Decimal | None:
        """Balance available for payouts."""

    @abstractmethod
    def get_platform_wallet(self) -> str:
        """Wallet receiving platform lines."""

    async def submit_batch(
        self, users: list[str], amounts: list[Decimal], reward_types: list[str]
    ) -> dict[str, Any]:
        """
        Send a batch and wait for its receipt.

        Returns:
            Dict with success, tx_hash, error, status, block_number
        """
        sent = await self.send_batch(users, amounts, reward_types)
        if not sent.get("success") or not sent.get("tx_hash"):
            sent.setdefault("block_number", None)
            return sent
        return await self.wait_for_confirmation(sent["tx_hash"])


class ContractPaymentGateway(PaymentGateway):
    """
    Executes batch payouts through the payout contract.

    This is the orchestrator that delegates to specialized components.
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        contract_address: str,
        private_key: str | None,
        platform_wallet: str,
        timeout: float = 30.0,
        confirmation_timeout: float = 120.0,
        max_batch_size: int = CONTRACT_MAX_BATCH_SIZE,
    ) -> None:
        """
        Initialize contract gateway.

        Args:
            web3: AsyncWeb3 instance
            contract_address: Payout contract address
            private_key: Backend key signing batches
            platform_wallet: Wallet receiving platform lines
            timeout: Per-call RPC timeout in seconds
            confirmation_timeout: Default receipt wait in seconds
            max_batch_size: Line limit per batch
        """
        self.web3 = web3
        self.contract_address = web3.to_checksum_address(contract_address)
        self.contract = self.web3.eth.contract(
            address=self.contract_address,
            abi=PAYOUT_CONTRACT_ABI,
        )
        self.platform_wallet = platform_wallet.lower()
        self.confirmation_timeout = confirmation_timeout

        self._private_key = private_key
        self._sender_address: str | None = None
        self._nonce_lock = asyncio.Lock()

        if self._private_key:
            account = None
            try:
                account = Account.from_key(self._private_key)
                self._sender_address = account.address
                logger.info(
                    f"ContractPaymentGateway initialized with wallet: "
                    f"{self._sender_address}"
                )
            finally:
                if account:
                    del account
        else:
            logger.warning(
                "ContractPaymentGateway initialized without private key - "
                "sending will not work"
            )

        self._status_checker = TransactionStatusChecker(web3=web3, timeout=timeout)
        self._balance_checker = BalanceChecker(
            web3=web3, contract=self.contract, timeout=timeout
        )
        self._batch_sender = BatchSender(
            web3=web3,
            contract=self.contract,
            sender_address=self._sender_address,
            private_key=self._private_key,
            nonce_lock=self._nonce_lock,
            timeout=timeout,
            max_batch_size=max_batch_size,
        )

    @property
    def sender_address(self) -> str | None:
        return self._sender_address

    async def send_batch(
        self, users: list[str], amounts: list[Decimal], reward_types: list[str]
    ) -> dict[str, Any]:
        return await self._batch_sender.send_batch(users, amounts, reward_types)

    async def wait_for_confirmation(
        self, tx_hash: str, timeout: float | None = None
    ) -> dict[str, Any]:
        return await self._batch_sender.wait_for_confirmation(
            tx_hash, timeout or self.confirmation_timeout
        )

    async def get_transaction_status(self, tx_hash: str) -> dict[str, Any] | None:
        return await self._status_checker.check_transaction_status(tx_hash)

    async def get_available_balance(self) -> Decimal | None:
        return await self._balance_checker.get_contract_balance()

    async def get_company_wallet(self) -> str | None:
        """Company wallet configured on the contract."""
        return await self._balance_checker.get_company_wallet()

    def get_platform_wallet(self) -> str:
        return self.platform_wallet


def create_payment_gateway(config: Settings | None = None) -> ContractPaymentGateway:
    """
    Build the contract gateway from settings.

    Raises:
        ConfigurationError: Missing contract address, platform wallet or key
    """
    config = config or settings
    if not config.payout_contract_address:
        raise ConfigurationError("PAYOUT_CONTRACT_ADDRESS is not configured")
    if not config.platform_wallet_address:
        raise ConfigurationError("PLATFORM_WALLET_ADDRESS is not configured")
    if not config.backend_private_key:
        raise ConfigurationError("BACKEND_PRIVATE_KEY is not configured")

    web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))
    return ContractPaymentGateway(
        web3=web3,
        contract_address=config.payout_contract_address,
        private_key=config.backend_private_key,
        platform_wallet=config.platform_wallet_address,
        timeout=config.gateway_timeout,
        confirmation_timeout=config.confirmation_timeout,
        max_batch_size=config.max_batch_size,
    )


__all__ = [
    "PaymentGateway",
    "ContractPaymentGateway",
    "create_payment_gateway",
    "validate_batch",
    "to_wei_amount",
]
