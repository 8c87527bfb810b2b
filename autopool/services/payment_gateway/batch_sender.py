"""
Batch Sender for the payment gateway.

Builds, signs and broadcasts executeBatchPayouts transactions.
"""

import asyncio
from decimal import ROUND_DOWN, Decimal
from typing import Any

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3
from web3.contract import AsyncContract
from web3.exceptions import ContractLogicError, Web3Exception

from autopool.config.constants import (
    DEFAULT_BATCH_GAS_LIMIT,
    GAS_ESTIMATE_MULTIPLIER,
)
from autopool.utils.exceptions import PaymentBatchError
from autopool.utils.security import mask_address, mask_tx_hash

from .constants import CONTRACT_MAX_BATCH_SIZE, PAYOUT_DECIMALS


def to_wei_amount(amount: Decimal) -> int:
    """Convert a coin amount to wei, rounding down."""
    return int(
        (Decimal(str(amount)) * Decimal(10**PAYOUT_DECIMALS)).to_integral_value(
            ROUND_DOWN
        )
    )


def validate_batch(
    users: list[str],
    amounts: list[Decimal],
    reward_types: list[str],
    max_batch_size: int = CONTRACT_MAX_BATCH_SIZE,
) -> None:
    """
    Validate batch shape before anything is sent.

    Raises:
        PaymentBatchError: Length mismatch, empty or oversized batch
    """
    if not (len(users) == len(amounts) == len(reward_types)):
        raise PaymentBatchError(
            f"Array length mismatch: users={len(users)}, "
            f"amounts={len(amounts)}, reward_types={len(reward_types)}"
        )
    if not users:
        raise PaymentBatchError("Cannot execute batch payout with empty arrays")
    limit = min(max_batch_size, CONTRACT_MAX_BATCH_SIZE)
    if len(users) > limit:
        raise PaymentBatchError(
            f"Batch size exceeds contract limit: {len(users)} > {limit}"
        )
    for amount in amounts:
        if Decimal(str(amount)) <= 0:
            raise PaymentBatchError(f"Non-positive payout amount: {amount}")


class BatchSender:
    """
    Sends batch payout transactions.

    Features:
    - Batch validation
    - Nonce acquisition under lock
    - Gas estimation with default fallback
    - Minimal signing key lifetime
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        contract: AsyncContract,
        sender_address: str,
        private_key: str | None,
        nonce_lock: asyncio.Lock,
        timeout: float,
        max_batch_size: int = CONTRACT_MAX_BATCH_SIZE,
    ) -> None:
        """
        Initialize batch sender.

        Args:
            web3: AsyncWeb3 instance
            contract: Payout contract instance
            sender_address: Backend wallet that signs the batch
            private_key: Private key for signing
            nonce_lock: Lock for nonce acquisition
            timeout: Per-call timeout in seconds
            max_batch_size: Line limit per batch
        """
        self.web3 = web3
        self.contract = contract
        self.sender_address = sender_address
        self._private_key = private_key
        self._nonce_lock = nonce_lock
        self.timeout = timeout
        self.max_batch_size = max_batch_size

    async def send_batch(
        self,
        users: list[str],
        amounts: list[Decimal],
        reward_types: list[str],
    ) -> dict[str, Any]:
        """
        Broadcast one batch without waiting for the receipt.

        Args:
            users: Recipient addresses
            amounts: Amounts in whole coins
            reward_types: Reward tag per line

        Returns:
            Dict with success, tx_hash, error, status. status is "submitted"
            once the node accepted the transaction, "failed" when nothing was
            signed or sent, and "unknown" when the signed transaction may have
            been broadcast (tx_hash then holds its hash).

        Raises:
            PaymentBatchError: Malformed batch
        """
        validate_batch(users, amounts, reward_types, self.max_batch_size)

        if not self._private_key:
            return {
                "success": False,
                "tx_hash": None,
                "error": "Private key not configured",
                "status": "failed",
            }

        try:
            recipients = [self.web3.to_checksum_address(u) for u in users]
        except ValueError as e:
            raise PaymentBatchError(f"Invalid recipient address: {e}") from e
        amounts_wei = [to_wei_amount(a) for a in amounts]

        logger.info(
            f"Sending payout batch of {len(recipients)} lines, "
            f"total {sum(Decimal(str(a)) for a in amounts)}, "
            f"from {mask_address(self.sender_address)}"
        )

        async with self._nonce_lock:
            try:
                try:
                    nonce = await asyncio.wait_for(
                        self.web3.eth.get_transaction_count(
                            self.sender_address, "pending"
                        ),
                        timeout=self.timeout,
                    )
                except TimeoutError:
                    logger.error("Timeout getting transaction count (nonce)")
                    return {
                        "success": False,
                        "tx_hash": None,
                        "error": "Timeout getting nonce",
                        "status": "failed",
                    }

                payout_function = self.contract.functions.executeBatchPayouts(
                    recipients, amounts_wei, list(reward_types)
                )

                try:
                    gas_estimate = await asyncio.wait_for(
                        payout_function.estimate_gas({"from": self.sender_address}),
                        timeout=self.timeout,
                    )
                    gas_limit = int(gas_estimate * GAS_ESTIMATE_MULTIPLIER)
                except TimeoutError:
                    logger.error("Timeout estimating gas, using default")
                    gas_limit = DEFAULT_BATCH_GAS_LIMIT
                except ContractLogicError as e:
                    logger.bind(lines=len(recipients), nonce=nonce).error(
                        f"Gas estimation failed: {e}"
                    )
                    gas_limit = DEFAULT_BATCH_GAS_LIMIT

                try:
                    gas_price_wei = await asyncio.wait_for(
                        self.web3.eth.gas_price,
                        timeout=self.timeout,
                    )
                    transaction = await asyncio.wait_for(
                        payout_function.build_transaction(
                            {
                                "from": self.sender_address,
                                "gas": gas_limit,
                                "gasPrice": gas_price_wei,
                                "nonce": nonce,
                            }
                        ),
                        timeout=self.timeout,
                    )
                except TimeoutError:
                    logger.error("Timeout building transaction")
                    return {
                        "success": False,
                        "tx_hash": None,
                        "error": "Timeout building transaction",
                        "status": "failed",
                    }

                account = None
                try:
                    account = Account.from_key(self._private_key)
                    signed_tx = account.sign_transaction(transaction)
                finally:
                    if account:
                        del account

                # Known before broadcast, so an unconfirmed send stays traceable
                signed_hash = self.web3.to_hex(signed_tx.hash)
                try:
                    tx_hash = await asyncio.wait_for(
                        self.web3.eth.send_raw_transaction(signed_tx.raw_transaction),
                        timeout=self.timeout,
                    )
                except (TimeoutError, Web3Exception, ConnectionError, OSError) as e:
                    # May already be in the mempool; the chain decides, never a resend
                    logger.bind(
                        tx_hash=mask_tx_hash(signed_hash), nonce=nonce
                    ).error(f"Broadcast outcome unknown: {e!r}")
                    return {
                        "success": False,
                        "tx_hash": signed_hash,
                        "error": f"Broadcast outcome unknown: {e!r}",
                        "status": "unknown",
                    }

            except (Web3Exception, ConnectionError, OSError) as e:
                logger.bind(
                    lines=len(recipients), sender=mask_address(self.sender_address)
                ).error(f"Error sending payout batch: {e}")
                return {
                    "success": False,
                    "tx_hash": None,
                    "error": str(e),
                    "status": "failed",
                }

        tx_hash_hex = self.web3.to_hex(tx_hash)
        logger.info(
            f"Payout batch sent! Hash: {tx_hash_hex}\n"
            f"  Gas: {gas_limit}\n"
            f"  Gas Price: {self.web3.from_wei(gas_price_wei, 'gwei')} Gwei"
        )
        return {
            "success": True,
            "tx_hash": tx_hash_hex,
            "error": None,
            "status": "submitted",
        }

    async def wait_for_confirmation(
        self, tx_hash: str, timeout: float
    ) -> dict[str, Any]:
        """
        Wait for a batch receipt.

        Timeout does NOT mean the transaction failed; status is "pending".

        Returns:
            Dict with success, tx_hash, block_number, error, status
        """
        try:
            receipt = await asyncio.wait_for(
                self.web3.eth.wait_for_transaction_receipt(tx_hash),
                timeout=timeout,
            )
        except TimeoutError:
            logger.warning(
                f"Transaction {tx_hash} confirmation timeout - "
                f"transaction may still be pending"
            )
            return {
                "success": False,
                "tx_hash": tx_hash,
                "block_number": None,
                "error": "Transaction confirmation timeout - check status later",
                "status": "pending",
            }
        except (Web3Exception, ConnectionError, OSError) as e:
            logger.error(f"Error waiting for receipt of {tx_hash}: {e}")
            return {
                "success": False,
                "tx_hash": tx_hash,
                "block_number": None,
                "error": str(e),
                "status": "pending",
            }

        if receipt["status"] == 1:
            return {
                "success": True,
                "tx_hash": tx_hash,
                "block_number": receipt["blockNumber"],
                "error": None,
                "status": "confirmed",
            }
        return {
            "success": False,
            "tx_hash": tx_hash,
            "block_number": receipt["blockNumber"],
            "error": "Transaction reverted",
            "status": "failed",
        }
