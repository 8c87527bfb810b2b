"""
Transaction Status Checker.

Looks up the on-chain state of a broadcast payout transaction.
"""

import asyncio
from typing import Any

from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound, Web3Exception


class TransactionStatusChecker:
    """
    Checks transaction status on the blockchain.

    Returned status is one of:
    - confirmed: mined with status 1
    - failed: mined and reverted
    - pending: known to the node, not mined yet
    - not_found: unknown to the node (dropped or never broadcast)
    None means the status could not be determined (RPC error, timeout).
    """

    def __init__(self, web3: AsyncWeb3, timeout: float) -> None:
        """
        Initialize transaction status checker.

        Args:
            web3: AsyncWeb3 instance
            timeout: Per-call timeout in seconds
        """
        self.web3 = web3
        self.timeout = timeout

    async def check_transaction_status(
        self, tx_hash: str
    ) -> dict[str, Any] | None:
        """
        Check status of an existing transaction.

        Args:
            tx_hash: Transaction hash to check

        Returns:
            Dict with status, success, tx_hash, block_number; None if unknown
        """
        try:
            try:
                receipt = await asyncio.wait_for(
                    self.web3.eth.get_transaction_receipt(tx_hash),
                    timeout=self.timeout,
                )
            except TransactionNotFound:
                receipt = None

            if receipt:
                success = receipt["status"] == 1
                status = "confirmed" if success else "failed"
                logger.info(
                    f"Transaction {tx_hash} status: {status}, "
                    f"block: {receipt['blockNumber']}"
                )
                return {
                    "status": status,
                    "success": success,
                    "tx_hash": tx_hash,
                    "block_number": receipt["blockNumber"],
                    "error": None if success else "Transaction reverted",
                }

            try:
                tx = await asyncio.wait_for(
                    self.web3.eth.get_transaction(tx_hash),
                    timeout=self.timeout,
                )
            except TransactionNotFound:
                tx = None

            if tx:
                logger.info(f"Transaction {tx_hash} pending (not yet mined)")
                return {
                    "status": "pending",
                    "success": False,
                    "tx_hash": tx_hash,
                    "block_number": None,
                    "error": None,
                }

            logger.warning(f"Transaction {tx_hash} not found on chain")
            return {
                "status": "not_found",
                "success": False,
                "tx_hash": tx_hash,
                "block_number": None,
                "error": "Transaction not found",
            }

        except TimeoutError:
            logger.error(f"Timeout checking transaction {tx_hash}")
            return None
        except (Web3Exception, ConnectionError, OSError, ValueError) as e:
            logger.error(
                f"Blockchain communication error checking transaction {tx_hash}: {e}"
            )
            return None
