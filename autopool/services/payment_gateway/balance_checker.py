"""
Balance Checker for the payment gateway.

Reads the payout contract's available balance and configured company wallet.
"""

import asyncio
from decimal import Decimal

from loguru import logger
from web3 import AsyncWeb3
from web3.contract import AsyncContract
from web3.exceptions import Web3Exception

from .constants import PAYOUT_DECIMALS


class BalanceChecker:
    """
    Queries the payout contract.

    Features:
    - Available payout balance (getContractBalance)
    - Company wallet lookup
    - Timeout handling
    """

    def __init__(
        self, web3: AsyncWeb3, contract: AsyncContract, timeout: float
    ) -> None:
        """
        Initialize balance checker.

        Args:
            web3: AsyncWeb3 instance
            contract: Payout contract instance
            timeout: Per-call timeout in seconds
        """
        self.web3 = web3
        self.contract = contract
        self.timeout = timeout

    async def get_contract_balance(self) -> Decimal | None:
        """
        Get balance available for payouts.

        Returns:
            Balance in whole coins, or None if it could not be read
        """
        try:
            balance_wei = await asyncio.wait_for(
                self.contract.functions.getContractBalance().call(),
                timeout=self.timeout,
            )
        except TimeoutError:
            logger.error("Timeout getting payout contract balance")
            return None
        except (Web3Exception, ConnectionError, OSError) as e:
            logger.error(f"Error getting payout contract balance: {e}")
            return None

        return Decimal(balance_wei) / Decimal(10**PAYOUT_DECIMALS)

    async def get_company_wallet(self) -> str | None:
        """
        Get the company wallet configured on the contract.

        Returns:
            Lower-case address or None
        """
        try:
            wallet = await asyncio.wait_for(
                self.contract.functions.companyWallet().call(),
                timeout=self.timeout,
            )
        except TimeoutError:
            logger.error("Timeout getting company wallet")
            return None
        except (Web3Exception, ConnectionError, OSError) as e:
            logger.error(f"Error getting company wallet: {e}")
            return None

        return str(wallet).lower()
