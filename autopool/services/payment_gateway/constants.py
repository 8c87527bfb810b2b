"""
Payout contract constants.

ABI fragments of the payout contract used by the gateway.
"""

# Native coin decimals of the payment rail (amounts are sent in wei)
PAYOUT_DECIMALS = 18

# Contract hard limit on lines per executeBatchPayouts call
CONTRACT_MAX_BATCH_SIZE = 50

PAYOUT_CONTRACT_ABI = [
    {
        "inputs": [
            {"internalType": "address[]", "name": "users", "type": "address[]"},
            {"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"},
            {"internalType": "string[]", "name": "rewardTypes", "type": "string[]"},
        ],
        "name": "executeBatchPayouts",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getContractBalance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "companyWallet",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]
