"""
RYT DID Minting Service
Mints the DID token through the fixed-ABI ``mint(string tokenURI)`` contract
call and reads the token id back from the ERC-721 Transfer log.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from web3 import Web3
from eth_account import Account

from did_onboarding.config import config
from did_onboarding.errors import MintError

logger = logging.getLogger(__name__)


# mint(string) plus the Transfer event used to recover the token id
CONTRACT_ABI = [
    {
        "inputs": [{"internalType": "string", "name": "tokenURI", "type": "string"}],
        "name": "mint",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": True, "name": "tokenId", "type": "uint256"}
        ],
        "name": "Transfer",
        "type": "event"
    }
]

TRANSFER_TOPIC = Web3.keccak(text="Transfer(address,address,uint256)")


@dataclass
class MintResult:
    """Outcome of a confirmed mint transaction."""
    tx_hash: str
    token_id: Optional[str]
    block_number: Optional[int] = None


def _hex(value: Any) -> str:
    text = value.hex() if hasattr(value, "hex") else str(value)
    return text if text.startswith("0x") else "0x" + text


def token_id_from_receipt(receipt: Any, contract_address: str) -> Optional[str]:
    """Token id of the first Transfer log emitted by ``contract_address``."""
    for log in receipt.get("logs", []):
        if str(log.get("address", "")).lower() != contract_address.lower():
            continue
        topics = log.get("topics", [])
        if len(topics) == 4 and bytes(topics[0]) == bytes(TRANSFER_TOPIC):
            return str(int.from_bytes(bytes(topics[3]), "big"))
    return None


class MintingService:
    """Service for minting DID tokens on an EVM chain."""

    def __init__(self, w3: Web3 = None, private_key: str = None, contract_address: str = None):
        """Initialize minting service with an RPC connection."""
        self.w3 = w3 or Web3(Web3.HTTPProvider(
            config.ETH_RPC_URL, request_kwargs={"timeout": config.HTTP_TIMEOUT}
        ))
        self.private_key = private_key or config.PRIVATE_KEY
        self.contract_address = contract_address or config.DID_CONTRACT_ADDRESS

        self.account = Account.from_key(self.private_key) if self.private_key else None

        if self.contract_address:
            self.contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(self.contract_address),
                abi=CONTRACT_ABI
            )
        else:
            self.contract = None

    def is_configured(self) -> bool:
        return bool(self.account and self.contract)

    def is_connected(self) -> bool:
        """Check if connected to blockchain."""
        try:
            return self.w3.is_connected()
        except Exception:
            return False

    def mint(self, token_uri: str) -> MintResult:
        """
        Mint a DID token pointing at ``token_uri``.

        Raises:
            MintError: If minting is not configured, the transaction cannot be
                sent, is not confirmed within MINT_TIMEOUT, or reverts
        """
        if not token_uri:
            raise MintError("Token URI is required")
        if not self.is_configured():
            raise MintError("Minting is not configured")

        function = self.contract.functions.mint(token_uri)

        try:
            nonce = self.w3.eth.get_transaction_count(self.account.address, 'pending')
            tx = function.build_transaction({
                'from': self.account.address,
                'nonce': nonce,
                'gas': config.GAS_LIMIT,
                'gasPrice': self.w3.eth.gas_price,
                'chainId': config.CHAIN_ID
            })

            signed_tx = self.w3.eth.account.sign_transaction(tx, private_key=self.private_key)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            logger.info("Mint transaction submitted: %s", _hex(tx_hash))

            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=config.MINT_TIMEOUT
            )
        except Exception as e:
            logger.error("Mint transaction error: %s", e)
            raise MintError(f"Transaction error: {e}") from e

        if receipt['status'] != 1:
            raise MintError(f"Transaction reverted: {_hex(tx_hash)}")

        token_id = token_id_from_receipt(receipt, self.contract_address)
        if token_id is None:
            logger.warning("No Transfer log in receipt for %s", _hex(tx_hash))

        return MintResult(
            tx_hash=_hex(tx_hash),
            token_id=token_id,
            block_number=receipt.get('blockNumber')
        )


# Global minting service instance
minting_service = MintingService()
