"""
RYT DID Wallet Connector
Accepts the account reported by the user's wallet and, when a signed
message accompanies it, proves control of that account.
"""

import logging
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from did_onboarding.errors import NotConnected

logger = logging.getLogger(__name__)


def connect_wallet(
    address: Optional[str],
    signature: Optional[str] = None,
    message: Optional[str] = None
) -> str:
    """
    Validate a wallet address and return its checksummed form.

    Args:
        address: Account reported by the wallet (``eth_accounts[0]``)
        signature: Optional personal_sign signature over ``message``
        message: The signed message

    Raises:
        NotConnected: If no valid address is given or the signature was not
            produced by that address
    """
    if not address:
        raise NotConnected("No wallet account available")
    if not Web3.is_address(address):
        raise NotConnected(f"Invalid wallet address: {address}")

    checksummed = Web3.to_checksum_address(address)

    if signature:
        if not message:
            raise NotConnected("Signature supplied without the signed message")
        try:
            signer = Account.recover_message(encode_defunct(text=message), signature=signature)
        except Exception as e:
            raise NotConnected(f"Invalid wallet signature: {e}") from e
        if signer != checksummed:
            raise NotConnected("Wallet signature does not match address")
        logger.info("Wallet %s proved control by signature", checksummed)

    return checksummed
