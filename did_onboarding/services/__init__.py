"""
RYT DID Services Package
Provides the wallet, CAPTCHA, IPFS, vision extraction, minting and
encryption collaborators used by the onboarding wizard.
"""

from did_onboarding.services.captcha import captcha_verifier
from did_onboarding.services.encryption import get_encryption_service, compute_sha256, compute_record_hash
from did_onboarding.services.extraction import extraction_service
from did_onboarding.services.ipfs import ipfs_service
from did_onboarding.services.minting import minting_service
from did_onboarding.services.wallet import connect_wallet

__all__ = [
    'captcha_verifier',
    'get_encryption_service',
    'compute_sha256',
    'compute_record_hash',
    'extraction_service',
    'ipfs_service',
    'minting_service',
    'connect_wallet'
]
