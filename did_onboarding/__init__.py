"""
RYT DID Onboarding

A multi-step decentralized identifier onboarding wizard:
- Wallet connection and CAPTCHA gate
- ID photo and liveness selfie pinned to IPFS (Pinata)
- Identity field extraction with a vision model
- DID token minting on an EVM chain

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "RYT Team"
