"""
RYT DID Onboarding Configuration Module
Loads environment variables and provides configuration settings for the
onboarding wizard and the collaborators it drives (Pinata, vision API,
reCAPTCHA and the DID token contract).
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Config:
    """Application configuration settings."""

    # ============ API Settings ============
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    API_LOG_LEVEL: str = os.getenv("API_LOG_LEVEL", "info")

    # ============ Storage ============
    DB_PATH: str = os.getenv("DB_PATH", "data/did_onboarding.db")

    # ============ IPFS (Pinata) ============
    PINATA_API_KEY: str = os.getenv("PINATA_API_KEY", "")
    PINATA_SECRET_KEY: str = os.getenv("PINATA_SECRET_KEY", "")
    PINATA_JWT: str = os.getenv("PINATA_JWT", "")  # Alternative to API key pair

    # IPFS Gateway
    IPFS_GATEWAY: str = os.getenv("IPFS_GATEWAY", "https://gateway.pinata.cloud/ipfs")

    # CID handed out when Pinata is not configured (demo mode)
    DEMO_IMAGE_CID: str = os.getenv(
        "DEMO_IMAGE_CID", "bafkreiaapyrob3rqaxquyfd7lh4wclbtm5ooynxms5y23izagctpboe2zq"
    )

    # ============ Vision extraction ============
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    VISION_MODEL: str = os.getenv("VISION_MODEL", "gpt-4o")

    # ============ reCAPTCHA ============
    RECAPTCHA_SECRET_KEY: str = os.getenv("RECAPTCHA_SECRET_KEY", "")

    # ============ Blockchain ============
    ALCHEMY_KEY: str = os.getenv("ALCHEMY_KEY", "")
    RPC_URL: str = os.getenv("RPC_URL", "")
    PRIVATE_KEY: str = os.getenv("PRIVATE_KEY", "")
    DID_CONTRACT_ADDRESS: str = os.getenv(
        "DID_CONTRACT_ADDRESS", "0x66332e60b24BB4C729A2Be07Ab733C26242A5aAD"
    )
    CHAIN_ID: int = int(os.getenv("CHAIN_ID", "11155111"))  # Sepolia testnet
    GAS_LIMIT: int = int(os.getenv("GAS_LIMIT", "300000"))

    # Token URI used when the metadata document could not be pinned
    TOKEN_URI: str = os.getenv(
        "TOKEN_URI",
        "https://gateway.pinata.cloud/ipfs/bafkreiaapyrob3rqaxquyfd7lh4wclbtm5ooynxms5y23izagctpboe2zq",
    )

    # ============ Encryption ============
    # 32-byte (256-bit) master key as hex string
    MASTER_KEY: str = os.getenv("MASTER_KEY", "")

    # ============ Failure policy ============
    # Substitute demo data (flagged as such) when extraction or minting fails
    ALLOW_DEMO_FALLBACK: bool = _env_bool("ALLOW_DEMO_FALLBACK", "true")

    # ============ Timeouts (seconds) ============
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "60"))
    EXTRACTION_TIMEOUT: float = float(os.getenv("EXTRACTION_TIMEOUT", "60"))
    MINT_TIMEOUT: float = float(os.getenv("MINT_TIMEOUT", "120"))

    # Idle wizard sessions are dropped after this many seconds
    SESSION_TTL: float = float(os.getenv("SESSION_TTL", "3600"))

    # ============ File Upload Settings ============
    MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB

    @property
    def ETH_RPC_URL(self) -> str:
        """Explicit RPC URL if given, else the Alchemy Sepolia endpoint."""
        if self.RPC_URL:
            return self.RPC_URL
        return f"https://eth-sepolia.g.alchemy.com/v2/{self.ALCHEMY_KEY}"

    @property
    def SEPOLIA_EXPLORER_URL(self) -> str:
        """Get Etherscan URL for Sepolia."""
        return "https://sepolia.etherscan.io"

    def get_tx_url(self, tx_hash: str) -> str:
        """Get Etherscan URL for a transaction."""
        return f"{self.SEPOLIA_EXPLORER_URL}/tx/{tx_hash}"

    def get_ipfs_url(self, cid: str) -> str:
        """Get IPFS gateway URL for a CID."""
        return f"{self.IPFS_GATEWAY.rstrip('/')}/{cid}"

    def is_blockchain_configured(self) -> bool:
        """Check if minting is properly configured."""
        return bool(
            self.DID_CONTRACT_ADDRESS and
            (self.ALCHEMY_KEY or self.RPC_URL) and
            self.PRIVATE_KEY
        )

    def is_ipfs_configured(self) -> bool:
        """Check if IPFS is properly configured."""
        return bool(
            self.PINATA_JWT or
            (self.PINATA_API_KEY and self.PINATA_SECRET_KEY)
        )

    def is_vision_configured(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    def is_captcha_configured(self) -> bool:
        return bool(self.RECAPTCHA_SECRET_KEY)

    def is_encryption_configured(self) -> bool:
        """Check if encryption is properly configured."""
        if not self.MASTER_KEY:
            return False
        try:
            key_bytes = bytes.fromhex(self.MASTER_KEY)
            return len(key_bytes) == 32
        except ValueError:
            return False

    def ensure_data_dir(self) -> None:
        """Create the directory holding the SQLite file."""
        directory = os.path.dirname(self.DB_PATH)
        if directory:
            os.makedirs(directory, exist_ok=True)


# Global config instance
config = Config()
