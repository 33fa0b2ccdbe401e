"""
RYT DID IPFS Service
Content-addressed storage of ID images, selfies and token metadata via
Pinata pinning.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict

import httpx

from did_onboarding.config import config
from did_onboarding.errors import UploadError

logger = logging.getLogger(__name__)


@dataclass
class IPFSUploadResult:
    """Result of an IPFS pin operation."""
    cid: str
    size_bytes: int
    gateway_url: str
    demo: bool = False


class IPFSService:
    """
    IPFS service using Pinata for decentralized storage.

    Features:
    - Pin binary files (ID photo, selfie)
    - Pin JSON documents (token metadata)
    - Gateway URL generation for access

    Without credentials the service runs in demo mode and returns the
    configured placeholder CID instead of contacting Pinata.
    """

    PINATA_PIN_FILE_URL = "https://api.pinata.cloud/pinning/pinFileToIPFS"
    PINATA_PIN_JSON_URL = "https://api.pinata.cloud/pinning/pinJSONToIPFS"

    def __init__(
        self,
        pinata_api_key: str = None,
        pinata_secret_key: str = None,
        pinata_jwt: str = None,
        gateway: str = None,
        timeout: float = None,
        transport: httpx.BaseTransport = None
    ):
        self.api_key = pinata_api_key or config.PINATA_API_KEY
        self.secret_key = pinata_secret_key or config.PINATA_SECRET_KEY
        self.jwt = pinata_jwt or config.PINATA_JWT
        self.gateway = (gateway or config.IPFS_GATEWAY).rstrip("/")

        self.client = httpx.Client(
            timeout=timeout or config.HTTP_TIMEOUT,
            headers=self._build_headers(),
            transport=transport
        )

    def _build_headers(self) -> Dict[str, str]:
        """Build authentication headers for Pinata API."""
        if self.jwt:
            return {"Authorization": f"Bearer {self.jwt}"}
        elif self.api_key and self.secret_key:
            return {
                "pinata_api_key": self.api_key,
                "pinata_secret_api_key": self.secret_key
            }
        return {}

    def is_configured(self) -> bool:
        """Check if IPFS service is properly configured."""
        return bool(self.jwt or (self.api_key and self.secret_key))

    def get_gateway_url(self, cid: str) -> str:
        return f"{self.gateway}/{cid}"

    def _demo_result(self, size_bytes: int) -> IPFSUploadResult:
        logger.warning("Pinata credentials not set, returning demo CID")
        cid = config.DEMO_IMAGE_CID
        return IPFSUploadResult(
            cid=cid,
            size_bytes=size_bytes,
            gateway_url=self.get_gateway_url(cid),
            demo=True
        )

    def _handle_response(self, response: httpx.Response, size_bytes: int) -> IPFSUploadResult:
        if response.status_code != 200:
            error_msg = response.text
            try:
                error_data = response.json()
                error = error_data.get("error", error_msg)
                if isinstance(error, dict):
                    error = error.get("message") or error.get("details") or error_msg
                error_msg = error
            except ValueError:
                pass
            raise UploadError(f"Pinata error: {error_msg}")

        cid = response.json().get("IpfsHash", "")
        if not cid:
            raise UploadError("Pinata response carried no IpfsHash")

        return IPFSUploadResult(
            cid=cid,
            size_bytes=size_bytes,
            gateway_url=self.get_gateway_url(cid)
        )

    def upload_file(
        self,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream"
    ) -> IPFSUploadResult:
        """
        Pin a binary file.

        Args:
            content: Raw file bytes
            filename: Name recorded in the pin metadata
            content_type: MIME type of the file

        Returns:
            IPFSUploadResult with CID and gateway URL

        Raises:
            UploadError: If Pinata rejects the file or is unreachable
        """
        if not content:
            raise UploadError("Refusing to pin an empty file")

        if not self.is_configured():
            return self._demo_result(len(content))

        metadata = {
            "name": filename,
            "keyvalues": {
                "type": content_type,
                "size": len(content),
                "timestamp": int(time.time() * 1000)
            }
        }

        try:
            response = self.client.post(
                self.PINATA_PIN_FILE_URL,
                files={"file": (filename, content, content_type)},
                data={
                    "pinataMetadata": json.dumps(metadata),
                    "pinataOptions": json.dumps({"cidVersion": 0})
                }
            )
        except httpx.HTTPError as e:
            raise UploadError(f"Upload failed: {e}") from e

        result = self._handle_response(response, len(content))
        logger.info("Pinned %s (%d bytes) as %s", filename, len(content), result.cid)
        return result

    def upload_json(self, document: Dict[str, Any], pin_name: str) -> IPFSUploadResult:
        """
        Pin a JSON document such as DID token metadata.

        Raises:
            UploadError: If Pinata rejects the document or is unreachable
        """
        size_bytes = len(json.dumps(document).encode("utf-8"))

        if not self.is_configured():
            return self._demo_result(size_bytes)

        payload = {
            "pinataContent": document,
            "pinataMetadata": {"name": pin_name},
            "pinataOptions": {"cidVersion": 1}
        }

        try:
            response = self.client.post(self.PINATA_PIN_JSON_URL, json=payload)
        except httpx.HTTPError as e:
            raise UploadError(f"Upload failed: {e}") from e

        result = self._handle_response(response, size_bytes)
        logger.info("Pinned JSON %s as %s", pin_name, result.cid)
        return result

    def close(self):
        """Close HTTP client."""
        self.client.close()


# Global IPFS service instance
ipfs_service = IPFSService()
