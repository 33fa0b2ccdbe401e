"""
RYT DID Vision Extraction Service
Reads identity fields off an ID document image with a vision-capable
chat-completions model.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from did_onboarding.config import config
from did_onboarding.errors import ExtractionError

logger = logging.getLogger(__name__)


EXTRACTION_PROMPT = """Analyze this ID document image and extract the following information in JSON format:
- fullName: The person's full name
- dateOfBirth: Date of birth in the format found on the document
- gender: Gender of the person (M/F, Male/Female)
- idNumber: ID or document number
- metadata: Basic information about the document (type of ID, country, etc.)

Return ONLY a valid JSON object with these fields and nothing else. If a field cannot be found, use null.
Format:
{
  "fullName": "...",
  "dateOfBirth": "...",
  "gender": "...",
  "idNumber": "...",
  "metadata": {
    "documentType": "...",
    "issuingCountry": "..."
  }
}"""

# Models do not report a confidence for free-form extraction
DEFAULT_CONFIDENCE = 0.92

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class IdentityFields(BaseModel):
    """Identity record read from an ID document."""
    fullName: str = ""
    dateOfBirth: str = ""
    gender: str = ""
    idNumber: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    rawText: Optional[str] = None
    confidence: float = Field(default=DEFAULT_CONFIDENCE, ge=0.0, le=1.0)


# Canned record substituted when extraction is unavailable
MOCK_IDENTITY = IdentityFields(
    fullName="John Doe",
    dateOfBirth="1990-01-01",
    gender="Male",
    idNumber="AB123456789",
    metadata={
        "documentType": "National ID",
        "issuingCountry": "United States",
        "fileType": "image/jpeg",
        "fileSize": "Unknown"
    },
    confidence=DEFAULT_CONFIDENCE
)


def parse_identity(content: str) -> IdentityFields:
    """
    Turn a model reply into IdentityFields.

    The reply is expected to be a bare JSON object; when the model wraps it in
    prose or a code fence the first {...} span is used instead.
    """
    if not content:
        raise ExtractionError("Vision model returned an empty reply")

    try:
        parsed = json.loads(content)
    except ValueError:
        match = _JSON_OBJECT.search(content)
        if not match:
            raise ExtractionError("No JSON found in vision model reply")
        try:
            parsed = json.loads(match.group(0))
        except ValueError as e:
            raise ExtractionError(f"Failed to parse extracted information: {e}") from e

    if not isinstance(parsed, dict):
        raise ExtractionError("Vision model reply is not a JSON object")

    return IdentityFields(
        fullName=parsed.get("fullName") or "",
        dateOfBirth=parsed.get("dateOfBirth") or "",
        gender=parsed.get("gender") or "",
        idNumber=parsed.get("idNumber") or "",
        metadata=parsed.get("metadata") or {"fileType": "image", "fileSize": "unknown"},
        rawText=json.dumps(parsed, indent=2),
        confidence=DEFAULT_CONFIDENCE
    )


class VisionExtractionService:
    """Client for an OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        model: str = None,
        timeout: float = None,
        transport: httpx.BaseTransport = None
    ):
        self.api_key = api_key or config.OPENAI_API_KEY
        self.model = model or config.VISION_MODEL
        self.client = httpx.Client(
            base_url=(base_url or config.OPENAI_BASE_URL).rstrip("/"),
            timeout=timeout or config.EXTRACTION_TIMEOUT,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=transport
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def extract(self, image_url: str) -> IdentityFields:
        """
        Extract identity fields from the image at ``image_url``.

        Args:
            image_url: Gateway URL or base64 data URL of the ID image

        Raises:
            ExtractionError: On missing input, transport failure, API error or
                an unparseable reply
        """
        if not image_url:
            raise ExtractionError("No image URL provided for extraction")
        if not self.is_configured():
            raise ExtractionError("Vision API key is not configured")

        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_url}}
                    ]
                }
            ],
            "max_tokens": 1000
        }

        logger.info("Extracting identity fields from %s...", image_url[:30])
        try:
            response = self.client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise ExtractionError("Vision API timed out") from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Vision API request failed: {e}") from e

        if response.status_code != 200:
            message = response.text
            code = None
            try:
                error = response.json().get("error") or {}
                message = error.get("message", message)
                code = error.get("code")
            except (ValueError, AttributeError):
                pass
            if code == "insufficient_quota":
                raise ExtractionError(
                    "Vision API quota exceeded. Please check your billing details or try again later."
                )
            raise ExtractionError(f"Vision API error: {response.status_code} - {message}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExtractionError(f"Unexpected vision API response: {e}") from e

        usage = response.json().get("usage") or {}
        logger.debug("Vision reply received, total tokens: %s", usage.get("total_tokens"))
        return parse_identity(content)

    def close(self):
        self.client.close()


# Global extraction service instance
extraction_service = VisionExtractionService()
