"""
RYT DID CAPTCHA Service
Server-side verification of Google reCAPTCHA tokens.
"""

import logging

import httpx

from did_onboarding.config import config

logger = logging.getLogger(__name__)


class CaptchaVerifier:
    """Checks a widget token against the reCAPTCHA siteverify endpoint."""

    SITEVERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"

    def __init__(self, secret_key: str = None, timeout: float = None,
                 transport: httpx.BaseTransport = None):
        self.secret_key = secret_key or config.RECAPTCHA_SECRET_KEY
        self.client = httpx.Client(timeout=timeout or config.HTTP_TIMEOUT, transport=transport)

    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def verify(self, token: str, remote_ip: str = None) -> bool:
        """
        Return True if the token passes.

        Without a secret key every non-empty token passes (demo mode).
        Transport failures count as a failed check.
        """
        if not token:
            return False

        if not self.is_configured():
            logger.warning("reCAPTCHA secret not set, accepting token in demo mode")
            return True

        data = {"secret": self.secret_key, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            response = self.client.post(self.SITEVERIFY_URL, data=data)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("reCAPTCHA verification request failed: %s", e)
            return False

        if not result.get("success"):
            logger.info("reCAPTCHA rejected token: %s", result.get("error-codes"))
            return False
        return True

    def close(self):
        self.client.close()


# Global CAPTCHA verifier instance
captcha_verifier = CaptchaVerifier()
