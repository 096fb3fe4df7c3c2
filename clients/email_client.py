"""
HTTP mail gateway transport.

The gateway accepts a compact JSON body and checks X-Signature, the
hex HMAC-SHA256 of that exact body under a shared secret.
"""

import hashlib
import hmac
import json
import logging
from urllib.parse import urlparse

import requests

from auth.types import MailMessage

logger = logging.getLogger(__name__)


class EmailGatewayError(Exception):
    """The gateway was unreachable or refused the message."""


def sign_body(secret: str, body: str) -> str:
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


class EmailGatewayClient:
    """Mail transport that posts signed messages to the gateway over a keep-alive session."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, timeout_seconds: float = 10):
        for name, value in (("gateway_url", gateway_url), ("api_key", api_key), ("hmac_secret", hmac_secret)):
            if not value:
                raise ValueError(f"{name} is required")

        self.gateway_url = gateway_url
        self.timeout_seconds = timeout_seconds
        self.identity = f"gateway@{urlparse(gateway_url).netloc}"
        self._hmac_secret = hmac_secret
        self._http = requests.Session()
        self._http.headers.update({"Content-Type": "application/json", "X-API-Key": api_key})

    def send(self, message: MailMessage) -> None:
        """
        Deliver message through the gateway.

        Raises:
            EmailGatewayError: Transport failure, non-JSON reply, HTTP error or success=false.
        """
        body = json.dumps(
            {"from": message.sender, "to": message.to, "subject": message.subject, "html": message.html},
            separators=(",", ":"),
        )
        try:
            response = self._http.post(
                self.gateway_url,
                data=body,
                headers={"X-Signature": sign_body(self._hmac_secret, body)},
                timeout=self.timeout_seconds,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"{self.identity} unreachable: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        try:
            reply = response.json()
        except (json.JSONDecodeError, requests.exceptions.JSONDecodeError):
            logger.error(f"{self.identity} replied with non-JSON ({response.status_code})")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not reply.get("success"):
            reason = reply.get("message", "Unknown error")
            logger.error(f"{self.identity} rejected mail to {message.to}: {reason}")
            raise EmailGatewayError(f"Gateway error: {reason}")

        logger.info(f"Email sent to {message.to} via {self.identity}: {message.subject}")

    def close(self) -> None:
        self._http.close()
