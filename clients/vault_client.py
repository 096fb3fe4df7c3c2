"""
Vault access for Passport's secrets.

Logs in with AppRole from VAULT_* environment variables and reads KV v2
documents beneath the 'passport/' mount path. A missing variable or a
failed login stops startup.
"""

import os
import logging
from typing import Dict, Iterable

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "passport"

# Process-wide client and whole-document cache keyed by relative path
_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, Dict[str, str]] = {}


class VaultError(Exception):
    """A secret exists but is unusable. Startup cannot continue."""


class VaultClient:
    """AppRole-authenticated reader for passport/* KV v2 secrets."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
    ):
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not (role_id and secret_id):
            raise ValueError("VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required")

        if namespace:
            self.client = hvac.Client(url=self.vault_addr, namespace=namespace)
        else:
            self.client = hvac.Client(url=self.vault_addr)
        self._login(role_id, secret_id)

        logger.info(f"Vault client ready for {self.vault_addr}")

    def _login(self, role_id: str, secret_id: str) -> None:
        try:
            login = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except Exception as e:
            logger.error(f"AppRole login rejected: {e}")
            raise PermissionError(f"AppRole authentication failed: {e}")
        self.client.token = login["auth"]["client_token"]
        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed: token not accepted")

    def read_secret(self, path: str) -> Dict[str, str]:
        """
        Fetch the whole KV v2 document at passport/<path>.

        Raises:
            PermissionError: Path is absent or the token may not read it.
        """
        full_path = f"{_SECRET_PREFIX}/{path}"
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath:
            logger.error(f"No secret at {full_path}")
            raise PermissionError(f"Secret path '{full_path}' not found in Vault")
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Vault denied read of {full_path}: {e}")
            raise PermissionError(f"Access denied to secret '{full_path}': {e}")
        return response["data"]["data"]

    def get_secret(self, path: str, field: str) -> str:
        """Single field of passport/<path>; KeyError names the fields that do exist."""
        document = self.read_secret(path)
        if field not in document:
            raise KeyError(
                f"Field '{field}' not found in secret '{_SECRET_PREFIX}/{path}'. "
                f"Available: {', '.join(document)}"
            )
        return document[field]


def _vault() -> VaultClient:
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


def _cached_fields(path: str, fields: Iterable[str]) -> Dict[str, str]:
    """Pick fields out of passport/<path>, reading Vault at most once per path."""
    if path not in _secret_cache:
        _secret_cache[path] = _vault().read_secret(path)
    document = _secret_cache[path]
    missing = [f for f in fields if f not in document]
    if missing:
        raise KeyError(f"Secret '{_SECRET_PREFIX}/{path}' lacks fields: {', '.join(missing)}")
    return {f: document[f] for f in fields}


def get_database_url() -> str:
    return _cached_fields("database", ["url"])["url"]


def get_valkey_url() -> str:
    return _cached_fields("valkey", ["url"])["url"]


def get_session_secret() -> str:
    """HMAC key for session tokens. VaultError when blank."""
    secret = _cached_fields("session", ["signing_secret"])["signing_secret"]
    if not secret:
        raise VaultError("Session signing secret is empty")
    return secret


def get_email_config() -> Dict[str, str]:
    """gateway_url, api_key and hmac_secret for the HTTP mail gateway."""
    return _cached_fields("email", ["gateway_url", "api_key", "hmac_secret"])


def get_smtp_config(name: str) -> Dict[str, str]:
    """host, port, username and password of the SMTP account stored at smtp/<name>."""
    return _cached_fields(f"smtp/{name}", ["host", "port", "username", "password"])


def get_oauth_credentials(provider: str) -> Dict[str, str]:
    """client_id and client_secret registered with provider."""
    return _cached_fields(f"oauth/{provider}", ["client_id", "client_secret"])
