"""Session id construction and verification.

A session id is `hex(prefix) + hex(mac)` where prefix is random bytes and
mac = HMAC-SHA256(secret, prefix || str(user_id)). The user id is not
embedded; it travels alongside the token (companion cookie) and is only
trusted once the MAC over it checks out.
"""

import binascii
import hashlib
import hmac
import secrets

PREFIX_BYTES = 16
MAC_BYTES = hashlib.sha256().digest_size
TOKEN_LENGTH = 2 * (PREFIX_BYTES + MAC_BYTES)


class SessionTokenCodec:
    """Mint and verify session ids bound to a user id."""

    def __init__(self, secret: str | bytes):
        """
        Args:
            secret: Signing secret (from Vault). Required.

        Raises:
            ValueError: If secret is empty. Fatal at startup.
        """
        if not secret:
            raise ValueError("session signing secret is required")
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else secret

    def _mac(self, prefix: bytes, user_id: int) -> bytes:
        return hmac.new(
            self._secret,
            prefix + str(user_id).encode("ascii"),
            hashlib.sha256,
        ).digest()

    def mint(self, user_id: int) -> str:
        """Create a fresh session id for user_id."""
        prefix = secrets.token_bytes(PREFIX_BYTES)
        return (prefix + self._mac(prefix, user_id)).hex()

    def verify(self, token: str, user_id: int) -> bool:
        """
        Check that token was minted for user_id with this secret.

        Never raises. Malformed tokens and MAC mismatches both return False.
        """
        if not isinstance(token, str) or isinstance(user_id, bool) or not isinstance(user_id, int):
            return False
        if len(token) != TOKEN_LENGTH:
            return False
        try:
            raw = bytes.fromhex(token)
        except (ValueError, binascii.Error):
            return False
        if len(raw) != PREFIX_BYTES + MAC_BYTES:
            return False
        prefix, mac = raw[:PREFIX_BYTES], raw[PREFIX_BYTES:]
        return hmac.compare_digest(mac, self._mac(prefix, user_id))
