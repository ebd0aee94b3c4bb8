"""Secrets handling for link records.

Three separate primitives, all keyed from ``URL_ENCRYPTION_SECRET``:

- ``encrypt`` / ``decrypt``: reversible Fernet encryption of destination URLs.
  The stored ciphertext is recovered at resolution time.
- ``digest``: keyed HMAC-SHA256 of a destination. Fernet ciphertext is not
  deterministic, so duplicate detection queries this column instead.
- ``hash_password`` / ``verify_password``: one-way salted bcrypt hashes for
  link-level passwords. Plaintext passwords are never stored.
"""

import base64
import hashlib
import hmac

import bcrypt
from cryptography.fernet import Fernet, InvalidToken

__all__ = ["URLCipher", "InvalidToken", "hash_password", "verify_password"]


class URLCipher:
    def __init__(self, secret: str) -> None:
        assert secret, "secret must be non-empty"
        raw = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(raw))
        self._mac_key = hashlib.sha256(b"destination-digest:" + secret.encode("utf-8")).digest()

    def encrypt(self, url: str) -> str:
        return self._fernet.encrypt(url.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Raises ``InvalidToken`` if the ciphertext was not produced with this secret."""
        return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")

    def digest(self, url: str) -> str:
        return hmac.new(self._mac_key, url.encode("utf-8"), hashlib.sha256).hexdigest()


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
