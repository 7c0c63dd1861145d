"""Low-level cryptographic primitives for share tokens.

Pure functions with no domain knowledge.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from app.errors import DecryptionError

KEY_LENGTH = 32
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16

# Exactly what encrypt_token emits: lowercase hex, no separators inside a segment
_WIRE_TOKEN_RE = re.compile(
    rf"[0-9a-f]{{{IV_LENGTH * 2}}}:[0-9a-f]{{{AUTH_TAG_LENGTH * 2}}}:(?:[0-9a-f]{{2}})*"
)


def generate_token_key() -> bytes:
    """Generate a fresh random 256-bit AES key."""
    return AESGCM.generate_key(bit_length=256)


def derive_token_key(material: str | None) -> bytes:
    """Turn operator-supplied key material into a 32-byte AES key.

    A 64-char hex string or a 32-byte string is used verbatim. Anything
    else is hashed with SHA-256. Missing material yields a random key,
    which does not survive a process restart.
    """
    if not material:
        return generate_token_key()
    try:
        decoded = bytes.fromhex(material)
    except ValueError:
        decoded = b""
    if len(decoded) == KEY_LENGTH:
        return decoded
    raw = material.encode("utf-8")
    if len(raw) == KEY_LENGTH:
        return raw
    return hashlib.sha256(raw).digest()


def derive_subkey(key: bytes, info: bytes, length: int = 32) -> bytes:
    """Derive a sub-key using HKDF-SHA256.

    Salt is None because the input key already has 256 bits of entropy.
    """
    hkdf = HKDF(
        algorithm=SHA256(),
        length=length,
        salt=None,
        info=info,
    )
    return hkdf.derive(key)


def encrypt_token(key: bytes, plaintext: str) -> str:
    """Encrypt text with AES-256-GCM.

    Returns ``ivHex:authTagHex:ciphertextHex`` with a fresh 16-byte IV.
    """
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt_token(key: bytes, token: str) -> str:
    """Decrypt a string produced by encrypt_token.

    Every failure (structure, hex, lengths, tag, encoding) raises
    DecryptionError; no partial plaintext is ever returned.
    """
    if not isinstance(token, str) or not _WIRE_TOKEN_RE.fullmatch(token):
        raise DecryptionError("Invalid encrypted token format")
    parts = token.split(":")
    try:
        iv = bytes.fromhex(parts[0])
        tag = bytes.fromhex(parts[1])
        ciphertext = bytes.fromhex(parts[2])
    except ValueError as exc:
        raise DecryptionError("Invalid encrypted token encoding") from exc
    if len(iv) != IV_LENGTH or len(tag) != AUTH_TAG_LENGTH:
        raise DecryptionError("Invalid encrypted token format")
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, UnicodeDecodeError) as exc:
        raise DecryptionError("Token authentication failed") from exc


class TokenCipher:
    """Process-wide holder of the share-token key.

    Built once at startup and injected; the key is read-only afterwards.
    """

    __slots__ = ("_key", "ephemeral")

    def __init__(self, key: bytes, ephemeral: bool = False) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Token key must be {KEY_LENGTH} bytes, got {len(key)}")
        self._key = bytes(key)
        self.ephemeral = ephemeral

    @classmethod
    def from_material(cls, material: str | None) -> TokenCipher:
        return cls(derive_token_key(material), ephemeral=not material)

    def derive_subkey(self, info: bytes) -> bytes:
        """Derive an independent key (e.g. for URL signing) from the token key."""
        return derive_subkey(self._key, info)

    def encrypt(self, plaintext: str) -> str:
        return encrypt_token(self._key, plaintext)

    def decrypt(self, token: str) -> str:
        return decrypt_token(self._key, token)


def hmac_sha256(key: bytes, data: bytes) -> str:
    """Compute HMAC-SHA256(key, data). Returns hex-encoded digest."""
    return hmac.new(key, data, hashlib.sha256).hexdigest()


def sha256_hash(data: bytes) -> str:
    """Compute SHA-256 hash. Returns hex-encoded digest."""
    return hashlib.sha256(data).hexdigest()


def token_fingerprint(token: str) -> str:
    """Short, non-reversible identifier for a token, safe to log."""
    return sha256_hash(token.encode("utf-8"))[:12]
