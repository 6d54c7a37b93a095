"""Hashing, cipher and key helpers shared by both protocol generations."""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import cast

from cryptography.hazmat.primitives import padding, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asymmetric_padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

SEED_SIZE = 16


def _sha1(payload: bytes) -> bytes:
    return hashlib.sha1(payload).digest()  # noqa: S324


def _sha1_hex(payload: bytes) -> str:
    return hashlib.sha1(payload).hexdigest()  # noqa: S324


def _sha256(payload: bytes) -> bytes:
    return hashlib.sha256(payload).digest()


def generate_seed(size: int = SEED_SIZE) -> bytes:
    """Return random bytes for a handshake seed."""
    return secrets.token_bytes(size)


def aes_cbc_encrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    """Encrypt data with AES-CBC after PKCS#7 block padding."""
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded_data = padder.update(data) + padder.finalize()
    return encryptor.update(padded_data) + encryptor.finalize()


def aes_cbc_decrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    """Decrypt AES-CBC data and strip the PKCS#7 block padding."""
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    decrypted = decryptor.update(data) + decryptor.finalize()
    return unpadder.update(decrypted) + unpadder.finalize()


class KeyPair:
    """Class for generating key pairs."""

    @staticmethod
    def create_key_pair(key_size: int = 1024) -> KeyPair:
        """Create a key pair."""
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        public_key = private_key.public_key()
        return KeyPair(private_key, public_key)

    @staticmethod
    def create_from_der_keys(
        private_key_der_b64: str, public_key_der_b64: str
    ) -> KeyPair:
        """Create a key pair."""
        key_bytes = base64.b64decode(private_key_der_b64.encode())
        private_key = cast(
            rsa.RSAPrivateKey, serialization.load_der_private_key(key_bytes, None)
        )
        key_bytes = base64.b64decode(public_key_der_b64.encode())
        public_key = cast(
            rsa.RSAPublicKey, serialization.load_der_public_key(key_bytes, None)
        )

        return KeyPair(private_key, public_key)

    def __init__(
        self, private_key: rsa.RSAPrivateKey, public_key: rsa.RSAPublicKey
    ) -> None:
        self.private_key = private_key
        self.public_key = public_key
        self.private_key_der_bytes = self.private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        self.public_key_der_bytes = self.public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        self.private_key_der_b64 = base64.b64encode(self.private_key_der_bytes).decode()
        self.public_key_der_b64 = base64.b64encode(self.public_key_der_bytes).decode()

    def get_public_pem(self) -> str:
        """Get public key in the PEM layout the device expects."""
        return (
            "-----BEGIN PUBLIC KEY-----\n"
            + self.public_key_der_b64
            + "\n-----END PUBLIC KEY-----\n"
        )

    def decrypt_handshake_key(self, encrypted_key: bytes) -> bytes:
        """Decrypt an aes handshake key."""
        return self.private_key.decrypt(encrypted_key, asymmetric_padding.PKCS1v15())
