# sharevault/crypto/envelope.py
"""
Envelope codec: IV || AES-256-CBC(PKCS#7(plaintext)).

There is no authentication tag. A wrong key usually trips the padding check,
but roughly 1 in 256 attempts yields valid-looking padding and returns garbage.
Callers that need to reject wrong keys compare against the ledger commitment
first (see `keys.matches_commitment`).
"""

import os
from typing import Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sharevault.crypto.keys import key_bytes
from sharevault.errors import CryptoError

IV_SIZE = 16
BLOCK_SIZE_BITS = algorithms.AES.block_size   # 128


def encrypt(plaintext: bytes, key: Union[str, bytes]) -> bytes:
    raw_key = key_bytes(key)
    iv = os.urandom(IV_SIZE)

    padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
    padded = padder.update(bytes(plaintext)) + padder.finalize()

    encryptor = Cipher(algorithms.AES(raw_key), modes.CBC(iv)).encryptor()
    return iv + encryptor.update(padded) + encryptor.finalize()


def decrypt(envelope: bytes, key: Union[str, bytes]) -> bytes:
    raw_key = key_bytes(key)
    if len(envelope) < IV_SIZE:
        raise CryptoError(f"Envelope too short: {len(envelope)} bytes, need at least {IV_SIZE}")

    iv, ciphertext = envelope[:IV_SIZE], envelope[IV_SIZE:]
    if not ciphertext or len(ciphertext) % (BLOCK_SIZE_BITS // 8):
        raise CryptoError("Ciphertext is not a positive multiple of the block size")

    decryptor = Cipher(algorithms.AES(raw_key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise CryptoError("Padding check failed (wrong key or corrupted envelope)") from e


def envelope_iv(envelope: bytes) -> bytes:
    return envelope[:IV_SIZE]
