"""
Keyed Mask Generator

Deterministic pseudorandom function from a mask id to a ring element. The raw
secret key is normalized once into an AES-128 key with SHA-256; every id is
then encrypted as a single 16-byte block in ECB mode and the ciphertext block
is reduced modulo the target modulus.

Identical (key, id) pairs always give identical masks. The key never leaves
this object.
"""

import logging
from typing import Iterable, List, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

log = logging.getLogger(__name__)

AES_KEY_SIZE = 16
BLOCK_SIZE = 16


def normalize_key(key_material: Union[bytes, str]) -> bytes:
    """
    Turn raw key material of any length into a fixed-size AES key.

    Args:
        key_material: Secret key bytes, or a text key (encoded as UTF-8)

    Returns:
        AES_KEY_SIZE bytes of key

    Raises:
        ValueError: If the key material is empty
    """
    if isinstance(key_material, str):
        key_material = key_material.encode("utf-8")
    if not key_material:
        raise ValueError("Key material must not be empty")

    digest = hashes.Hash(hashes.SHA256())
    digest.update(key_material)
    return digest.finalize()[:AES_KEY_SIZE]


def encode_id(mask_id: int) -> bytes:
    """Canonical single-block encoding of a mask id (unsigned big-endian)."""
    if mask_id < 0:
        raise ValueError(f"Mask id must be non-negative, got {mask_id}")
    return mask_id.to_bytes(BLOCK_SIZE, "big")


class KeyedMaskGenerator:
    """Maps mask ids to pseudorandom values in [0, modulus) under a secret key."""

    def __init__(self, key_material: Union[bytes, str]):
        self._cipher = Cipher(algorithms.AES(normalize_key(key_material)), modes.ECB())
        log.debug("Keyed mask generator initialized")

    def mask(self, mask_id: int, modulus: int) -> int:
        """
        Derive the mask for one id.

        Args:
            mask_id: Id assigned at encryption time
            modulus: Target modulus of the ring

        Returns:
            Pseudorandom value in [0, modulus)
        """
        encryptor = self._cipher.encryptor()
        block = encryptor.update(encode_id(mask_id)) + encryptor.finalize()
        return int.from_bytes(block, "big") % modulus

    def masks(self, mask_ids: Iterable[int], modulus: int) -> List[int]:
        """Derive the masks for several ids, in order."""
        return [self.mask(mask_id, modulus) for mask_id in mask_ids]

    def __repr__(self) -> str:
        return "<KeyedMaskGenerator AES-128>"
