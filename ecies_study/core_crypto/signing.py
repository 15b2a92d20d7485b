"""
Signer/Verifier

ECDSA with SHA-256 on the identity curve. Signatures are fixed-size
r || s (64 bytes), not DER, so the envelope field has a natural length.

What gets signed is the ciphertext (or a digest binding it to its context),
never the plaintext.
"""

import logging
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from ..config import CURVE_ORDERS, SIGNATURE_SIZE
from ..errors import MalformedSignature, SignatureVerificationFailed
from .curve import KeyPair, PublicKeyLike, coerce_public_key, public_key_fingerprint

logger = logging.getLogger(__name__)

_COMPONENT_SIZE = SIGNATURE_SIZE // 2


def _private_key(identity_secret) -> ec.EllipticCurvePrivateKey:
    return identity_secret.secret_key if isinstance(identity_secret, KeyPair) else identity_secret


def sign(identity_secret: Union[KeyPair, ec.EllipticCurvePrivateKey],
         message_bytes: bytes) -> bytes:
    """
    Sign message_bytes with the identity key.

    Args:
        identity_secret: Identity key pair or private key
        message_bytes: Bytes to sign (the ciphertext)

    Returns:
        64-byte r || s signature
    """
    private_key = _private_key(identity_secret)
    der = private_key.sign(message_bytes, ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der)
    return r.to_bytes(_COMPONENT_SIZE, "big") + s.to_bytes(_COMPONENT_SIZE, "big")


def _decode_signature(signature: bytes, curve_name: str) -> bytes:
    """Check r || s and convert it to DER."""
    if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_SIZE:
        raise MalformedSignature(f"Signature must be {SIGNATURE_SIZE} bytes")
    order = CURVE_ORDERS[curve_name]
    r = int.from_bytes(signature[:_COMPONENT_SIZE], "big")
    s = int.from_bytes(signature[_COMPONENT_SIZE:], "big")
    if not (1 <= r < order and 1 <= s < order):
        raise MalformedSignature("Signature components out of range")
    return encode_dss_signature(r, s)


def verify(identity_public: PublicKeyLike,
           message_bytes: bytes,
           signature: bytes,
           curve_name: str = "secp256k1") -> bool:
    """
    Verify an r || s signature.

    Args:
        identity_public: Claimed signer's public key (object or SEC1 bytes)
        message_bytes: Bytes that were signed, bit for bit
        signature: 64-byte r || s
        curve_name: Curve for byte-encoded keys

    Returns:
        True if valid, False for a well-formed signature that does not match

    Raises:
        MalformedSignature: If the signature cannot be parsed
        InvalidPoint: If the public key is unusable
    """
    if isinstance(identity_public, ec.EllipticCurvePublicKey):
        curve_name = identity_public.curve.name
    public_key = coerce_public_key(identity_public, curve_name)
    der = _decode_signature(signature, curve_name)
    try:
        public_key.verify(der, message_bytes, ec.ECDSA(hashes.SHA256()))
        return True
    except InvalidSignature:
        return False


def require_valid_signature(identity_public: PublicKeyLike,
                            message_bytes: bytes,
                            signature: bytes,
                            curve_name: str = "secp256k1") -> None:
    """Like verify(), but raises SignatureVerificationFailed on mismatch."""
    if not verify(identity_public, message_bytes, signature, curve_name):
        logger.warning("Signature from %s did not verify",
                       public_key_fingerprint(identity_public))
        raise SignatureVerificationFailed("Signature verification failed")


class ECDSASigner:
    """ECDSA signer bound to an identity key pair."""

    def __init__(self, key_pair: KeyPair):
        self._key_pair = key_pair

    @property
    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._key_pair.public_key

    def sign(self, data: bytes) -> bytes:
        return sign(self._key_pair, data)

    def verify_with_key(self, data: bytes, signature: bytes) -> bool:
        """Verify signature using own public key."""
        return verify(self._key_pair.public_key, data, signature)
