"""
Curve Key Provider

Key pair generation and ECDH over secp256k1 (default) or P-256.

Public keys travel as SEC1 compressed points (33 bytes). Secret scalars are
sampled by rejection from the supplied RandomSource, so a deterministic
source yields deterministic key pairs.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from ..config import CURVE_ORDERS, SUPPORTED_CURVES
from ..errors import InvalidPoint
from .random_source import RandomSource, resolve_random_source

logger = logging.getLogger(__name__)

DEFAULT_CURVE_NAME = "secp256k1"

PublicKeyLike = Union[ec.EllipticCurvePublicKey, bytes]


@dataclass(frozen=True)
class KeyPair:
    """
    EC key pair.

    The same shape serves both roles:
    - ephemeral key: generated per message, used for one seal, then dropped
    - identity key: long-lived, signs outgoing ciphertexts and receives mail

    repr() never shows the secret.
    """
    secret_key: ec.EllipticCurvePrivateKey
    public_key: ec.EllipticCurvePublicKey

    @classmethod
    def generate(cls, rng: Optional[RandomSource] = None,
                 curve_name: str = DEFAULT_CURVE_NAME) -> "KeyPair":
        """Generate a fresh key pair (see generate_keypair)."""
        return generate_keypair(rng, curve_name)

    @classmethod
    def from_secret_scalar(cls, scalar: int,
                           curve_name: str = DEFAULT_CURVE_NAME) -> "KeyPair":
        """
        Rebuild a key pair from its secret scalar.

        Raises:
            ValueError: If scalar is not in [1, n-1]
        """
        curve = _curve(curve_name)
        order = CURVE_ORDERS[curve_name]
        if not 1 <= scalar < order:
            raise ValueError("Secret scalar must be in [1, n-1]")
        secret = ec.derive_private_key(scalar, curve)
        return cls(secret, secret.public_key())

    @property
    def curve_name(self) -> str:
        return self.public_key.curve.name

    @property
    def secret_scalar(self) -> int:
        return self.secret_key.private_numbers().private_value

    def public_bytes(self) -> bytes:
        """Public key as SEC1 compressed point (33 bytes)."""
        return encode_public_key(self.public_key)

    def fingerprint(self) -> str:
        """Short identifier for logs: first 16 hex chars of SHA-256(public_bytes)."""
        return public_key_fingerprint(self.public_key)

    def __repr__(self) -> str:
        return f"KeyPair(curve={self.curve_name}, public={self.fingerprint()})"


def _curve(curve_name: str) -> ec.EllipticCurve:
    try:
        return SUPPORTED_CURVES[curve_name]
    except KeyError:
        raise ValueError(f"Unsupported curve {curve_name!r}") from None


def generate_keypair(rng: Optional[RandomSource] = None,
                     curve_name: str = DEFAULT_CURVE_NAME) -> KeyPair:
    """
    Generate a key pair with a uniformly random secret scalar.

    Samples 32 bytes at a time and rejects candidates outside [1, n-1], so
    the zero scalar is never produced and there is no modulo bias.

    Args:
        rng: Random source (system CSPRNG if None)
        curve_name: Curve to generate on

    Returns:
        New KeyPair
    """
    _curve(curve_name)
    rng = resolve_random_source(rng)
    order = CURVE_ORDERS[curve_name]
    byte_len = (order.bit_length() + 7) // 8

    while True:
        candidate = int.from_bytes(rng.token_bytes(byte_len), "big")
        if 1 <= candidate < order:
            break

    key_pair = KeyPair.from_secret_scalar(candidate, curve_name)
    logger.debug("Generated %s key pair %s", curve_name, key_pair.fingerprint())
    return key_pair


def encode_public_key(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """SEC1 compressed encoding."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint
    )


def public_key_from_bytes(data: bytes,
                          curve_name: str = DEFAULT_CURVE_NAME) -> ec.EllipticCurvePublicKey:
    """
    Parse a SEC1 point (compressed or uncompressed).

    Raises:
        InvalidPoint: If the bytes are not a valid point on the curve.
            The point at infinity (b"\\x00") is rejected as well.
    """
    curve = _curve(curve_name)
    if not isinstance(data, (bytes, bytearray)) or len(data) < 2:
        raise InvalidPoint("Public key encoding is empty or truncated")
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(curve, bytes(data))
    except ValueError as exc:
        raise InvalidPoint(f"Public key is not a valid {curve_name} point") from exc


def coerce_public_key(peer_public: PublicKeyLike,
                      curve_name: str = DEFAULT_CURVE_NAME) -> ec.EllipticCurvePublicKey:
    """Accept a key object or SEC1 bytes; check it lives on curve_name."""
    if isinstance(peer_public, (bytes, bytearray)):
        return public_key_from_bytes(peer_public, curve_name)
    if not isinstance(peer_public, ec.EllipticCurvePublicKey):
        raise InvalidPoint(f"Expected an EC public key, got {type(peer_public).__name__}")
    if peer_public.curve.name != curve_name:
        raise InvalidPoint(
            f"Public key is on {peer_public.curve.name}, expected {curve_name}"
        )
    return peer_public


def public_key_fingerprint(public_key: PublicKeyLike) -> str:
    """First 16 hex chars of SHA-256 over the compressed point."""
    if isinstance(public_key, (bytes, bytearray)):
        encoded = bytes(public_key)
    else:
        encoded = encode_public_key(public_key)
    return hashlib.sha256(encoded).hexdigest()[:16]


def diffie_hellman(secret: Union[KeyPair, ec.EllipticCurvePrivateKey],
                   peer_public: PublicKeyLike) -> bytes:
    """
    ECDH: secret * peer_public, returned as the raw x-coordinate.

    The peer key is validated (decoding, curve membership, matching curve)
    before any arithmetic. The output is NOT a key; pass it through the KDF.

    Args:
        secret: Own key pair or private key
        peer_public: Peer public key object or SEC1 bytes

    Returns:
        Shared secret bytes (32 bytes for 256-bit curves)

    Raises:
        InvalidPoint: If peer_public is unusable
    """
    private_key = secret.secret_key if isinstance(secret, KeyPair) else secret
    curve_name = private_key.curve.name
    peer = coerce_public_key(peer_public, curve_name)

    try:
        shared = private_key.exchange(ec.ECDH(), peer)
    except ValueError as exc:
        raise InvalidPoint("Key agreement rejected the peer public key") from exc

    logger.debug("ECDH with peer %s produced %d bytes",
                 public_key_fingerprint(peer), len(shared))
    return shared
