"""
Scheme configuration.

Sizes are fixed constants of the construction. The tunable parts (curve,
what the sender signs, KDF context, receive-side verification) live in
SchemeConfig, which can be loaded from the environment:

    ECIES_CURVE              secp256k1 (default) | secp256r1
    ECIES_SIGNATURE_SCOPE    ciphertext (default) | context
    ECIES_KDF_INFO           HKDF info string, empty by default
    ECIES_VERIFY_ON_RECEIVE  1 (default) | 0
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from cryptography.hazmat.primitives.asymmetric import ec

from .errors import ConfigurationError


# Constants
AES_KEY_SIZE = 32           # 256 bits
NONCE_SIZE = 12             # 96 bits for GCM
TAG_SIZE = 16               # 128 bits for GCM tag
SIGNATURE_SIZE = 64         # r || s, 32 bytes each
COMPRESSED_POINT_SIZE = 33  # SEC1 compressed point
HKDF_HASH_SIZE = 32         # SHA-256 output
HKDF_MAX_LENGTH = 255 * HKDF_HASH_SIZE
ENVELOPE_VERSION = 1

SUPPORTED_CURVES: Dict[str, ec.EllipticCurve] = {
    "secp256k1": ec.SECP256K1(),
    "secp256r1": ec.SECP256R1(),
}

# Group orders, needed for scalar sampling and signature range checks
CURVE_ORDERS: Dict[str, int] = {
    "secp256k1": 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141,
    "secp256r1": 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551,
}


class SignatureScope(Enum):
    """Which bytes the sender's identity key signs."""

    CIPHERTEXT = "ciphertext"  # ciphertext only
    CONTEXT = "context"        # SHA-256(ciphertext || ephemeral || receiver)

    @property
    def wire_id(self) -> int:
        return _SCOPE_WIRE_IDS[self]

    @classmethod
    def from_wire_id(cls, value: int) -> "SignatureScope":
        for scope, wire_id in _SCOPE_WIRE_IDS.items():
            if wire_id == value:
                return scope
        raise ValueError(f"Unknown signature scope id {value}")


_SCOPE_WIRE_IDS = {
    SignatureScope.CIPHERTEXT: 0,
    SignatureScope.CONTEXT: 1,
}


@dataclass(frozen=True)
class SchemeConfig:
    """Tunable parameters of the envelope scheme."""

    curve_name: str = "secp256k1"
    signature_scope: SignatureScope = SignatureScope.CIPHERTEXT
    kdf_info: bytes = b""
    verify_on_receive: bool = True

    def __post_init__(self):
        if self.curve_name not in SUPPORTED_CURVES:
            raise ConfigurationError(
                f"Unsupported curve {self.curve_name!r}; "
                f"expected one of {sorted(SUPPORTED_CURVES)}"
            )
        if not isinstance(self.signature_scope, SignatureScope):
            raise ConfigurationError(f"Invalid signature scope {self.signature_scope!r}")
        if not isinstance(self.kdf_info, bytes):
            raise ConfigurationError("kdf_info must be bytes")

    @property
    def curve(self) -> ec.EllipticCurve:
        return SUPPORTED_CURVES[self.curve_name]

    @property
    def order(self) -> int:
        return CURVE_ORDERS[self.curve_name]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SchemeConfig":
        """
        Build a config from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            SchemeConfig with defaults for unset variables

        Raises:
            ConfigurationError: If a variable holds an unsupported value
        """
        env = os.environ if environ is None else environ

        curve_name = env.get("ECIES_CURVE", "secp256k1").strip().lower()

        scope_value = env.get("ECIES_SIGNATURE_SCOPE", SignatureScope.CIPHERTEXT.value)
        try:
            scope = SignatureScope(scope_value.strip().lower())
        except ValueError:
            raise ConfigurationError(f"Invalid ECIES_SIGNATURE_SCOPE {scope_value!r}") from None

        verify_value = env.get("ECIES_VERIFY_ON_RECEIVE", "1").strip().lower()
        if verify_value in ("1", "true", "yes", "on"):
            verify = True
        elif verify_value in ("0", "false", "no", "off"):
            verify = False
        else:
            raise ConfigurationError(f"Invalid ECIES_VERIFY_ON_RECEIVE {verify_value!r}")

        return cls(
            curve_name=curve_name,
            signature_scope=scope,
            kdf_info=env.get("ECIES_KDF_INFO", "").encode("utf-8"),
            verify_on_receive=verify,
        )


DEFAULT_CONFIG = SchemeConfig()
