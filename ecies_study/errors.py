"""
Error taxonomy for the ECIES envelope scheme.

Every cryptographic failure surfaces as one of these typed exceptions.
Nothing in this package logs-and-swallows them or returns partial plaintext.
"""


class ECIESError(Exception):
    """Base class for all errors raised by ecies_study."""


class InvalidPoint(ECIESError, ValueError):
    """Public key is malformed, off-curve, the point at infinity, or on the wrong curve."""


class KdfExpansionError(ECIESError, ValueError):
    """Requested KDF output length is outside what HKDF can produce."""


class AuthenticationFailure(ECIESError):
    """AEAD tag did not verify; the ciphertext must be treated as tampered."""


class MalformedSignature(ECIESError, ValueError):
    """Signature bytes have the wrong length or out-of-range components."""


class SignatureVerificationFailed(ECIESError):
    """A well-formed signature did not validate against the claimed signer."""


class EncryptionFailure(ECIESError):
    """Cipher precondition violated (wrong key or nonce size)."""


class MalformedEnvelope(ECIESError, ValueError):
    """Serialized envelope could not be parsed."""


class InvalidStateTransition(ECIESError):
    """A message transfer was driven through an illegal state change."""


class ConfigurationError(ECIESError, ValueError):
    """Scheme configuration holds an unsupported value."""
