"""
ecies_study - authenticated hybrid encryption over secp256k1.

A sender seals a message for a receiver's static public key using a fresh
ephemeral key pair, and signs the ciphertext with its identity key:

    from ecies_study import KeyPair, seal_message, open_message

    alice = KeyPair.generate()
    bob = KeyPair.generate()
    envelope = seal_message(b"milady", alice, bob.public_key)
    assert open_message(envelope, bob, expected_sender=alice.public_key) == b"milady"
"""

import logging

from .config import DEFAULT_CONFIG, SchemeConfig, SignatureScope
from .errors import (
    ECIESError,
    InvalidPoint,
    KdfExpansionError,
    AuthenticationFailure,
    MalformedSignature,
    SignatureVerificationFailed,
    EncryptionFailure,
    MalformedEnvelope,
    InvalidStateTransition,
    ConfigurationError,
)
from .core_crypto import (
    KeyPair,
    RandomSource,
    SystemRandomSource,
    DeterministicRandomSource,
    generate_keypair,
    diffie_hellman,
    derive_key,
    sign,
    verify,
)
from .messaging import (
    MessageEnvelope,
    MessageTransfer,
    SecureMessenger,
    TransferState,
    seal_message,
    open_message,
    decrypt_envelope,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    'DEFAULT_CONFIG',
    'SchemeConfig',
    'SignatureScope',
    'ECIESError',
    'InvalidPoint',
    'KdfExpansionError',
    'AuthenticationFailure',
    'MalformedSignature',
    'SignatureVerificationFailed',
    'EncryptionFailure',
    'MalformedEnvelope',
    'InvalidStateTransition',
    'ConfigurationError',
    'KeyPair',
    'RandomSource',
    'SystemRandomSource',
    'DeterministicRandomSource',
    'generate_keypair',
    'diffie_hellman',
    'derive_key',
    'sign',
    'verify',
    'MessageEnvelope',
    'MessageTransfer',
    'SecureMessenger',
    'TransferState',
    'seal_message',
    'open_message',
    'decrypt_envelope',
]
