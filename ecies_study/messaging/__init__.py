# Secure Messaging Module
"""
ECIES envelope assembly:
- ephemeral ECDH (secp256k1) with the receiver's static key
- HKDF-SHA256 key derivation
- AES-256-GCM authenticated encryption
- ECDSA signature by the sender's identity key over the ciphertext

Envelope: [receiver | ephemeral | sender | nonce | signature | ciphertext+tag]
"""

from .envelope import MessageEnvelope, signing_payload

from .secure_channel import (
    TransferState,
    MessageTransfer,
    SecureMessenger,
    seal_message,
    open_message,
    decrypt_envelope,
    verify_envelope,
)

__all__ = [
    'MessageEnvelope',
    'signing_payload',
    'TransferState',
    'MessageTransfer',
    'SecureMessenger',
    'seal_message',
    'open_message',
    'decrypt_envelope',
    'verify_envelope',
]
