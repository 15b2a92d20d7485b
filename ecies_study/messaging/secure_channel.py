"""
Secure Messaging Module

ECIES-style envelopes:
- fresh ephemeral key pair per message
- ECDH (ephemeral secret, receiver static public key)
- HKDF-SHA256 -> 32-byte AES key
- AES-256-GCM with a fresh 96-bit nonce
- ECDSA signature by the sender's identity key over the ciphertext

Send:    Unsent -> Assembled -> InTransit
Receive: Received -> Decrypted | Rejected

Sealing is a pure construction; checking the signature is the receiver's job.
"""

import logging
from enum import Enum
from typing import Optional, Union

from cryptography.hazmat.primitives.asymmetric import ec

from ..config import AES_KEY_SIZE, DEFAULT_CONFIG, SchemeConfig, SignatureScope
from ..core_crypto import aead
from ..core_crypto.curve import (
    KeyPair,
    PublicKeyLike,
    coerce_public_key,
    diffie_hellman,
    encode_public_key,
    generate_keypair,
    public_key_fingerprint,
)
from ..core_crypto.kdf import derive_key
from ..core_crypto.random_source import RandomSource
from ..core_crypto.signing import require_valid_signature, sign, verify
from ..errors import (
    ConfigurationError,
    ECIESError,
    InvalidStateTransition,
    SignatureVerificationFailed,
)
from ..integration.event_logger import EventLogger
from .envelope import MessageEnvelope, signing_payload

logger = logging.getLogger(__name__)

Plaintext = Union[bytes, str]


def _to_bytes(plaintext: Plaintext) -> bytes:
    if isinstance(plaintext, str):
        return plaintext.encode("utf-8")
    if isinstance(plaintext, (bytes, bytearray, memoryview)):
        return bytes(plaintext)
    raise TypeError(f"Plaintext must be str or bytes, got {type(plaintext).__name__}")


def _session_key(shared_secret: bytes, config: SchemeConfig) -> bytes:
    return derive_key(shared_secret, AES_KEY_SIZE, info=config.kdf_info)


# ============================================================================
# Send / receive paths
# ============================================================================

def seal_message(plaintext: Plaintext,
                 sender_identity: KeyPair,
                 receiver_public: PublicKeyLike,
                 *,
                 rng: Optional[RandomSource] = None,
                 config: Optional[SchemeConfig] = None) -> MessageEnvelope:
    """
    Encrypt and sign a message for one receiver.

    Args:
        plaintext: Message (str is UTF-8 encoded)
        sender_identity: Sender's long-term key pair (signs the ciphertext)
        receiver_public: Receiver's static public key (object or SEC1 bytes)
        rng: Randomness for the ephemeral key and nonce
        config: Scheme parameters

    Returns:
        Immutable MessageEnvelope

    Raises:
        InvalidPoint: If receiver_public is not a usable curve point
        EncryptionFailure: If the cipher rejects its inputs
        TypeError: If plaintext is neither str nor bytes-like
    """
    config = config or DEFAULT_CONFIG
    message = _to_bytes(plaintext)
    if sender_identity.curve_name != config.curve_name:
        raise ConfigurationError(
            f"Identity key is on {sender_identity.curve_name}, scheme uses {config.curve_name}"
        )
    receiver = coerce_public_key(receiver_public, config.curve_name)

    ephemeral = generate_keypair(rng, config.curve_name)
    shared_secret = diffie_hellman(ephemeral, receiver)
    key = _session_key(shared_secret, config)

    nonce = aead.generate_nonce(rng)
    ciphertext = aead.encrypt(key, nonce, message)

    receiver_bytes = encode_public_key(receiver)
    ephemeral_bytes = ephemeral.public_bytes()
    payload = signing_payload(ciphertext, ephemeral_bytes, receiver_bytes,
                              config.signature_scope)

    envelope = MessageEnvelope(
        ciphertext=ciphertext,
        receiver_public_key=receiver_bytes,
        sender_ephemeral_public_key=ephemeral_bytes,
        nonce=nonce,
        sender_identity_public_key=sender_identity.public_bytes(),
        signature=sign(sender_identity, payload),
        signature_scope=config.signature_scope,
    )
    logger.debug("Sealed %d-byte ciphertext from %s to %s",
                 len(ciphertext), sender_identity.fingerprint(),
                 public_key_fingerprint(receiver_bytes))
    return envelope


def decrypt_envelope(envelope: MessageEnvelope,
                     receiver_secret: Union[KeyPair, ec.EllipticCurvePrivateKey],
                     *,
                     config: Optional[SchemeConfig] = None) -> bytes:
    """
    Recompute the shared secret and decrypt, without checking the signature.

    Raises:
        InvalidPoint: If the ephemeral key in the envelope is invalid
        AuthenticationFailure: Wrong receiver key or tampered envelope
    """
    config = config or DEFAULT_CONFIG
    shared_secret = diffie_hellman(receiver_secret, envelope.sender_ephemeral_public_key)
    key = _session_key(shared_secret, config)
    return aead.decrypt(key, envelope.nonce, envelope.ciphertext)


def verify_envelope(envelope: MessageEnvelope,
                    config: Optional[SchemeConfig] = None) -> bool:
    """Check the envelope signature against its claimed sender."""
    config = config or DEFAULT_CONFIG
    return verify(envelope.sender_identity_public_key, envelope.signed_bytes(),
                  envelope.signature, config.curve_name)


def open_message(envelope: MessageEnvelope,
                 receiver_keys: KeyPair,
                 *,
                 expected_sender: Optional[PublicKeyLike] = None,
                 verify_signature: Optional[bool] = None,
                 config: Optional[SchemeConfig] = None) -> bytes:
    """
    Receive path: authenticate the sender, then decrypt.

    Args:
        envelope: Envelope from transport
        receiver_keys: Receiver's static key pair
        expected_sender: Identity key the caller trusts for this peer. This
            scheme does not bind keys to real identities; that is up to the caller.
        verify_signature: Override config.verify_on_receive
        config: Scheme parameters

    Returns:
        Plaintext bytes

    Raises:
        SignatureVerificationFailed: Wrong sender, bad signature, or a weaker
            signature scope than the config requires
        MalformedSignature: Unparseable signature
        AuthenticationFailure: Decryption failed
        InvalidPoint: Invalid key in the envelope
    """
    config = config or DEFAULT_CONFIG
    if verify_signature is None:
        verify_signature = config.verify_on_receive

    if expected_sender is not None:
        trusted = encode_public_key(coerce_public_key(expected_sender, config.curve_name))
        if trusted != envelope.sender_identity_public_key:
            raise SignatureVerificationFailed("Envelope sender is not the expected identity")

    if verify_signature:
        if (config.signature_scope is SignatureScope.CONTEXT
                and envelope.signature_scope is not SignatureScope.CONTEXT):
            raise SignatureVerificationFailed("Envelope signature does not cover its context")
        require_valid_signature(envelope.sender_identity_public_key,
                                envelope.signed_bytes(), envelope.signature,
                                config.curve_name)

    return decrypt_envelope(envelope, receiver_keys, config=config)


# ============================================================================
# Transfer state machine
# ============================================================================

class TransferState(Enum):
    UNSENT = "unsent"
    ASSEMBLED = "assembled"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    DECRYPTED = "decrypted"
    REJECTED = "rejected"


_TRANSITIONS = {
    TransferState.UNSENT: {TransferState.ASSEMBLED, TransferState.REJECTED},
    TransferState.ASSEMBLED: {TransferState.IN_TRANSIT, TransferState.REJECTED},
    TransferState.IN_TRANSIT: {TransferState.RECEIVED, TransferState.REJECTED},
    TransferState.RECEIVED: {TransferState.DECRYPTED, TransferState.REJECTED},
    TransferState.DECRYPTED: set(),
    TransferState.REJECTED: set(),
}

TERMINAL_STATES = frozenset({TransferState.DECRYPTED, TransferState.REJECTED})


class MessageTransfer:
    """
    Lifecycle of one message.

    The sending side starts at UNSENT; the receiving side starts at RECEIVED
    via MessageTransfer.incoming(). DECRYPTED and REJECTED are final; there
    are no retries at this layer.
    """

    def __init__(self, config: Optional[SchemeConfig] = None,
                 rng: Optional[RandomSource] = None):
        self._config = config or DEFAULT_CONFIG
        self._rng = rng
        self._state = TransferState.UNSENT
        self._envelope: Optional[MessageEnvelope] = None
        self._error: Optional[Exception] = None

    @classmethod
    def incoming(cls, envelope: MessageEnvelope,
                 config: Optional[SchemeConfig] = None) -> 'MessageTransfer':
        """Receiver-side transfer for an envelope handed over by transport."""
        transfer = cls(config)
        transfer._envelope = envelope
        transfer._state = TransferState.RECEIVED
        return transfer

    @property
    def state(self) -> TransferState:
        return self._state

    @property
    def envelope(self) -> Optional[MessageEnvelope]:
        return self._envelope

    @property
    def error(self) -> Optional[Exception]:
        """The failure that moved this transfer to REJECTED, if any."""
        return self._error

    @property
    def is_final(self) -> bool:
        return self._state in TERMINAL_STATES

    def _advance(self, new_state: TransferState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise InvalidStateTransition(
                f"Cannot move from {self._state.value} to {new_state.value}"
            )
        logger.debug("Transfer %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    def _reject(self, error: Exception) -> None:
        self._error = error
        self._advance(TransferState.REJECTED)
        logger.warning("Transfer rejected: %s", type(error).__name__)

    def seal(self, plaintext: Plaintext, sender_identity: KeyPair,
             receiver_public: PublicKeyLike) -> MessageEnvelope:
        """UNSENT -> ASSEMBLED, or REJECTED if sealing fails."""
        if self._state is not TransferState.UNSENT:
            raise InvalidStateTransition(f"Cannot seal from {self._state.value}")
        try:
            envelope = seal_message(plaintext, sender_identity, receiver_public,
                                    rng=self._rng, config=self._config)
        except Exception as exc:
            self._reject(exc)
            raise
        self._envelope = envelope
        self._advance(TransferState.ASSEMBLED)
        return envelope

    def dispatch(self) -> MessageEnvelope:
        """ASSEMBLED -> IN_TRANSIT; returns the envelope for transport."""
        self._advance(TransferState.IN_TRANSIT)
        return self._envelope

    def deliver(self) -> None:
        """IN_TRANSIT -> RECEIVED."""
        self._advance(TransferState.RECEIVED)

    def open(self, receiver_keys: KeyPair,
             expected_sender: Optional[PublicKeyLike] = None,
             verify_signature: Optional[bool] = None) -> bytes:
        """
        RECEIVED -> DECRYPTED, or REJECTED on any failure.

        The failure is recorded on the transfer and re-raised.
        """
        if self._state is not TransferState.RECEIVED:
            raise InvalidStateTransition(f"Cannot open from {self._state.value}")
        try:
            plaintext = open_message(self._envelope, receiver_keys,
                                     expected_sender=expected_sender,
                                     verify_signature=verify_signature,
                                     config=self._config)
        except Exception as exc:
            self._reject(exc)
            raise
        self._advance(TransferState.DECRYPTED)
        return plaintext


# ============================================================================
# Per-party facade
# ============================================================================

class SecureMessenger:
    """
    One party's endpoint: identity keys plus scheme settings.

    Example:
        alice = SecureMessenger.create()
        bob = SecureMessenger.create()

        envelope = alice.send(b"milady", bob.public_key)
        plaintext = bob.receive(envelope, expected_sender=alice.public_key)
    """

    def __init__(self, identity_keys: KeyPair,
                 rng: Optional[RandomSource] = None,
                 config: Optional[SchemeConfig] = None,
                 event_logger: Optional[EventLogger] = None):
        """
        Args:
            identity_keys: Long-term key pair (signs sent mail, decrypts received mail)
            rng: Randomness for ephemeral keys and nonces
            config: Scheme parameters
            event_logger: Optional audit trail
        """
        self._config = config or DEFAULT_CONFIG
        if identity_keys.curve_name != self._config.curve_name:
            raise ConfigurationError(
                f"Identity key is on {identity_keys.curve_name}, scheme uses {self._config.curve_name}"
            )
        self._identity_keys = identity_keys
        self._rng = rng
        self._events = event_logger

    @classmethod
    def create(cls, rng: Optional[RandomSource] = None,
               config: Optional[SchemeConfig] = None,
               event_logger: Optional[EventLogger] = None) -> 'SecureMessenger':
        """New messenger with a freshly generated identity key."""
        config = config or DEFAULT_CONFIG
        identity = generate_keypair(rng, config.curve_name)
        if event_logger is not None:
            event_logger.log_key_generated(identity.public_key, role="identity")
        return cls(identity, rng=rng, config=config, event_logger=event_logger)

    @property
    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._identity_keys.public_key

    @property
    def public_bytes(self) -> bytes:
        return self._identity_keys.public_bytes()

    @property
    def fingerprint(self) -> str:
        return self._identity_keys.fingerprint()

    @property
    def config(self) -> SchemeConfig:
        return self._config

    def send(self, plaintext: Plaintext,
             receiver_public: PublicKeyLike) -> MessageEnvelope:
        """Seal a message for receiver_public and return it ready for transport."""
        transfer = MessageTransfer(self._config, self._rng)
        envelope = transfer.seal(plaintext, self._identity_keys, receiver_public)

        if self._events is not None:
            self._events.log_key_exchange(envelope.sender_ephemeral_public_key,
                                          envelope.receiver_public_key,
                                          self._config.curve_name)
            self._events.log_message_seal(self.public_key, envelope.receiver_public_key,
                                          envelope.ciphertext,
                                          envelope.signature_scope.value)
        return transfer.dispatch()

    def receive(self, envelope: MessageEnvelope,
                expected_sender: Optional[PublicKeyLike] = None,
                verify_signature: Optional[bool] = None) -> bytes:
        """
        Open an envelope addressed to this party.

        Raises:
            ECIESError subclasses, as open_message(); failures are audited first.
        """
        transfer = MessageTransfer.incoming(envelope, self._config)
        if verify_signature is None:
            verify_signature = self._config.verify_on_receive

        try:
            plaintext = transfer.open(self._identity_keys, expected_sender, verify_signature)
        except ECIESError as exc:
            if self._events is not None:
                if isinstance(exc, SignatureVerificationFailed):
                    self._events.log_signature(self.public_key,
                                               envelope.sender_identity_public_key, False)
                self._events.log_rejection(self.public_key,
                                           envelope.sender_identity_public_key,
                                           type(exc).__name__)
            raise

        if self._events is not None:
            if verify_signature:
                self._events.log_signature(self.public_key,
                                           envelope.sender_identity_public_key, True)
            self._events.log_message_open(self.public_key,
                                          envelope.sender_identity_public_key,
                                          envelope.ciphertext, verify_signature)
        return plaintext

    def __repr__(self) -> str:
        return f"SecureMessenger(identity={self.fingerprint}, curve={self._config.curve_name})"
