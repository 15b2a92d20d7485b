"""
Message Envelope

The single value a sender hands to transport. It holds everything the
receiver needs to recompute the shared secret, decrypt, and check authorship.
Secret scalars are never part of it.

Wire format (big-endian):
    version (1) | scope (1) |
    receiver_public_key (33) | sender_ephemeral_public_key (33) |
    sender_identity_public_key (33) | nonce (12) |
    signature_len (2) | signature | ciphertext_len (4) | ciphertext || tag
"""

import base64
import hashlib
import struct
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from ..config import (
    COMPRESSED_POINT_SIZE,
    ENVELOPE_VERSION,
    NONCE_SIZE,
    TAG_SIZE,
    SignatureScope,
)
from ..core_crypto.curve import DEFAULT_CURVE_NAME, public_key_from_bytes
from ..errors import MalformedEnvelope

_HEADER = struct.Struct(">BB")
_SIG_LEN = struct.Struct(">H")
_CT_LEN = struct.Struct(">I")


def signing_payload(ciphertext: bytes,
                    sender_ephemeral_public_key: bytes,
                    receiver_public_key: bytes,
                    scope: SignatureScope) -> bytes:
    """
    Bytes the sender's identity key signs.

    CIPHERTEXT: the ciphertext itself.
    CONTEXT: SHA-256(ciphertext || ephemeral || receiver), which ties the
    signature to this envelope's key agreement and recipient.
    """
    if scope is SignatureScope.CIPHERTEXT:
        return ciphertext
    if scope is SignatureScope.CONTEXT:
        digest = hashlib.sha256()
        digest.update(ciphertext)
        digest.update(sender_ephemeral_public_key)
        digest.update(receiver_public_key)
        return digest.digest()
    raise ValueError(f"Unknown signature scope {scope!r}")


@dataclass(frozen=True)
class MessageEnvelope:
    """
    Encrypted, signed message as transmitted.

    All keys are SEC1 compressed points; ciphertext carries the GCM tag.
    """
    ciphertext: bytes
    receiver_public_key: bytes
    sender_ephemeral_public_key: bytes
    nonce: bytes
    sender_identity_public_key: bytes
    signature: bytes
    signature_scope: SignatureScope = SignatureScope.CIPHERTEXT

    def signed_bytes(self) -> bytes:
        """The exact bytes the signature covers."""
        return signing_payload(
            self.ciphertext,
            self.sender_ephemeral_public_key,
            self.receiver_public_key,
            self.signature_scope,
        )

    def validate_points(self, curve_name: str = DEFAULT_CURVE_NAME) -> None:
        """
        Check all three keys decode as valid curve points.

        Raises:
            InvalidPoint: On the first key that does not
        """
        public_key_from_bytes(self.receiver_public_key, curve_name)
        public_key_from_bytes(self.sender_ephemeral_public_key, curve_name)
        public_key_from_bytes(self.sender_identity_public_key, curve_name)

    # Serialization

    def to_bytes(self) -> bytes:
        for name in ("receiver_public_key", "sender_ephemeral_public_key",
                     "sender_identity_public_key"):
            if len(getattr(self, name)) != COMPRESSED_POINT_SIZE:
                raise MalformedEnvelope(f"{name} must be {COMPRESSED_POINT_SIZE} bytes")
        if len(self.nonce) != NONCE_SIZE:
            raise MalformedEnvelope(f"nonce must be {NONCE_SIZE} bytes")
        if len(self.signature) > 0xFFFF:
            raise MalformedEnvelope("signature too long")
        if len(self.ciphertext) > 0xFFFFFFFF:
            raise MalformedEnvelope("ciphertext too long")

        return (
            _HEADER.pack(ENVELOPE_VERSION, self.signature_scope.wire_id) +
            self.receiver_public_key +
            self.sender_ephemeral_public_key +
            self.sender_identity_public_key +
            self.nonce +
            _SIG_LEN.pack(len(self.signature)) +
            self.signature +
            _CT_LEN.pack(len(self.ciphertext)) +
            self.ciphertext
        )

    @classmethod
    def from_bytes(cls, data: bytes,
                   curve_name: str = DEFAULT_CURVE_NAME) -> "MessageEnvelope":
        """
        Parse a serialized envelope.

        Raises:
            MalformedEnvelope: Truncated, trailing bytes, unknown version/scope
            InvalidPoint: If an embedded key is not a valid curve point
        """
        reader = _Reader(bytes(data))

        version, scope_id = reader.unpack(_HEADER)
        if version != ENVELOPE_VERSION:
            raise MalformedEnvelope(f"Unsupported envelope version {version}")
        try:
            scope = SignatureScope.from_wire_id(scope_id)
        except ValueError as exc:
            raise MalformedEnvelope(str(exc)) from exc

        receiver = reader.take(COMPRESSED_POINT_SIZE)
        ephemeral = reader.take(COMPRESSED_POINT_SIZE)
        sender = reader.take(COMPRESSED_POINT_SIZE)
        nonce = reader.take(NONCE_SIZE)
        (sig_len,) = reader.unpack(_SIG_LEN)
        signature = reader.take(sig_len)
        (ct_len,) = reader.unpack(_CT_LEN)
        if ct_len < TAG_SIZE:
            raise MalformedEnvelope("Ciphertext shorter than the authentication tag")
        ciphertext = reader.take(ct_len)
        reader.finish()

        envelope = cls(
            ciphertext=ciphertext,
            receiver_public_key=receiver,
            sender_ephemeral_public_key=ephemeral,
            nonce=nonce,
            sender_identity_public_key=sender,
            signature=signature,
            signature_scope=scope,
        )
        envelope.validate_points(curve_name)
        return envelope

    def to_hex(self) -> str:
        return self.to_bytes().hex()

    @classmethod
    def from_hex(cls, hex_str: str,
                 curve_name: str = DEFAULT_CURVE_NAME) -> "MessageEnvelope":
        try:
            data = bytes.fromhex(hex_str)
        except ValueError as exc:
            raise MalformedEnvelope("Envelope is not valid hex") from exc
        return cls.from_bytes(data, curve_name)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form with base64 fields."""
        def b64(value: bytes) -> str:
            return base64.b64encode(value).decode("ascii")

        return {
            'version': ENVELOPE_VERSION,
            'signature_scope': self.signature_scope.value,
            'ciphertext': b64(self.ciphertext),
            'receiver_public_key': b64(self.receiver_public_key),
            'sender_ephemeral_public_key': b64(self.sender_ephemeral_public_key),
            'nonce': b64(self.nonce),
            'sender_identity_public_key': b64(self.sender_identity_public_key),
            'signature': b64(self.signature),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  curve_name: str = DEFAULT_CURVE_NAME) -> "MessageEnvelope":
        if not isinstance(data, Mapping):
            raise MalformedEnvelope(f"Envelope dict expected, got {type(data).__name__}")
        try:
            if data.get('version', ENVELOPE_VERSION) != ENVELOPE_VERSION:
                raise MalformedEnvelope(f"Unsupported envelope version {data['version']}")
            fields = {
                name: base64.b64decode(data[name], validate=True)
                for name in ('ciphertext', 'receiver_public_key',
                             'sender_ephemeral_public_key', 'nonce',
                             'sender_identity_public_key', 'signature')
            }
            scope = SignatureScope(data.get('signature_scope', SignatureScope.CIPHERTEXT.value))
        except (KeyError, TypeError, ValueError) as exc:
            if isinstance(exc, MalformedEnvelope):
                raise
            raise MalformedEnvelope(f"Invalid envelope dict: {exc}") from exc

        envelope = cls(signature_scope=scope, **fields)
        # Same structural checks as the binary form
        return cls.from_bytes(envelope.to_bytes(), curve_name)


class _Reader:
    """Bounds-checked cursor over envelope bytes."""

    def __init__(self, data: bytes):
        self._data = data
        self._offset = 0

    def take(self, n: int) -> bytes:
        end = self._offset + n
        if end > len(self._data):
            raise MalformedEnvelope("Envelope truncated")
        chunk = self._data[self._offset:end]
        self._offset = end
        return chunk

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self.take(fmt.size))

    def finish(self) -> None:
        if self._offset != len(self._data):
            raise MalformedEnvelope("Trailing bytes after envelope")
