"""
Event Logger Module

Security audit trail for the envelope protocol.

Features:
- Key generation, key exchange, seal and open events
- Signature verification outcomes and rejected envelopes
- Privacy-preserving party identifiers (public-key fingerprints only)
- Tamper-evident log: every record carries SHA-256 of the previous record,
  and the hash of the newest record (head_hash) anchors the end of the chain

No secret key, shared secret, symmetric key, or plaintext is ever recorded.
"""

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..core_crypto.curve import PublicKeyLike, public_key_fingerprint

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

EVENT_VERSION = "1.0"
GENESIS_HASH = "0" * 64


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    """Types of security events that can be logged."""

    # Key events
    KEY_GENERATED = "key_generated"
    KEY_EXCHANGE = "key_exchange"

    # Messaging events
    MESSAGE_SEAL = "message_seal"
    MESSAGE_OPEN = "message_open"
    SIGNATURE_VERIFIED = "signature_verified"
    SIGNATURE_FAILED = "signature_failed"
    DECRYPTION_FAILED = "decryption_failed"

    # System events
    SYSTEM_START = "system_start"


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class SecurityEvent:
    """
    A single audit record.

    party is a public-key fingerprint, or "system".
    """
    event_type: EventType
    party: str
    timestamp: int
    details: Dict[str, Any] = field(default_factory=dict)
    prev_hash: str = GENESIS_HASH

    def to_record(self) -> str:
        """Canonical JSON form; this is what gets hashed."""
        return json.dumps({
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'party': self.party,
            'time': self.timestamp,
            'details': self.details,
            'prev': self.prev_hash,
        }, separators=(',', ':'), sort_keys=True)

    @property
    def record_hash(self) -> str:
        return hashlib.sha256(self.to_record().encode("utf-8")).hexdigest()

    @classmethod
    def from_record(cls, record: str) -> 'SecurityEvent':
        """
        Parse one to_record() line.

        Raises:
            ValueError: If the line is not a well-formed event record
        """
        try:
            data = json.loads(record)
            return cls(
                event_type=EventType(data['type']),
                party=data['party'],
                timestamp=data['time'],
                details=data.get('details', {}),
                prev_hash=data['prev'],
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Malformed audit record: {exc!r}") from exc

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | "
            f"party:{self.party[:8]}..."
        )


def _party(public_key: Optional[PublicKeyLike]) -> str:
    return "system" if public_key is None else public_key_fingerprint(public_key)


# ============================================================================
# Event Logger
# ============================================================================

class EventLogger:
    """
    Hash-chained, in-memory security event log.

    Safe to share between threads; appends are serialized.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Args:
            clock: Time source, injectable for tests
        """
        self._clock = clock
        self._events: List[SecurityEvent] = []
        self._callbacks: List[Callable[[SecurityEvent], None]] = []
        self._lock = threading.Lock()
        self._head = GENESIS_HASH

        self._log(EventType.SYSTEM_START, None, {'node': 'ecies_study'})

    def _log(self, event_type: EventType,
             public_key: Optional[PublicKeyLike],
             details: Optional[Dict[str, Any]] = None) -> SecurityEvent:
        with self._lock:
            event = SecurityEvent(
                event_type=event_type,
                party=_party(public_key),
                timestamp=int(self._clock()),
                details=details or {},
                prev_hash=self._head,
            )
            self._events.append(event)
            self._head = event.record_hash
            callbacks = list(self._callbacks)

        logger.debug("Audit event %s for %s", event_type.value, event.party)
        for callback in callbacks:
            callback(event)
        return event

    def add_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # ========================================================================
    # Key Events
    # ========================================================================

    def log_key_generated(self, public_key: PublicKeyLike, role: str) -> SecurityEvent:
        """Log creation of an identity or ephemeral key."""
        return self._log(EventType.KEY_GENERATED, public_key, {'role': role})

    def log_key_exchange(self, own_public: PublicKeyLike, peer_public: PublicKeyLike,
                         curve_name: str = "secp256k1") -> SecurityEvent:
        """Log an ECDH agreement (no secret material)."""
        return self._log(EventType.KEY_EXCHANGE, own_public, {
            'peer': _party(peer_public),
            'algo': f"ECDH-{curve_name}",
        })

    # ========================================================================
    # Messaging Events
    # ========================================================================

    def log_message_seal(self, sender_public: PublicKeyLike,
                         receiver_public: PublicKeyLike,
                         ciphertext: bytes,
                         signature_scope: str) -> SecurityEvent:
        """
        Log a sealed envelope.

        Args:
            sender_public: Sender identity key
            receiver_public: Receiver static key
            ciphertext: Used only to derive a message id
            signature_scope: What the signature covers

        Returns:
            The logged event
        """
        return self._log(EventType.MESSAGE_SEAL, sender_public, {
            'to': _party(receiver_public),
            'msg_id': hashlib.sha256(ciphertext).hexdigest()[:16],
            'size': len(ciphertext),
            'scope': signature_scope,
        })

    def log_message_open(self, receiver_public: PublicKeyLike,
                         sender_public: PublicKeyLike,
                         ciphertext: bytes,
                         verified: bool) -> SecurityEvent:
        """Log a successfully opened envelope."""
        return self._log(EventType.MESSAGE_OPEN, receiver_public, {
            'from': _party(sender_public),
            'msg_id': hashlib.sha256(ciphertext).hexdigest()[:16],
            'verified': verified,
        })

    def log_signature(self, receiver_public: PublicKeyLike,
                      sender_public: PublicKeyLike,
                      success: bool) -> SecurityEvent:
        event_type = EventType.SIGNATURE_VERIFIED if success else EventType.SIGNATURE_FAILED
        return self._log(event_type, receiver_public, {'from': _party(sender_public)})

    def log_rejection(self, receiver_public: PublicKeyLike,
                      sender_public: Optional[PublicKeyLike],
                      reason: str) -> SecurityEvent:
        """Log an envelope that failed to open."""
        details = {'reason': reason}
        if sender_public is not None:
            details['from'] = _party(sender_public)
        return self._log(EventType.DECRYPTION_FAILED, receiver_public, details)

    # ========================================================================
    # Retrieval
    # ========================================================================

    def get_all_events(self) -> List[SecurityEvent]:
        with self._lock:
            return list(self._events)

    def get_events_by_type(self, event_type: EventType) -> List[SecurityEvent]:
        """Get all events of a specific type."""
        return [e for e in self.get_all_events() if e.event_type == event_type]

    def get_party_events(self, public_key: PublicKeyLike) -> List[SecurityEvent]:
        """Get all events recorded for one key."""
        party = _party(public_key)
        return [e for e in self.get_all_events() if e.party == party]

    def get_recent_events(self, count: int = 10) -> List[SecurityEvent]:
        events = self.get_all_events()
        return events[-count:] if len(events) > count else events

    @property
    def head_hash(self) -> str:
        """Hash of the newest record; anchors the end of the chain."""
        with self._lock:
            return self._head

    def verify_integrity(self) -> bool:
        """
        Check that every record links to the hash of its predecessor and
        that the last record still hashes to head_hash.
        """
        with self._lock:
            events = list(self._events)
            head = self._head
        prev_hash = GENESIS_HASH
        for event in events:
            if event.prev_hash != prev_hash:
                return False
            prev_hash = event.record_hash
        return prev_hash == head

    def export_log(self) -> str:
        """
        Export the audit log as JSON lines.

        The last line is {"head": <hash of the newest record>}, so records
        cut from the end are noticed on import.
        """
        with self._lock:
            events = list(self._events)
            head = self._head
        lines = [e.to_record() for e in events]
        lines.append(json.dumps({'head': head}, separators=(',', ':')))
        return "\n".join(lines)

    @classmethod
    def import_log(cls, records: str,
                   clock: Callable[[], float] = time.time,
                   expected_head: Optional[str] = None) -> 'EventLogger':
        """
        Rebuild a logger from export_log() output.

        Args:
            records: Exported JSON lines
            clock: Time source for events appended after import
            expected_head: Head hash obtained out of band (e.g. head_hash of
                the original logger); the imported log must end there

        Raises:
            ValueError: If a record is malformed, the chain does not link
                up, the head line is missing or disagrees, or the head
                differs from expected_head
        """
        lines = [line for line in records.splitlines() if line.strip()]
        if not lines:
            raise ValueError("Audit log is empty")
        try:
            trailer = json.loads(lines[-1])
        except ValueError as exc:
            raise ValueError("Audit log head line is not JSON") from exc
        if not isinstance(trailer, dict) or set(trailer) != {'head'}:
            raise ValueError("Audit log has no head line; records may be missing")

        events = [SecurityEvent.from_record(line) for line in lines[:-1]]
        head = events[-1].record_hash if events else GENESIS_HASH

        event_logger = cls.__new__(cls)
        event_logger._clock = clock
        event_logger._callbacks = []
        event_logger._lock = threading.Lock()
        event_logger._events = events
        event_logger._head = head
        if not event_logger.verify_integrity():
            raise ValueError("Audit log hash chain is broken")
        if trailer['head'] != head:
            raise ValueError("Audit log head does not match its last record")
        if expected_head is not None and expected_head != head:
            raise ValueError("Audit log head does not match the expected head")
        return event_logger


def create_event_logger() -> EventLogger:
    """Create a new event logger."""
    return EventLogger()
