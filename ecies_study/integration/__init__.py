# Integration Module
"""
Audit trail for the envelope protocol.

All events identify parties by public-key fingerprint only.
"""

from .event_logger import (
    EventType,
    SecurityEvent,
    EventLogger,
    create_event_logger,
)

__all__ = [
    'EventType',
    'SecurityEvent',
    'EventLogger',
    'create_event_logger',
]
