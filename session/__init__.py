"""
Host wake handling.

Exports the SessionCoordinator that answers background wakes, the runtime
that wires the stack together, and the method channel handler used by the
native bridge.
"""

from session.coordinator import (
    ResultSlot,
    SessionCoordinator,
    SessionState,
    WakeResult,
    WakeSession,
    result_for_counts,
)
from session.runtime import UploaderRuntime
from session.channel import MethodChannelHandler, MethodNotImplemented, CHANNEL_NAME

__all__ = [
    'SessionCoordinator',
    'SessionState',
    'WakeResult',
    'WakeSession',
    'ResultSlot',
    'result_for_counts',
    'UploaderRuntime',
    'MethodChannelHandler',
    'MethodNotImplemented',
    'CHANNEL_NAME',
]
