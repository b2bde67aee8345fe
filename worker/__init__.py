"""
Upload dispatching.

Exports the Dispatcher that drains the upload queue against a deadline,
plus the upload failure types upload operations raise.
"""

from worker.dispatcher import Dispatcher, DispatchOutcome, DispatchProgress
from worker.errors import UploadFailure, TransientError, PermanentError

__all__ = [
    'Dispatcher',
    'DispatchOutcome',
    'DispatchProgress',
    'UploadFailure',
    'TransientError',
    'PermanentError',
]
