"""
Pipeline error taxonomy.

Only storage failures and illegal state transitions are exceptions.
Insufficient data is signalled by ``None`` returns and training skips are
counted, never raised.
"""


class PipelineError(Exception):
    """Base exception for pipeline errors."""
    pass


class StorageUnavailableError(PipelineError):
    """A read or write against the record store failed."""
    pass


class SignalAlreadyVerified(PipelineError):
    """A verified signal cannot transition again."""
    pass


class ListenerRegistrationClosed(PipelineError):
    """Listeners must be attached before the pipeline starts emitting."""
    pass
