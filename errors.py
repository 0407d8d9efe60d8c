# errors.py
"""Error taxonomy shared by the gateway, the watcher and the claim workers."""


class ClaimerError(Exception):
    """Base class for every error raised by the claimer."""


class TransientNetworkError(ClaimerError):
    """An RPC call failed or timed out on every endpoint. Retried, never fatal."""


class TransactionRejected(ClaimerError):
    """The node rejected or reverted a call (e.g. gas estimation hit a revert)."""


class LivenessLost(ClaimerError):
    """The streaming connection stopped answering and must be rebuilt."""


class ConfigurationOrDataError(ClaimerError):
    """Malformed response or unexpected empty value."""
