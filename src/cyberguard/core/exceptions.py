"""
Exceptions for the CyberGuard storage layer
Every failure the facade can report maps onto one of these classes
"""


class CyberGuardError(Exception):
    # general container for errors
    pass


class StorageError(CyberGuardError):
    # raised when the local durable store (sqlite) fails
    pass


class EncryptionUnavailable(CyberGuardError):
    # raised when encryption is requested but no key exists and none was supplied
    pass


class DecryptionFailed(CyberGuardError):
    # raised on a wrong key or a corrupt / truncated ciphertext
    pass


class BackendUnreachable(CyberGuardError):
    # raised while probing the content-addressing node at init (downgrades to fallback)
    pass


class BackendTimeout(CyberGuardError):
    # raised when a backend call exceeds the configured timeout
    pass


class BackendError(CyberGuardError):
    # raised on any other per-call backend failure in connected mode
    pass


class NotFound(CyberGuardError):
    # raised when a content id is unknown to the store
    pass


class StorageUnavailable(CyberGuardError):
    # raised when a put failed on every path that was tried
    pass


class IndexCorrupt(CyberGuardError):
    # raised (and recovered from) when the index document does not parse
    pass


class ResultUnavailable(CyberGuardError):
    # raised when a bounded poll reaches its ceiling without a result
    pass


class OperationUnsupported(CyberGuardError):
    # raised for pin / peer / pubsub calls while in fallback mode
    pass


class PayloadInvalid(CyberGuardError):
    # raised when a payload cannot be serialized to JSON
    pass
