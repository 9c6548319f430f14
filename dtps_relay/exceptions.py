"""
Relay Exceptions

Failure classes surfaced by the relay:
- ConfigError: invalid runtime configuration
- TransportError: directory, node or ledger endpoint unreachable
- BroadcastError: endpoint reachable but the submission was refused
- SigningError: malformed key, mnemonic or address while building/signing

Precondition rejections (missing auth key, missing config, unknown entity,
insufficient balance) are not exceptions, see models.Rejection.
"""


class RelayError(Exception):
    """Base class for all relay errors"""


class ConfigError(RelayError):
    """Raised when the relay configuration is invalid"""


class TransportError(RelayError):
    """Network failure while talking to the directory, a node or the ledger"""


class NoUsableNodeError(TransportError):
    """No healthy node was found and no node was ever selected before"""

    def __init__(self, message: str = "No usable node endpoint (directory empty, no previous node)"):
        super().__init__(message)


class BroadcastError(TransportError):
    """The endpoint answered but refused the transaction"""

    def __init__(self, message: str, status: int = None, body=None):
        super().__init__(message)
        self.status = status
        self.body = body


class SigningError(RelayError):
    """Transaction could not be built or signed locally"""
