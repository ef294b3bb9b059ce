class TransferError(Exception):
    """Base class for every error that ends a transfer session."""


class PeerConnectionError(TransferError):
    """Bind, listen, accept or connect failed, or the link dropped."""


class DiscoveryError(TransferError):
    """No peer could be found on the local network."""


class ProtocolError(TransferError):
    """The peer sent something the protocol does not allow."""


class CryptoError(TransferError):
    """A chunk failed authentication: corrupted or tampered with."""


class FileSystemError(TransferError):
    """A local file or directory could not be read or written."""
