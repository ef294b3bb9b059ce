"""flyshare: encrypted peer-to-peer file transfer."""

__version__ = "0.3.0"
