"""
File descriptors and the duplicate check run before each file's bytes.

    sender                         receiver
    name length, name, size  --->
                             <---  has-candidate (0/1)
    sha256 digest (if 1)     --->
                             <---  match (0/1)      (if 1)
"""
import os
import hashlib
import logging
from dataclasses import dataclass

from flyshare.protocol.errors import FileSystemError, ProtocolError
from flyshare.protocol.wire import recv_exact, recv_u64, send_all, send_u64

logger = logging.getLogger(__name__)

DIGEST_SIZE = 32
MAX_NAME_LENGTH = 4096
HASH_BLOCK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class FileDescriptor:
    name: str
    size: int

    def parts(self):
        """Path components of the name, rejecting anything outside the output dir."""
        name = self.name.replace("\\", "/")
        if not name or name.startswith("/"):
            raise ProtocolError(f"Refusing unsafe file name: {self.name!r}")
        parts = [p for p in name.split("/") if p not in ("", ".")]
        if not parts or ".." in parts or parts[0][1:2] == ":":
            raise ProtocolError(f"Refusing unsafe file name: {self.name!r}")
        return parts


def hash_file(filepath):
    h = hashlib.sha256()
    try:
        with open(filepath, "rb") as f:
            for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
                h.update(block)
    except OSError as e:
        raise FileSystemError(f"Could not hash {filepath}: {e}") from e
    return h.digest()


def send_descriptor(sock, descriptor):
    name = descriptor.name.encode("utf-8")
    send_u64(sock, len(name))
    send_all(sock, name)
    send_u64(sock, descriptor.size)


def recv_descriptor(sock):
    length = recv_u64(sock)
    if length == 0 or length > MAX_NAME_LENGTH:
        raise ProtocolError(f"Invalid file name length: {length}")
    try:
        name = recv_exact(sock, length).decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError("File name is not valid UTF-8") from e
    size = recv_u64(sock)
    descriptor = FileDescriptor(name, size)
    descriptor.parts()
    return descriptor


def offer_file(sock, filepath):
    """
    Sender side. Returns True when the receiver needs the file's bytes.
    """
    has_candidate = recv_u64(sock)
    if has_candidate == 0:
        return True
    if has_candidate != 1:
        raise ProtocolError(f"Invalid has-candidate flag: {has_candidate}")

    send_all(sock, hash_file(filepath))
    match = recv_u64(sock)
    if match not in (0, 1):
        raise ProtocolError(f"Invalid match flag: {match}")
    logger.debug(f"Receiver holds a same-size copy of {filepath}; hashes match: {bool(match)}")
    return match == 0


def check_for_file(sock, filepath, size):
    """
    Receiver side. Returns True when a full transfer is needed; hashes the
    local file only when its size equals the incoming one.
    """
    try:
        candidate = os.path.isfile(filepath) and os.path.getsize(filepath) == size
    except OSError as e:
        raise FileSystemError(f"Could not inspect {filepath}: {e}") from e

    if not candidate:
        send_u64(sock, 0)
        return True

    send_u64(sock, 1)
    peer_digest = recv_exact(sock, DIGEST_SIZE)
    matched = hash_file(filepath) == peer_digest
    send_u64(sock, 1 if matched else 0)
    logger.debug(f"Local {filepath} has matching size; hashes match: {matched}")
    return not matched
