import os
import time
import logging
import contextlib
from dataclasses import dataclass

from flyshare.protocol.duplicate import (
    FileDescriptor, check_for_file, offer_file, recv_descriptor, send_descriptor,
)
from flyshare.protocol.errors import FileSystemError
from flyshare.utils.helpers import (
    console_progress, format_duration, format_size, megabits_per_second,
)

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    name: str
    size: int
    elapsed: float
    skipped: bool = False

    @property
    def megabits_per_second(self):
        return megabits_per_second(self.size, self.elapsed)

    def report(self, verb):
        if self.skipped:
            print("Peer already has this file, skipping.")
            return
        print(f"{verb} took {format_duration(self.elapsed)}")
        print(f"Speed: {self.megabits_per_second:.2f} Mbps")


def collect_files(path, recursive=False):
    """
    List (local path, wire name) pairs to send. Directory entries are named
    relative to the directory's parent so the receiver recreates it.
    """
    path = os.path.abspath(path)
    if os.path.isfile(path):
        return [(path, os.path.basename(path))]
    if not os.path.isdir(path):
        raise FileSystemError(f"File does not exist: {path}")
    if not recursive:
        raise FileSystemError(f"{path} is a directory; use --recursive to send it")

    base = os.path.dirname(path)
    files = []
    for root, dirs, names in os.walk(path):
        dirs.sort()
        for name in sorted(names):
            full = os.path.join(root, name)
            if os.path.isfile(full):
                rel = os.path.relpath(full, base)
                files.append((full, rel.replace(os.sep, "/")))
    if not files:
        raise FileSystemError(f"No files to send in {path}")
    return files


def unique_destination(path):
    """Return path, or "(n) name" beside it for the first n not already taken."""
    if not os.path.exists(path):
        return path
    parent, name = os.path.split(path)
    i = 1
    while True:
        candidate = os.path.join(parent, f"({i}) {name}")
        if not os.path.exists(candidate):
            return candidate
        i += 1


def send_file(sock, cipher, filepath, name, progress_factory=console_progress):
    start = time.monotonic()
    try:
        size = os.path.getsize(filepath)
        source = open(filepath, "rb")
    except OSError as e:
        raise FileSystemError(f"Could not open {filepath}: {e}") from e

    with source:
        print(f"Sending file: {name}")
        print(f"File size: {format_size(size)}")
        send_descriptor(sock, FileDescriptor(name, size))

        if not offer_file(sock, filepath):
            logger.info(f"Receiver already has {name}, skipping")
            return TransferResult(name, size, time.monotonic() - start, skipped=True)

        cipher.encrypt_stream(source, sock, size, progress_factory(size))

    result = TransferResult(name, size, time.monotonic() - start)
    logger.info(f"Sent {name} ({size} bytes) at {result.megabits_per_second:.2f} Mbps")
    return result


def receive_file(sock, cipher, output_dir, progress_factory=console_progress):
    start = time.monotonic()
    descriptor = recv_descriptor(sock)
    print(f"Receiving: {descriptor.name}")
    print(f"File size: {format_size(descriptor.size)}")

    target = os.path.join(output_dir, *descriptor.parts())
    if not check_for_file(sock, target, descriptor.size):
        logger.info(f"Already have {descriptor.name}, skipping")
        return TransferResult(descriptor.name, descriptor.size, time.monotonic() - start, skipped=True)

    try:
        os.makedirs(os.path.dirname(target), exist_ok=True)
        target = unique_destination(target)
        sink = open(target, "xb")
    except OSError as e:
        raise FileSystemError(f"Could not create {target}: {e}") from e

    try:
        with sink:
            written = cipher.decrypt_stream(sock, sink, descriptor.size, progress_factory(descriptor.size))
    except BaseException:
        logger.debug(f"Removing partial file {target}")
        with contextlib.suppress(OSError):
            os.remove(target)
        raise

    result = TransferResult(descriptor.name, written, time.monotonic() - start)
    logger.info(f"Saved {descriptor.name} to {target} at {result.megabits_per_second:.2f} Mbps")
    return result
