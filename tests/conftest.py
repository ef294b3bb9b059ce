"""
Shared helpers: an in-memory socket for one-directional framing tests, a
socketpair fixture for both-peer exchanges, and a discovery stand-in.
"""
import socket
from concurrent.futures import ThreadPoolExecutor

import pytest

from flyshare.config import DEFAULTS
from flyshare.peer.discovery import PeerAddress
from flyshare.utils.helpers import ProgressTracker


class BufferSocket:
    """Reads from a fixed byte string, records everything written."""

    def __init__(self, incoming=b""):
        self.incoming = bytes(incoming)
        self.pos = 0
        self.outgoing = bytearray()
        self.ops = []

    def sendall(self, data):
        self.ops.append("send")
        self.outgoing += data

    def recv_into(self, view, nbytes):
        self.ops.append("recv")
        chunk = self.incoming[self.pos:self.pos + nbytes]
        view[:len(chunk)] = chunk
        self.pos += len(chunk)
        return len(chunk)

    @property
    def remaining(self):
        return len(self.incoming) - self.pos


class FakeAdvertisement:
    def __init__(self, discovery):
        self.discovery = discovery

    def __enter__(self):
        self.discovery.advertising = True
        return self

    def __exit__(self, *exc):
        self.discovery.advertising = False
        return False


class FakeDiscovery:
    def __init__(self, peers=()):
        self.peers = [PeerAddress(a, p) for a, p in peers]
        self.advertised = []
        self.advertising = False
        self.timeouts = []

    def discover(self, timeout):
        self.timeouts.append(timeout)
        return list(self.peers)

    def advertise(self, port):
        self.advertised.append(port)
        return FakeAdvertisement(self)


def quiet_progress(total):
    return ProgressTracker(total)


def make_config(**overrides):
    config = dict(DEFAULTS, discovery_timeout=0.1)
    config.update(overrides)
    return config


def run_both(left, right, timeout=60):
    """Run two peers concurrently; returns each side's result or exception."""
    outcomes = []
    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(left), pool.submit(right)]
        for future in futures:
            try:
                outcomes.append(future.result(timeout))
            except Exception as e:
                outcomes.append(e)
    return outcomes


@pytest.fixture
def sock_pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


@pytest.fixture
def key():
    return bytes(range(32))
