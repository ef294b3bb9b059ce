import socket
import logging
import ipaddress
from dataclasses import dataclass
from typing import Callable, Optional, Union

from flyshare.peer.discovery import PeerAddress
from flyshare.protocol.errors import DiscoveryError, PeerConnectionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutoDiscover:
    pass


@dataclass(frozen=True)
class Listen:
    pass


@dataclass(frozen=True)
class Connect:
    address: str


ConnectionMode = Union[AutoDiscover, Listen, Connect]


@dataclass
class Link:
    """An established connection to exactly one peer."""
    sock: socket.socket
    peer: str
    # True on the side that opened the outbound connection
    initiator: bool

    def close(self):
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # peer already gone
            pass
        self.sock.close()


def determine_connection_mode(listen: bool, connect: Optional[str]) -> ConnectionMode:
    if connect:
        return Connect(connect)
    if listen:
        return Listen()
    return AutoDiscover()


def describe_mode(mode: ConnectionMode) -> str:
    if isinstance(mode, Connect):
        return f"Will connect to {mode.address}"
    if isinstance(mode, Listen):
        return "Listening for incoming connections"
    return "Auto-discovering peers on local network"


def select_peer(candidates, chooser=None) -> PeerAddress:
    ordered = sorted(candidates)
    if len(ordered) == 1 or chooser is None:
        return ordered[0]
    return chooser(ordered)


def open_connection(address: str, port: int) -> socket.socket:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError as e:
        raise PeerConnectionError(f"Invalid IP address: {address!r}") from e
    try:
        sock = socket.create_connection((str(ip), port))
    except OSError as e:
        raise PeerConnectionError(f"Could not connect to {address} port {port}: {e}") from e
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    return sock


def create_listener(port: int) -> socket.socket:
    """Dual-stack listening socket with address reuse; IPv4 only without IPv6."""
    sock = None
    if socket.has_ipv6:
        try:
            sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            bind_addr = ("::", port)
        except OSError as e:
            logger.debug(f"IPv6 unavailable, listening on IPv4 only: {e}")
            if sock is not None:
                sock.close()
            sock = None
    if sock is None:
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise PeerConnectionError(f"Could not create listening socket: {e}") from e
        bind_addr = ("", port)

    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(bind_addr)
        sock.listen(1)
    except OSError as e:
        sock.close()
        raise PeerConnectionError(f"Could not listen on port {port}: {e}") from e
    return sock


def _auto_discover(discovery, timeout, chooser):
    print("Searching for peers on the local network...")
    candidates = discovery.discover(timeout)
    if not candidates:
        raise DiscoveryError("No peers found on the local network")
    target = select_peer(candidates, chooser)
    print(f"Connecting to {target}...")
    sock = open_connection(target.address, target.port)
    return Link(sock, str(target), initiator=True)


def _listen(port, discovery, on_listening):
    listener = create_listener(port)
    try:
        bound_port = listener.getsockname()[1]
        with discovery.advertise(bound_port):
            print(f"Listening on port {bound_port} (IPv4/IPv6 dual-stack)...")
            print("Waiting for peer to connect...")
            if on_listening is not None:
                on_listening(bound_port)
            try:
                sock, addr = listener.accept()
            except OSError as e:
                raise PeerConnectionError(f"Accept failed: {e}") from e
    finally:
        listener.close()
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    print(f"Connection accepted from {addr[0]}")
    return Link(sock, addr[0], initiator=False)


def _connect(address, port):
    print(f"Connecting to {address} port {port}...")
    sock = open_connection(address, port)
    return Link(sock, address, initiator=True)


def establish(
    mode: ConnectionMode,
    port: int,
    discovery,
    timeout: float = 5.0,
    chooser: Optional[Callable] = None,
    on_listening: Optional[Callable[[int], None]] = None,
) -> Link:
    """
    Turn a connection mode into a single connected socket.

    `discovery` provides discover(timeout) and advertise(port). Nothing is
    retried: every failure surfaces as a TransferError subclass.
    """
    if isinstance(mode, AutoDiscover):
        link = _auto_discover(discovery, timeout, chooser)
    elif isinstance(mode, Listen):
        link = _listen(port, discovery, on_listening)
    elif isinstance(mode, Connect):
        link = _connect(mode.address, port)
    else:
        raise TypeError(f"Unknown connection mode: {mode!r}")
    logger.info(f"Connected to {link.peer}")
    return link
