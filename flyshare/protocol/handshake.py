import enum
import logging

from flyshare.protocol.errors import ProtocolError
from flyshare.protocol.wire import recv_u64, send_u64

logger = logging.getLogger(__name__)


class Role(enum.IntEnum):
    RECEIVER = 0
    SENDER = 1


class HandshakeState(enum.Enum):
    START = "start"
    VERSION_EXCHANGED = "version_exchanged"
    ROLE_AGREED = "role_agreed"
    READY = "ready"


def _exchange(sock, value, leads):
    # One side writes first and the other reads first, never both reading.
    if leads:
        send_u64(sock, value)
        return recv_u64(sock)
    peer_value = recv_u64(sock)
    send_u64(sock, value)
    return peer_value


def version_handshake(sock, version, leads):
    """
    Swap protocol versions with the peer. A mismatch is only a warning:
    the parts of the protocol in use stay byte compatible.
    """
    peer_version = _exchange(sock, version, leads)
    if peer_version != version:
        logger.warning(f"Version mismatch (local: {version}, peer: {peer_version})")
    else:
        logger.debug(f"Peer speaks protocol version {peer_version}")
    return peer_version


def role_handshake(sock, role, leads):
    """
    Swap sender/receiver flags and return the peer's Role. Exactly one
    sender and one receiver is the only accepted pairing; both peers see
    both flags, so both detect a collision.
    """
    peer_flag = _exchange(sock, int(role), leads)
    try:
        peer_role = Role(peer_flag)
    except ValueError:
        raise ProtocolError(f"Invalid role flag from peer: {peer_flag}") from None

    if peer_role == role == Role.SENDER:
        raise ProtocolError("Both ends selected send mode")
    if peer_role == role == Role.RECEIVER:
        raise ProtocolError("Both ends selected receive mode")
    logger.debug(f"Role agreed: local {role.name}, peer {peer_role.name}")
    return peer_role


def perform_handshake(sock, role, version, leads):
    """
    Run version then role negotiation; returns HandshakeState.READY.
    Failure from any state is a raised TransferError, never a returned state.
    """
    state = HandshakeState.START
    try:
        version_handshake(sock, version, leads)
        state = HandshakeState.VERSION_EXCHANGED
        role_handshake(sock, role, leads)
        state = HandshakeState.ROLE_AGREED
    except Exception:
        logger.debug(f"Handshake failed after reaching {state.value}")
        raise
    return HandshakeState.READY
