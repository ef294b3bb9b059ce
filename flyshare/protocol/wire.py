import struct

from flyshare.protocol.errors import PeerConnectionError, ProtocolError

# Every integer on the wire is an unsigned 64-bit value in network byte order.
U64 = struct.Struct("!Q")


def send_all(sock, data):
    """
    Write every byte of data to the socket.
    """
    try:
        sock.sendall(data)
    except OSError as e:
        raise PeerConnectionError(f"Connection lost while sending: {e}") from e


def recv_exact(sock, size):
    """
    Read exactly size bytes from the socket, failing if the peer closes early.
    """
    buffer = bytearray(size)
    view = memoryview(buffer)
    received = 0
    while received < size:
        try:
            n = sock.recv_into(view[received:], size - received)
        except OSError as e:
            raise PeerConnectionError(f"Connection lost while receiving: {e}") from e
        if not n:
            raise ProtocolError(
                f"Stream ended early ({received} of {size} bytes received)"
            )
        received += n
    return bytes(buffer)


def send_u64(sock, value):
    send_all(sock, U64.pack(value))


def recv_u64(sock):
    return U64.unpack(recv_exact(sock, U64.size))[0]
