import io
import itertools
import os
import struct

import pytest

from conftest import BufferSocket
from flyshare.crypto.encrypt import (
    CHUNK_SIZE, MAX_FRAME_SIZE, NONCE_SIZE, TAG_SIZE, StreamCipher,
)
from flyshare.crypto.session import derive_session_key, generate_password
from flyshare.protocol.errors import CryptoError, ProtocolError


def encrypt_to_frames(cipher, data):
    sock = BufferSocket()
    cipher.encrypt_stream(io.BytesIO(data), sock, len(data))
    return bytes(sock.outgoing)


def split_frames(wire):
    frames = []
    pos = 0
    while True:
        (length,) = struct.unpack("!Q", wire[pos:pos + 8])
        pos += 8
        if length == 0:
            break
        frames.append(wire[pos:pos + length])
        pos += length
    assert pos == len(wire)
    return frames


def decrypt_frames(cipher, wire, size):
    sink = io.BytesIO()
    cipher.decrypt_stream(BufferSocket(wire), sink, size)
    return sink.getvalue()


# Round trip across sizes: empty, sub-chunk, exact multiples and ragged tails
@pytest.mark.parametrize("size", [0, 1, 4095, 4096, 4097, 3 * 4096, 3 * 4096 + 17])
def test_round_trip_small_chunks(key, size):
    cipher = StreamCipher(key, chunk_size=4096)
    data = os.urandom(size)
    wire = encrypt_to_frames(cipher, data)
    assert decrypt_frames(cipher, wire, size) == data
    assert len(split_frames(wire)) == -(-size // 4096)


def test_round_trip_default_chunk_size(key):
    cipher = StreamCipher(key)
    data = os.urandom(2 * CHUNK_SIZE + 5)
    wire = encrypt_to_frames(cipher, data)
    frames = split_frames(wire)
    assert [len(f) for f in frames] == [
        NONCE_SIZE + CHUNK_SIZE + TAG_SIZE,
        NONCE_SIZE + CHUNK_SIZE + TAG_SIZE,
        NONCE_SIZE + 5 + TAG_SIZE,
    ]
    assert decrypt_frames(cipher, wire, len(data)) == data


def test_empty_file_is_only_the_sentinel(key):
    wire = encrypt_to_frames(StreamCipher(key), b"")
    assert wire == b"\x00" * 8


def test_nonces_never_repeat(key):
    cipher = StreamCipher(key, chunk_size=16)
    wire = encrypt_to_frames(cipher, os.urandom(16 * 20000))
    nonces = [f[:NONCE_SIZE] for f in split_frames(wire)]
    assert len(nonces) == 20000
    assert len(set(nonces)) == len(nonces)


def test_injected_random_source_controls_nonces(key):
    counter = itertools.count()

    def source(n):
        return next(counter).to_bytes(n, "big")

    cipher = StreamCipher(key, random_source=source, chunk_size=8)
    frames = split_frames(encrypt_to_frames(cipher, b"a" * 24))
    assert [f[:NONCE_SIZE] for f in frames] == [i.to_bytes(NONCE_SIZE, "big") for i in range(3)]


def test_same_random_source_gives_identical_frames(key):
    def fixed(n):
        return b"\x07" * n

    data = b"deterministic payload"
    first = encrypt_to_frames(StreamCipher(key, random_source=fixed), data)
    second = encrypt_to_frames(StreamCipher(key, random_source=fixed), data)
    assert first == second


def test_short_random_source_is_rejected(key):
    cipher = StreamCipher(key, random_source=lambda n: b"\x00" * (n - 1))
    with pytest.raises(ValueError):
        cipher.seal_chunk(b"data")


@pytest.mark.parametrize("offset", [0, NONCE_SIZE - 1, NONCE_SIZE, NONCE_SIZE + 10, -1, -TAG_SIZE])
def test_any_flipped_bit_fails_authentication(key, offset):
    cipher = StreamCipher(key)
    body = bytearray(cipher.seal_chunk(b"x" * 64))
    body[offset] ^= 0x01
    with pytest.raises(CryptoError):
        cipher.open_chunk(bytes(body))


def test_tampered_chunk_is_never_written(key):
    cipher = StreamCipher(key, chunk_size=10)
    data = b"0123456789abcdefghij"
    wire = bytearray(encrypt_to_frames(cipher, data))
    # second frame starts after the first length prefix and body
    first_len = struct.unpack("!Q", wire[:8])[0]
    second_body = 8 + first_len + 8
    wire[second_body + NONCE_SIZE + 2] ^= 0x80

    sink = io.BytesIO()
    with pytest.raises(CryptoError):
        cipher.decrypt_stream(BufferSocket(bytes(wire)), sink, len(data))
    assert sink.getvalue() == data[:10]


def test_wrong_key_fails(key):
    wire = encrypt_to_frames(StreamCipher(key), b"secret")
    other = StreamCipher(derive_session_key("not the password"))
    with pytest.raises(CryptoError):
        decrypt_frames(other, wire, 6)


def test_oversized_frame_is_malformed(key):
    wire = struct.pack("!Q", MAX_FRAME_SIZE + 1)
    with pytest.raises(ProtocolError, match="Malformed frame"):
        decrypt_frames(StreamCipher(key), wire, 0)


def test_frame_shorter_than_nonce_and_tag_is_malformed(key):
    wire = struct.pack("!Q", 5) + b"\x00" * 5
    with pytest.raises(ProtocolError):
        decrypt_frames(StreamCipher(key), wire, 0)


def test_truncated_stream_is_protocol_error(key):
    wire = encrypt_to_frames(StreamCipher(key), b"hello world")
    with pytest.raises(ProtocolError, match="Stream ended early"):
        decrypt_frames(StreamCipher(key), wire[:-12], 11)


def test_progress_reaches_100(key):
    from flyshare.utils.helpers import ProgressTracker

    seen = []

    class Recorder(ProgressTracker):
        def update(self, done):
            percent = super().update(done)
            if percent is not None:
                seen.append(percent)
            return percent

    cipher = StreamCipher(key, chunk_size=100)
    cipher.encrypt_stream(io.BytesIO(b"z" * 1000), BufferSocket(), 1000, Recorder(1000))
    assert seen == list(range(10, 101, 10))


def test_key_derivation_is_deterministic():
    assert derive_session_key("abc") == derive_session_key("abc")
    assert len(derive_session_key("abc")) == 32
    assert derive_session_key("abc") != derive_session_key("abd")


def test_generated_password_shape():
    words = generate_password().split("-")
    assert len(words) == 3
    assert all(words)


def test_key_must_be_256_bits():
    with pytest.raises(ValueError):
        StreamCipher(b"short")
