"""
Chunked AES-256-GCM stream encryption.

A file travels as a sequence of frames::

    u64 length | 12-byte nonce | ciphertext + 16-byte tag

each sealing at most CHUNK_SIZE bytes of plaintext under a fresh random
nonce, followed by a single ``u64 0`` frame marking the end of the file.
Frames carry no sequence numbers, so the receiver appends plaintext in
arrival order.
"""
import os
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from flyshare.protocol.errors import CryptoError, FileSystemError, ProtocolError
from flyshare.protocol.wire import recv_exact, recv_u64, send_all, U64

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
NONCE_SIZE = 12
TAG_SIZE = 16
MAX_FRAME_SIZE = NONCE_SIZE + CHUNK_SIZE + TAG_SIZE


class StreamCipher:
    def __init__(self, key: bytes, random_source=os.urandom, chunk_size: int = CHUNK_SIZE):
        if len(key) != 32:
            raise ValueError("Session key must be 32 bytes")
        if not 0 < chunk_size <= CHUNK_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {CHUNK_SIZE}")
        self.aesgcm = AESGCM(key)
        self.random_source = random_source
        self.chunk_size = chunk_size

    def seal_chunk(self, plaintext: bytes) -> bytes:
        """Encrypt one chunk, returning nonce + ciphertext + tag."""
        nonce = self.random_source(NONCE_SIZE)
        if len(nonce) != NONCE_SIZE:
            raise ValueError(f"Random source returned {len(nonce)} bytes, expected {NONCE_SIZE}")
        return nonce + self.aesgcm.encrypt(nonce, plaintext, None)

    def open_chunk(self, body: bytes) -> bytes:
        """Authenticate and decrypt one frame body produced by seal_chunk."""
        if len(body) < NONCE_SIZE + TAG_SIZE:
            raise ProtocolError(f"Malformed frame: {len(body)} bytes is too short")
        nonce, ciphertext = body[:NONCE_SIZE], body[NONCE_SIZE:]
        try:
            return self.aesgcm.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise CryptoError(
                "Chunk failed authentication (wrong password, corruption or tampering)"
            ) from e

    def encrypt_stream(self, source, sock, size, progress=None):
        """
        Read plaintext from the binary file object `source` and write framed
        chunks to `sock`, ending with the zero-length sentinel.

        Returns the number of plaintext bytes sent.
        """
        sent = 0
        chunks = 0
        while True:
            try:
                plaintext = source.read(self.chunk_size)
            except OSError as e:
                raise FileSystemError(f"Could not read source file: {e}") from e
            if not plaintext:
                break
            body = self.seal_chunk(plaintext)
            send_all(sock, U64.pack(len(body)) + body)
            sent += len(plaintext)
            chunks += 1
            if progress is not None:
                progress.update(sent)

        send_all(sock, U64.pack(0))
        if progress is not None:
            progress.finish()
        logger.debug(f"Sent {sent} bytes in {chunks} chunks (declared size {size})")
        return sent

    def decrypt_stream(self, sock, sink, size, progress=None):
        """
        Read framed chunks from `sock` until the sentinel, writing the
        decrypted bytes to the binary file object `sink`.

        Returns the number of plaintext bytes written.
        """
        written = 0
        chunks = 0
        while True:
            length = recv_u64(sock)
            if length == 0:
                break
            if length > MAX_FRAME_SIZE:
                raise ProtocolError(f"Malformed frame: length {length} exceeds {MAX_FRAME_SIZE}")
            plaintext = self.open_chunk(recv_exact(sock, length))
            try:
                sink.write(plaintext)
            except OSError as e:
                raise FileSystemError(f"Could not write destination file: {e}") from e
            written += len(plaintext)
            chunks += 1
            if progress is not None:
                progress.update(written)

        if progress is not None:
            progress.finish()
        if written != size:
            logger.warning(f"Received {written} bytes but peer declared {size}")
        logger.debug(f"Received {written} bytes in {chunks} chunks")
        return written
