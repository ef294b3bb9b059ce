from flyshare.crypto.encrypt import StreamCipher
from flyshare.crypto.session import derive_session_key
from flyshare.peer.connection import establish
from flyshare.peer.discovery import ZeroconfDiscovery
from flyshare.peer.transfer import collect_files, receive_file, send_file
from flyshare.protocol.errors import FileSystemError, ProtocolError
from flyshare.protocol.handshake import Role, perform_handshake
from flyshare.protocol.wire import recv_u64, send_u64
from flyshare.utils.helpers import console_progress
import os
import logging

logger = logging.getLogger(__name__)


class Peer:
    """
    Runs one send or receive session: connect, handshake, then move files
    strictly one after another over the single connection.
    """

    def __init__(self, config, discovery=None, chooser=None, progress_factory=console_progress):
        self.port = config["port"]
        self.protocol_version = config["protocol_version"]
        self.discovery_timeout = config["discovery_timeout"]
        self.discovery = discovery or ZeroconfDiscovery(config["peer_name"], config["service_type"])
        self.chooser = chooser
        self.progress_factory = progress_factory
        # called with the bound port once a listening socket is ready
        self.on_listening = None
        logger.debug(f"Peer initialized on port {self.port}")

    def _connect(self, mode, role):
        link = establish(
            mode, self.port, self.discovery,
            timeout=self.discovery_timeout,
            chooser=self.chooser,
            on_listening=self.on_listening,
        )
        try:
            perform_handshake(link.sock, role, self.protocol_version, leads=link.initiator)
        except BaseException:
            link.close()
            raise
        return link

    def send(self, path, password, mode, recursive=False, persistent=False):
        """Send a file or directory; with persistent, serve sessions until interrupted."""
        files = collect_files(path, recursive)
        cipher = StreamCipher(derive_session_key(password))
        while True:
            results = self._send_session(files, cipher, mode)
            if not persistent:
                return results
            logger.info("Session finished, waiting for the next peer")

    def _send_session(self, files, cipher, mode):
        link = self._connect(mode, Role.SENDER)
        results = []
        try:
            send_u64(link.sock, len(files))
            for filepath, name in files:
                result = send_file(link.sock, cipher, filepath, name, self.progress_factory)
                result.report("Sending")
                results.append(result)
        finally:
            link.close()
        print("Transfer complete!")
        return results

    def receive(self, output_dir, password, mode):
        if not os.path.isdir(output_dir):
            raise FileSystemError(f"Output directory does not exist: {output_dir}")
        cipher = StreamCipher(derive_session_key(password))

        link = self._connect(mode, Role.RECEIVER)
        results = []
        try:
            count = recv_u64(link.sock)
            if count == 0:
                raise ProtocolError("Peer announced zero files")
            print(f"Receiving {count} file(s)...")
            for i in range(count):
                print(f"File {i + 1} of {count}")
                result = receive_file(link.sock, cipher, output_dir, self.progress_factory)
                result.report("Receiving")
                results.append(result)
        finally:
            link.close()
        print("Transfer complete!")
        return results
