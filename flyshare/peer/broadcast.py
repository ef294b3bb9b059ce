from zeroconf import Error as ZeroconfError, ServiceInfo, Zeroconf
import socket
import logging

from flyshare.protocol.errors import PeerConnectionError

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_flyshare._tcp.local."


def local_addresses():
    hostname = socket.gethostname()
    try:
        infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    except socket.gaierror:
        return ["127.0.0.1"]
    addresses = []
    for family, _, _, _, sockaddr in infos:
        if family in (socket.AF_INET, socket.AF_INET6) and sockaddr[0] not in addresses:
            addresses.append(sockaddr[0])
    return addresses or ["127.0.0.1"]


class Broadcast:
    """
    Advertises this endpoint over mDNS until stopped. Usable as a context
    manager so advertising ends when the block exits.
    """

    def __init__(self, peer_name, port, service_type=SERVICE_TYPE):
        self.peer_name = peer_name
        self.port = port
        self.service_type = service_type
        self.zeroconf = None
        self.service_info = None

    # Starts zeroconf mDNS, broadcasting the peer's presence
    def start_service(self):
        hostname = socket.gethostname()
        try:
            self.service_info = ServiceInfo(
                type_=self.service_type,
                name=f"{self.peer_name}-{self.port}.{self.service_type}",
                parsed_addresses=local_addresses(),
                port=self.port,
                properties={},
                server=f"{hostname}.local.",
            )
            self.zeroconf = Zeroconf()
            self.zeroconf.register_service(self.service_info)
        except (OSError, ZeroconfError) as e:
            if self.zeroconf is not None:
                self.zeroconf.close()
                self.zeroconf = None
            raise PeerConnectionError(f"Could not advertise on the local network: {e}") from e
        logger.debug(f"Advertising {self.peer_name} on port {self.port}")

    def stop_service(self):
        if self.zeroconf is None:
            return
        if self.service_info:
            self.zeroconf.unregister_service(self.service_info)
        self.zeroconf.close()
        self.zeroconf = None
        logger.debug("Stopped advertising")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.stop_service()
        return False
