from zeroconf import Error as ZeroconfError, Zeroconf, ServiceBrowser, ServiceListener
from dataclasses import dataclass
import ipaddress
import logging
import time

from flyshare.peer.broadcast import Broadcast, SERVICE_TYPE
from flyshare.protocol.errors import DiscoveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class PeerAddress:
    address: str
    port: int

    def __str__(self):
        if ":" in self.address:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


class DiscoveryListener(ServiceListener):
    def __init__(self):
        self.peers = {}

    def add_service(self, zeroconf, type, name):
        info = zeroconf.get_service_info(type, name)
        if info:
            addresses = [
                a for a in info.parsed_addresses()
                if not ipaddress.ip_address(a).is_link_local
            ]
            self.peers[name] = [PeerAddress(a, info.port) for a in addresses]
            logger.debug(f"Found peer: {name} at {addresses} port {info.port}")

    def update_service(self, zeroconf, type, name):
        self.add_service(zeroconf, type, name)

    def remove_service(self, zeroconf, type, name):
        if self.peers.pop(name, None) is not None:
            logger.debug(f"Peer left: {name}")


class ZeroconfDiscovery:
    """mDNS lookup and advertisement of flyshare endpoints."""

    def __init__(self, peer_name, service_type=SERVICE_TYPE):
        self.peer_name = peer_name
        self.service_type = service_type

    def discover(self, timeout):
        # watches the local network for `timeout` seconds
        listener = DiscoveryListener()
        try:
            zeroconf = Zeroconf()
        except (OSError, ZeroconfError) as e:
            raise DiscoveryError(f"mDNS discovery unavailable: {e}") from e
        try:
            ServiceBrowser(zeroconf, self.service_type, listener)
            time.sleep(timeout)
        except (OSError, ZeroconfError) as e:
            raise DiscoveryError(f"mDNS discovery failed: {e}") from e
        finally:
            zeroconf.close()

        found = sorted({p for addrs in listener.peers.values() for p in addrs})
        logger.debug(f"Discovery finished with {len(found)} candidate(s)")
        return found

    def advertise(self, port):
        broadcast = Broadcast(self.peer_name, port, self.service_type)
        broadcast.start_service()
        return broadcast
