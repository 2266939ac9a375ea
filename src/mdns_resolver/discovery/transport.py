"""
Multicast UDP transport for mDNS queries and announcements.

The resolver only depends on the NetworkTransport protocol; MulticastTransport
is the asyncio implementation used by default.
"""
import asyncio
import socket
import sys
from typing import Callable, List, Optional, Protocol

import structlog

from ..config import TransportConfig
from ..exceptions import AdapterNotFoundError, TransportError
from ..models.common import AdapterInformation
from .codec import is_response_packet
from .network import find_adapter, get_usable_adapters

logger = structlog.get_logger(__name__)

# Linux delivers group traffic from every interface to each member socket unless this is 0
IP_MULTICAST_ALL = getattr(socket, "IP_MULTICAST_ALL", 49)

PacketCallback = Callable[[str, bytes], None]
AnnouncementCallback = Callable[[AdapterInformation, str, bytes], None]


class NetworkTransport(Protocol):
    async def send_and_collect(
        self,
        query: bytes,
        scan_time: float,
        retries: int,
        retry_delay_ms: int,
        on_packet: PacketCallback,
        adapter: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Send `query` and report every reply packet until `scan_time` elapses or `cancel_event` is set.

        Until a reply arrives, the query is re-sent up to `retries` more times, `retry_delay_ms` apart.
        `adapter` restricts the exchange to one adapter; None uses all usable ones.
        """
        ...

    async def listen_for_announcements(
        self,
        on_announcement: AnnouncementCallback,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Report every packet received on the mDNS group until `cancel_event` is set."""
        ...


class _PacketProtocol(asyncio.DatagramProtocol):
    def __init__(self, adapter: AdapterInformation, on_datagram: Callable[[AdapterInformation, str, bytes], None]):
        self.adapter = adapter
        self._on_datagram = on_datagram

    def datagram_received(self, data: bytes, addr) -> None:
        self._on_datagram(self.adapter, addr[0], data)

    def error_received(self, exc: Exception) -> None:
        logger.debug("Datagram error on adapter", adapter=self.adapter.name, error=str(exc))


async def wait_for_event(timeout: Optional[float], event: Optional[asyncio.Event]) -> bool:
    """Sleep for `timeout` seconds (forever if None) or until `event` is set.

    Returns:
        bool: True if the wait ended because the event is set.
    """
    if event is None:
        if timeout is None:
            await asyncio.Event().wait() # Only task cancellation ends this
        else:
            await asyncio.sleep(timeout)
        return False
    if event.is_set():
        return True
    try:
        await asyncio.wait_for(event.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False


class MulticastTransport:
    """
    Sends queries and listens on the IPv4 mDNS group, one UDP socket per adapter.
    """

    def __init__(self, transport_config: Optional[TransportConfig] = None):
        self.config = transport_config or TransportConfig()
        self.logger = logger.bind(component="MulticastTransport")

    def _select_adapters(self, adapter: Optional[str]) -> List[AdapterInformation]:
        if adapter is not None:
            forced = find_adapter(adapter)
            if forced is None:
                raise AdapterNotFoundError(adapter)
            return [forced]
        return get_usable_adapters(
            skip_loopback=self.config.skip_loopback,
            names=self.config.interfaces or None,
        )

    def _create_socket(self, adapter: AdapterInformation) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"): # Not available on Windows
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.bind(("", self.config.port))
            group = socket.inet_aton(self.config.multicast_address)
            local = socket.inet_aton(adapter.address)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, group + local)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, local)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.config.multicast_ttl)
            if sys.platform.startswith("linux"):
                sock.setsockopt(socket.IPPROTO_IP, IP_MULTICAST_ALL, 0)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    async def _open_endpoints(
        self,
        adapters: List[AdapterInformation],
        on_datagram: Callable[[AdapterInformation, str, bytes], None],
        strict: bool,
    ) -> List[asyncio.DatagramTransport]:
        """Open one datagram endpoint per adapter.

        With `strict`, the first failure is raised; otherwise failing adapters
        are skipped and only a total failure is raised.
        """
        loop = asyncio.get_running_loop()
        endpoints: List[asyncio.DatagramTransport] = []
        try:
            for adapter in adapters:
                try:
                    sock = self._create_socket(adapter)
                    transport, _ = await loop.create_datagram_endpoint(
                        lambda adapter=adapter: _PacketProtocol(adapter, on_datagram),
                        sock=sock,
                    )
                except OSError as e:
                    if strict:
                        raise TransportError(f"Cannot open mDNS socket on adapter {adapter.name}: {e}") from e
                    self.logger.warning("Skipping adapter, cannot open mDNS socket", adapter=adapter.name, address=adapter.address, error=str(e))
                    continue
                endpoints.append(transport)
        except BaseException:
            self._close_endpoints(endpoints)
            raise

        if not endpoints:
            raise TransportError("No network adapter could be opened for mDNS")
        return endpoints

    @staticmethod
    def _close_endpoints(endpoints: List[asyncio.DatagramTransport]) -> None:
        for endpoint in endpoints:
            endpoint.close()

    async def _send_query(
        self,
        endpoints: List[asyncio.DatagramTransport],
        query: bytes,
        retries: int,
        retry_delay_ms: int,
        replied: asyncio.Event,
    ) -> None:
        """Send the query, then re-send it up to `retries` times until a reply arrives."""
        destination = (self.config.multicast_address, self.config.port)
        for attempt in range(retries + 1):
            if attempt and await wait_for_event(retry_delay_ms / 1000, replied):
                self.logger.debug("Reply received, no further retries", attempts=attempt)
                return
            for endpoint in endpoints:
                endpoint.sendto(query, destination)
            self.logger.debug("Query sent", attempt=attempt + 1, adapters=len(endpoints), size=len(query))

    async def send_and_collect(
        self,
        query: bytes,
        scan_time: float,
        retries: int,
        retry_delay_ms: int,
        on_packet: PacketCallback,
        adapter: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        adapters = self._select_adapters(adapter)
        if not adapters:
            raise TransportError("No usable network adapter with an IPv4 address")

        self.logger.debug("Opening mDNS sockets", adapters=[a.name for a in adapters], forced=adapter is not None)
        replied = asyncio.Event()

        def on_datagram(_adapter: AdapterInformation, address: str, data: bytes) -> None:
            # Our own query loops back too; only a response counts as a reply
            if not replied.is_set() and is_response_packet(data):
                replied.set()
            on_packet(address, data)

        endpoints = await self._open_endpoints(adapters, on_datagram, strict=adapter is not None)
        sender = asyncio.create_task(self._send_query(endpoints, query, retries, retry_delay_ms, replied))
        try:
            cancelled = await wait_for_event(scan_time, cancel_event)
            if cancelled:
                self.logger.debug("Scan window cut short by cancellation.")
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            self._close_endpoints(endpoints)

    async def listen_for_announcements(
        self,
        on_announcement: AnnouncementCallback,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        adapters = self._select_adapters(None)
        if not adapters:
            raise TransportError("No usable network adapter with an IPv4 address")

        endpoints = await self._open_endpoints(adapters, on_announcement, strict=False)
        self.logger.info("Listening for mDNS announcements", adapters=[a.name for a in adapters])
        try:
            await wait_for_event(None, cancel_event)
        finally:
            self._close_endpoints(endpoints)
            self.logger.info("Stopped listening for mDNS announcements.")
