"""
Resolution coordinator: sends mDNS/DNS-SD queries through a transport and
turns the collected replies into responses, hosts or service-type listings.
"""
import asyncio
import contextlib
from typing import Callable, Optional, Sequence, Union

import structlog

from ..config import Config
from ..exceptions import MalformedPacketError, ResolutionCancelledError
from ..models.common import AdapterInformation
from ..models.dns import DNSResponse
from ..models.host import HostEntity, ServiceAnnouncement
from ..models.options import DNS_SD_SERVICES_QUERY, ResolutionOptions
from ..utils.concurrency import SingleFlightGuard
from .aggregator import ResponseAggregator, ResponseCallback
from .codec import decode_response
from .host_builder import build_host
from .query import build_query
from .transport import MulticastTransport, NetworkTransport

logger = structlog.get_logger(__name__)

# Shared by every MDNSResolver in the process: at most one non-overlapped resolution runs at a time.
resolver_guard = SingleFlightGuard(name="mdns-resolver")

OptionsLike = Union[ResolutionOptions, str, Sequence[str]]


class MDNSResolver:
    """
    Discovers DNS-SD services over multicast DNS.

    `resolve_responses` is the core operation; `resolve`, `browse_domains`
    and `listen_for_announcements` build on it (or on the transport) to
    return host models.
    """

    def __init__(self, app_config: Optional[Config] = None, transport: Optional[NetworkTransport] = None):
        self.app_config = app_config or Config()
        self.transport: NetworkTransport = transport or MulticastTransport(self.app_config.transport)
        self.logger = logger.bind(service="MDNSResolver")

    def _coerce_options(self, options: OptionsLike) -> ResolutionOptions:
        if isinstance(options, ResolutionOptions):
            return options
        return ResolutionOptions.from_config(self.app_config, options)

    @staticmethod
    def _raise_if_cancelled(cancel_event: Optional[asyncio.Event], stage: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ResolutionCancelledError(f"Resolution cancelled {stage}")

    async def resolve_responses(
        self,
        options: ResolutionOptions,
        callback: Optional[ResponseCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> dict[str, DNSResponse]:
        """
        Runs one resolution and returns the aggregated response of every responding address.

        `callback` receives (address, packet response) for each accepted packet
        while the scan is running. Setting `cancel_event` before the network
        phase raises ResolutionCancelledError; setting it during the scan ends
        the scan early and returns what was collected so far.
        """
        query = build_query(options.protocols, options.query_type)
        log = self.logger.bind(protocols=list(options.protocols), adapter=options.adapter)

        self._raise_if_cancelled(cancel_event, "before acquiring the resolver lock")
        if options.allow_overlapped_queries:
            guard = contextlib.nullcontext()
        else:
            if resolver_guard.locked():
                log.debug("Another resolution is in flight, waiting for it to finish.")
            guard = resolver_guard.hold()

        async with guard:
            self._raise_if_cancelled(cancel_event, "while waiting for the resolver lock")

            aggregator = ResponseAggregator(callback)
            log.info(
                "Starting mDNS resolution",
                query_type=options.query_type.value,
                scan_time=options.scan_time,
                retries=options.retries,
                retry_delay_ms=options.retry_delay_ms,
                overlapped=options.allow_overlapped_queries,
            )
            await self.transport.send_and_collect(
                query,
                options.scan_time,
                options.retries,
                options.retry_delay_ms,
                aggregator.on_packet,
                adapter=options.adapter,
                cancel_event=cancel_event,
            )
            responses = aggregator.responses()
            log.info("mDNS resolution finished", responders=len(responses))
            return responses

    async def resolve(
        self,
        options: OptionsLike,
        callback: Optional[Callable[[HostEntity], None]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> list[HostEntity]:
        """
        Resolves service names into hosts. Only hosts advertising at least one
        service are returned. `options` may be ResolutionOptions or one or more
        service names, which then use the configured defaults.
        """
        options = self._coerce_options(options)

        on_response: Optional[ResponseCallback] = None
        if callback is not None:
            def on_response(address: str, response: DNSResponse) -> None:
                callback(build_host(response, address))

        responses = await self.resolve_responses(options, on_response, cancel_event)
        hosts = [build_host(response, address) for address, response in responses.items()]
        return [host for host in hosts if host.services]

    async def browse_domains(
        self,
        options: Optional[ResolutionOptions] = None,
        callback: Optional[Callable[[str, str], None]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> dict[str, list[str]]:
        """
        Lists the service types advertised on the network.

        Returns:
            dict[str, list[str]]: service type -> addresses of the hosts advertising it.
        """
        if options is None:
            options = ResolutionOptions.from_config(self.app_config, DNS_SD_SERVICES_QUERY)

        on_response: Optional[ResponseCallback] = None
        if callback is not None:
            def on_response(address: str, response: DNSResponse) -> None:
                for service_type in advertised_service_types(response):
                    callback(service_type, address)

        responses = await self.resolve_responses(options, on_response, cancel_event)
        domains: dict[str, list[str]] = {}
        for address, response in responses.items():
            for service_type in advertised_service_types(response):
                addresses = domains.setdefault(service_type, [])
                if address not in addresses:
                    addresses.append(address)
        return domains

    async def listen_for_announcements(
        self,
        callback: Callable[[ServiceAnnouncement], None],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Passively reports hosts announcing themselves until `cancel_event` is set.
        Does not take the resolver lock.
        """
        def on_announcement(adapter: AdapterInformation, address: str, packet: bytes) -> None:
            try:
                response = decode_response(packet)
            except MalformedPacketError:
                self.logger.debug("Dropping undecodable announcement", source=address, adapter=adapter.name)
                return
            if not response.is_response:
                return
            callback(ServiceAnnouncement(adapter=adapter, host=build_host(response, address)))

        self._raise_if_cancelled(cancel_event, "before listening for announcements")
        await self.transport.listen_for_announcements(on_announcement, cancel_event)


def advertised_service_types(response: DNSResponse) -> list[str]:
    """PTR targets of a response to the DNS-SD service enumeration query."""
    return [pointer.target for pointer in response.pointer_answers]
