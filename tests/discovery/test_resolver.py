"""
Unit tests for MDNSResolver with an in-memory transport.
"""
import asyncio
import threading

import dns.message
import dns.rdatatype
import pytest

from mdns_resolver.config import Config, ResolverConfig
from mdns_resolver.discovery.resolver import MDNSResolver, advertised_service_types, resolver_guard
from mdns_resolver.exceptions import ResolutionCancelledError, TransportError
from mdns_resolver.models.common import AdapterInformation, ScanQueryType
from mdns_resolver.models.dns import DNSResponse
from mdns_resolver.models.options import DNS_SD_SERVICES_QUERY, ResolutionOptions

from mdns_packets import FakeTransport, make_packet, service_packet


def _options(**overrides) -> ResolutionOptions:
    values = {"protocols": ["_ipp._tcp.local."], "scan_time": 0.05, "retries": 1, "retry_delay": 0.01}
    values.update(overrides)
    return ResolutionOptions(**values)


# --- resolve_responses ---

@pytest.mark.asyncio
async def test_resolve_responses_drives_transport_once():
    """One transport call with the query and the scan parameters."""
    transport = FakeTransport(packets=[("192.168.1.20", service_packet("192.168.1.20"))])
    resolver = MDNSResolver(transport=transport)

    responses = await resolver.resolve_responses(_options(retries=3, retry_delay=0.25, scan_time=1.5))

    assert list(responses) == ["192.168.1.20"]
    assert len(transport.calls) == 1
    call = transport.calls[0]
    assert call["scan_time"] == 1.5
    assert call["retries"] == 3
    assert call["retry_delay_ms"] == 250
    assert call["adapter"] is None
    questions = dns.message.from_wire(call["query"]).question
    assert [q.name.to_text() for q in questions] == ["_ipp._tcp.local."]
    assert questions[0].rdtype == dns.rdatatype.PTR

@pytest.mark.asyncio
async def test_resolve_responses_forced_adapter_and_any_query():
    """A forced adapter and the ANY policy are passed through."""
    transport = FakeTransport()
    resolver = MDNSResolver(transport=transport)

    responses = await resolver.resolve_responses(_options(adapter="eth1", query_type=ScanQueryType.ANY))

    assert responses == {}
    assert transport.calls[0]["adapter"] == "eth1"
    assert dns.message.from_wire(transport.calls[0]["query"]).question[0].rdtype == dns.rdatatype.ANY

@pytest.mark.asyncio
async def test_resolve_responses_aggregates_and_filters():
    """Echoes and queries are dropped, fragments from one address are merged."""
    fragment = make_packet(answers=[("Printer._ipp._tcp.local.", "TXT", '"extra=1"', 4500)])
    transport = FakeTransport(packets=[
        ("192.168.1.20", service_packet("192.168.1.20")),
        ("192.168.1.99", service_packet("192.168.1.20")), # relayed echo
        ("192.168.1.20", fragment),
        ("192.168.1.30", make_packet(is_response=False)),
        ("192.168.1.40", b"\x00"),
    ])
    streamed = []
    resolver = MDNSResolver(transport=transport)

    responses = await resolver.resolve_responses(_options(), callback=lambda key, resp: streamed.append(key))

    assert list(responses) == ["192.168.1.20"]
    assert len(responses["192.168.1.20"].answers) == 5
    assert streamed == ["192.168.1.20", "192.168.1.20"]

@pytest.mark.asyncio
async def test_cancelled_before_call_raises_without_network():
    """A cancel event set at entry fails the call before the transport is used."""
    transport = FakeTransport()
    resolver = MDNSResolver(transport=transport)
    cancel_event = asyncio.Event()
    cancel_event.set()

    with pytest.raises(ResolutionCancelledError):
        await resolver.resolve_responses(_options(), cancel_event=cancel_event)
    assert transport.calls == []
    assert not resolver_guard.locked()

@pytest.mark.asyncio
async def test_cancelled_while_queued_behind_lock():
    """A resolution cancelled while waiting for the lock never reaches the network."""
    transport = FakeTransport(hold=0.1)
    resolver = MDNSResolver(transport=transport)
    cancel_second = asyncio.Event()

    first = asyncio.create_task(resolver.resolve_responses(_options()))
    await asyncio.sleep(0.02)
    second = asyncio.create_task(resolver.resolve_responses(_options(), cancel_event=cancel_second))
    await asyncio.sleep(0.02)
    cancel_second.set()

    await first
    with pytest.raises(ResolutionCancelledError):
        await second
    assert len(transport.calls) == 1

@pytest.mark.asyncio
async def test_cancel_during_scan_returns_partial_results():
    """Cancelling after the network phase started returns what was collected."""
    transport = FakeTransport(
        packets=[("192.168.1.20", service_packet("192.168.1.20"))],
        wait_full_window=True,
    )
    resolver = MDNSResolver(transport=transport)
    cancel_event = asyncio.Event()

    task = asyncio.create_task(resolver.resolve_responses(_options(scan_time=30), cancel_event=cancel_event))
    await asyncio.sleep(0.05)
    cancel_event.set()
    responses = await asyncio.wait_for(task, timeout=2)

    assert list(responses) == ["192.168.1.20"]
    assert transport.calls[0]["cancel_event"] is cancel_event

@pytest.mark.asyncio
async def test_transport_fault_propagates_and_releases_lock():
    """Transport errors are not masked, and the lock is released afterwards."""
    class FailingTransport(FakeTransport):
        async def send_and_collect(self, *args, **kwargs):
            raise TransportError("socket unavailable")

    resolver = MDNSResolver(transport=FailingTransport())
    with pytest.raises(TransportError):
        await resolver.resolve_responses(_options())
    assert not resolver_guard.locked()

    # A later resolution is not blocked
    resolver.transport = FakeTransport()
    assert await asyncio.wait_for(resolver.resolve_responses(_options()), timeout=1) == {}

@pytest.mark.asyncio
async def test_non_overlapped_resolutions_run_one_at_a_time():
    """Without overlap, the second resolution waits for the first to finish."""
    transport = FakeTransport(hold=0.05)
    resolver = MDNSResolver(transport=transport)

    await asyncio.gather(
        resolver.resolve_responses(_options()),
        resolver.resolve_responses(_options()),
        resolver.resolve_responses(_options()),
    )

    assert len(transport.calls) == 3
    assert transport.max_active == 1

@pytest.mark.asyncio
async def test_non_overlapped_serialization_spans_resolver_instances():
    """The lock is process-wide, not per resolver instance."""
    transport = FakeTransport(hold=0.05)
    first, second = MDNSResolver(transport=transport), MDNSResolver(transport=transport)

    await asyncio.gather(first.resolve_responses(_options()), second.resolve_responses(_options()))
    assert transport.max_active == 1

def test_non_overlapped_serialization_spans_threads():
    """Resolutions driven by event loops in different threads still run one at a time."""
    transport = FakeTransport(hold=0.1)
    errors = []

    def run():
        try:
            asyncio.run(MDNSResolver(transport=transport).resolve_responses(_options()))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert errors == []
    assert len(transport.calls) == 2
    assert transport.max_active == 1

@pytest.mark.asyncio
async def test_overlapped_resolutions_run_concurrently():
    """With overlap allowed, resolutions neither wait for nor block each other."""
    transport = FakeTransport(hold=0.05)
    resolver = MDNSResolver(transport=transport)

    await asyncio.gather(
        resolver.resolve_responses(_options(allow_overlapped_queries=True)),
        resolver.resolve_responses(_options(allow_overlapped_queries=True)),
        resolver.resolve_responses(_options()),
    )
    assert transport.max_active == 3


# --- resolve ---

@pytest.mark.asyncio
async def test_resolve_returns_hosts_with_services():
    """Hosts without any complete service are left out."""
    no_srv = make_packet(answers=[
        ("_ipp._tcp.local.", "PTR", "Ghost._ipp._tcp.local.", 4500),
        ("ghost.local.", "A", "192.168.1.21", 120),
    ])
    transport = FakeTransport(packets=[
        ("192.168.1.20", service_packet("192.168.1.20")),
        ("192.168.1.21", no_srv),
    ])
    resolver = MDNSResolver(transport=transport)

    hosts = await resolver.resolve(_options())

    assert [h.id for h in hosts] == ["192.168.1.20"]
    service = hosts[0].services["Printer._ipp._tcp.local."]
    assert service.port == 631
    assert service.properties == [{"txtvers": "1", "note": "Office"}]

@pytest.mark.asyncio
async def test_resolve_accepts_service_name_with_config_defaults():
    """A bare service name uses the configured scan parameters."""
    config = Config(resolver=ResolverConfig(scan_time_seconds=0.5, retries=4, retry_delay_seconds=0.1))
    transport = FakeTransport()
    resolver = MDNSResolver(app_config=config, transport=transport)

    assert await resolver.resolve("_http._tcp.local.") == []
    assert transport.calls[0]["scan_time"] == 0.5
    assert transport.calls[0]["retries"] == 4
    assert transport.calls[0]["retry_delay_ms"] == 100

@pytest.mark.asyncio
async def test_resolve_streams_hosts():
    """The callback receives a host for every accepted packet."""
    transport = FakeTransport(packets=[("192.168.1.20", service_packet("192.168.1.20"))])
    resolver = MDNSResolver(transport=transport)
    streamed = []

    await resolver.resolve(_options(), callback=streamed.append)

    assert [h.id for h in streamed] == ["192.168.1.20"]


# --- browse_domains ---

@pytest.mark.asyncio
async def test_browse_domains_groups_addresses_by_service_type():
    """Service types map to every address advertising them."""
    def browse_packet(*types):
        return make_packet(answers=[(DNS_SD_SERVICES_QUERY, "PTR", t, 4500) for t in types])

    transport = FakeTransport(packets=[
        ("10.0.0.5", browse_packet("_http._tcp.local.", "_ipp._tcp.local.")),
        ("10.0.0.6", browse_packet("_http._tcp.local.")),
        ("10.0.0.6", browse_packet("_http._tcp.local.")), # re-sent answer
    ])
    resolver = MDNSResolver(transport=transport)
    streamed = []

    domains = await resolver.browse_domains(
        _options(protocols=[DNS_SD_SERVICES_QUERY]),
        callback=lambda service_type, address: streamed.append((service_type, address)),
    )

    assert domains == {
        "_http._tcp.local.": ["10.0.0.5", "10.0.0.6"],
        "_ipp._tcp.local.": ["10.0.0.5"],
    }
    assert ("_ipp._tcp.local.", "10.0.0.5") in streamed

@pytest.mark.asyncio
async def test_browse_domains_default_options_query_service_enumeration():
    """Without options, the DNS-SD service enumeration name is queried."""
    config = Config(resolver=ResolverConfig(scan_time_seconds=0.5))
    transport = FakeTransport()
    resolver = MDNSResolver(app_config=config, transport=transport)

    await resolver.browse_domains()

    question = dns.message.from_wire(transport.calls[0]["query"]).question[0]
    assert question.name.to_text() == DNS_SD_SERVICES_QUERY

def test_advertised_service_types():
    """PTR targets of the answers are the advertised types."""
    response = DNSResponse(is_response=True)
    assert advertised_service_types(response) == []


# --- listen_for_announcements ---

@pytest.mark.asyncio
async def test_listen_for_announcements_projects_hosts():
    """Each response packet becomes an announcement; noise is dropped."""
    adapter = AdapterInformation(name="eth0", address="192.168.1.2")
    transport = FakeTransport(packets=[
        (adapter, "192.168.1.20", service_packet("192.168.1.20")),
        (adapter, "192.168.1.21", make_packet(is_response=False)),
        (adapter, "192.168.1.22", b"\xff\x00"),
    ])
    resolver = MDNSResolver(transport=transport)
    announcements = []

    await resolver.listen_for_announcements(announcements.append)

    assert len(announcements) == 1
    assert announcements[0].adapter.name == "eth0"
    assert announcements[0].host.id == "192.168.1.20"
    assert "Printer._ipp._tcp.local." in announcements[0].host.services

@pytest.mark.asyncio
async def test_listen_for_announcements_cancelled_at_entry():
    """An already-set cancel event stops listening before it starts."""
    transport = FakeTransport()
    resolver = MDNSResolver(transport=transport)
    cancel_event = asyncio.Event()
    cancel_event.set()

    with pytest.raises(ResolutionCancelledError):
        await resolver.listen_for_announcements(lambda announcement: None, cancel_event)
    assert transport.calls == []
