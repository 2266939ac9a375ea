"""
Per-address aggregation of mDNS replies collected during one resolution.
"""
import threading
from typing import Callable, NamedTuple, Optional

import structlog

from ..exceptions import MalformedPacketError
from ..models.dns import DNSResponse
from .codec import decode_response

logger = structlog.get_logger(__name__)

ResponseCallback = Callable[[str, DNSResponse], None]


def _noop_callback(key: str, response: DNSResponse) -> None:
    pass


class IngestResult(NamedTuple):
    key: str
    response: DNSResponse # The accepted fragment, not the merged value
    is_new_key: bool


def matches_source(response: DNSResponse, source_address: str) -> bool:
    """Check the packet's A records against the address it actually came from.

    Multicast replies echo across adapters, so a host's packet may be received
    through another host's path. The first A answer and the first A
    additional are compared with the sender; a packet with no A record at all
    cannot be verified and is accepted.
    """
    candidates = []
    if response.address_answers:
        candidates.append(response.address_answers[0].address)
    if response.address_additionals:
        candidates.append(response.address_additionals[0].address)
    if not candidates:
        return True
    source = source_address.lower()
    return any(candidate.lower() == source for candidate in candidates)


class ResponseAggregator:
    """
    Accumulates the packets of one resolution into one response per source address.

    Several packets from the same address are truncated parts of one answer
    set: their answers are appended to the first packet's response. `ingest`
    may be called concurrently from any thread.
    """

    def __init__(self, callback: Optional[ResponseCallback] = None):
        self._callback = callback or _noop_callback
        self._responses: dict[str, DNSResponse] = {}
        self._lock = threading.Lock()
        self.logger = logger.bind(component="ResponseAggregator")

    def ingest(self, source_address: str, packet: bytes) -> Optional[IngestResult]:
        """Decode, filter and merge one packet. Returns None when the packet is dropped."""
        try:
            response = decode_response(packet)
        except MalformedPacketError as e:
            self.logger.debug("Dropping undecodable packet", source=source_address, size=e.packet_size)
            return None

        if not response.is_response:
            self.logger.debug("Ignoring query packet", source=source_address)
            return None

        if not matches_source(response, source_address):
            self.logger.debug("Dropping packet whose A record does not match its sender", source=source_address)
            return None

        key = source_address
        with self._lock:
            existing = self._responses.get(key)
            if existing is None:
                self._responses[key] = response
            else:
                self._responses[key] = existing.with_answers(response.answers)

        self.logger.debug(
            "Accepted response packet",
            source=source_address,
            answers=len(response.answers),
            additionals=len(response.additionals),
            merged=existing is not None,
        )
        self._callback(key, response)
        return IngestResult(key=key, response=response, is_new_key=existing is None)

    def on_packet(self, source_address: str, packet: bytes) -> None:
        """Transport callback adapter for `ingest`."""
        self.ingest(source_address, packet)

    def responses(self) -> dict[str, DNSResponse]:
        """Snapshot of the aggregated map."""
        with self._lock:
            return dict(self._responses)

    def __len__(self) -> int:
        with self._lock:
            return len(self._responses)
