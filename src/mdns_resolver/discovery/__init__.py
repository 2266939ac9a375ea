"""
mDNS discovery: query construction, wire codec, multicast transport,
response aggregation and host projection.
"""

from .aggregator import IngestResult, ResponseAggregator
from .host_builder import build_host, parse_txt_properties
from .query import build_query
from .resolver import MDNSResolver
from .transport import MulticastTransport, NetworkTransport

__all__ = [
    "IngestResult",
    "MDNSResolver",
    "MulticastTransport",
    "NetworkTransport",
    "ResponseAggregator",
    "build_host",
    "build_query",
    "parse_txt_properties",
]  # type: list[str]
