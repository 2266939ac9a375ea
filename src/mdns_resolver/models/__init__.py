"""
Pydantic models for the mDNS resolver.
"""
from .common import AdapterInformation, BasePydanticModel, ScanQueryType
from .dns import (
    AddressRecord,
    DNSRecord,
    DNSResponse,
    GenericRecord,
    PointerRecord,
    ServiceRecord,
    TextRecord,
)
from .host import HostEntity, ServiceAnnouncement, ServiceEntity
from .options import DNS_SD_SERVICES_QUERY, ResolutionOptions

__all__ = [
    "AdapterInformation",
    "AddressRecord",
    "BasePydanticModel",
    "DNSRecord",
    "DNSResponse",
    "DNS_SD_SERVICES_QUERY",
    "GenericRecord",
    "HostEntity",
    "PointerRecord",
    "ResolutionOptions",
    "ScanQueryType",
    "ServiceAnnouncement",
    "ServiceEntity",
    "ServiceRecord",
    "TextRecord",
]
