"""
DNS wire codec built on dnspython.

Only translates between wire bytes and the typed record model in
`models.dns`; parsing itself is left entirely to dnspython.
"""
from typing import Iterable, NamedTuple

import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.rdata
import dns.rdataclass
import dns.rdatatype
import dns.rdtypes.ANY.PTR
import dns.rdtypes.ANY.TXT
import dns.rdtypes.IN.A
import dns.rdtypes.IN.SRV

from ..exceptions import MalformedPacketError
from ..models.dns import (
    AddressRecord,
    DNSRecord,
    DNSResponse,
    GenericRecord,
    PointerRecord,
    ServiceRecord,
    TextRecord,
)

# mDNS sets the top bit of the record class ("cache flush") on unique records.
MDNS_CACHE_FLUSH_BIT = 0x8000
MDNS_UNIQUE_CLASS = int(dns.rdataclass.IN) | MDNS_CACHE_FLUSH_BIT


class Question(NamedTuple):
    name: str
    rdtype: int
    rdclass: int = dns.rdataclass.ANY


def _register_cache_flush_types() -> None:
    """Teach dnspython to parse A and SRV rdata carrying the cache-flush class.

    dnspython resolves rdata implementations per (class, type); class 0x8001
    would otherwise fall back to opaque generic rdata.
    """
    for module, rdtype in ((dns.rdtypes.IN.A, dns.rdatatype.A), (dns.rdtypes.IN.SRV, dns.rdatatype.SRV)):
        try:
            dns.rdata.register_type(module, rdtype, dns.rdatatype.to_text(rdtype), rdclass=MDNS_UNIQUE_CLASS)
        except dns.rdata.RdatatypeExists:
            # Registered earlier in this process
            continue

_register_cache_flush_types()


def encode_query(questions: Iterable[Question]) -> bytes:
    """Encode an mDNS query (id 0, no flags) with one question per entry, in order."""
    message = dns.message.Message(id=0)
    for question in questions:
        message.find_rrset(
            message.question,
            dns.name.from_text(question.name),
            question.rdclass,
            question.rdtype,
            create=True,
            force_unique=True,
        )
    return message.to_wire()


def decode_response(packet: bytes) -> DNSResponse:
    """Decode one received packet.

    Raises:
        MalformedPacketError: dnspython could not parse the packet.
    """
    try:
        message = dns.message.from_wire(packet)
    except (dns.exception.DNSException, ValueError) as e:
        raise MalformedPacketError(f"Undecodable DNS packet: {e}", packet_size=len(packet)) from e

    return DNSResponse(
        is_response=bool(message.flags & dns.flags.QR),
        answers=_convert_section(message.answer),
        authorities=_convert_section(message.authority),
        additionals=_convert_section(message.additional),
    )


def is_response_packet(packet: bytes) -> bool:
    """Whether the packet carries the response flag. Only the header and questions are parsed."""
    try:
        message = dns.message.from_wire(packet, question_only=True)
    except (dns.exception.DNSException, ValueError):
        return False
    return bool(message.flags & dns.flags.QR)


def name_to_text(name: dns.name.Name) -> str:
    """Render a name label by label as UTF-8 with a trailing dot.

    dnspython's own to_text() escapes spaces and non-ASCII bytes, which are
    common in DNS-SD instance names ("Living Room._airplay._tcp.local.").
    """
    return ".".join(label.decode("utf-8", errors="replace") for label in name.labels) or "."


def _convert_section(section) -> tuple[DNSRecord, ...]:
    records = []
    for rrset in section:
        owner = name_to_text(rrset.name)
        for rdata in rrset:
            records.append(_convert_rdata(owner, rrset.ttl, rdata))
    return tuple(records)


def _convert_rdata(owner: str, ttl: int, rdata: dns.rdata.Rdata) -> DNSRecord:
    if isinstance(rdata, dns.rdtypes.IN.A.A):
        return AddressRecord(name=owner, ttl=ttl, address=rdata.address)
    if isinstance(rdata, dns.rdtypes.ANY.PTR.PTR):
        return PointerRecord(name=owner, ttl=ttl, target=name_to_text(rdata.target))
    if isinstance(rdata, dns.rdtypes.IN.SRV.SRV):
        return ServiceRecord(
            name=owner,
            ttl=ttl,
            priority=rdata.priority,
            weight=rdata.weight,
            port=rdata.port,
            target=name_to_text(rdata.target),
        )
    if isinstance(rdata, dns.rdtypes.ANY.TXT.TXT):
        return TextRecord(
            name=owner,
            ttl=ttl,
            strings=tuple(s.decode("utf-8", errors="replace") for s in rdata.strings),
        )
    return GenericRecord(name=owner, ttl=ttl, rtype=int(rdata.rdtype))
