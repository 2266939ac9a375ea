"""
Projection of aggregated responses into host and service entities.
"""
from typing import Iterable, Optional

from ..models.dns import AddressRecord, DNSResponse, ServiceRecord, TextRecord
from ..models.host import HostEntity, ServiceEntity


def parse_txt_properties(strings: Iterable[str]) -> dict[str, Optional[str]]:
    """Parse the strings of one TXT record into a property set.

    "key=value" -> {"key": "value"}, "k=v=w" -> {"k": "v=w"}, "flag" -> {"flag": None}.
    A string without '=' whose key is blank is dropped.
    """
    properties: dict[str, Optional[str]] = {}
    for entry in strings:
        key, sep, value = entry.partition("=")
        if sep:
            properties[key] = value
        elif key.strip():
            properties[key] = None
    return properties


def build_host(response: DNSResponse, remote_address: str) -> HostEntity:
    """Build the host seen at `remote_address` and the services it advertised.

    A PTR answer produces a service only when an SRV record for its target is
    present somewhere in the response.
    """
    addresses: list[str] = []
    for record in (*response.answers, *response.additionals):
        if isinstance(record, AddressRecord) and record.address not in addresses:
            addresses.append(record.address)

    address_answers = response.address_answers
    host = HostEntity(
        id=addresses[0] if addresses else remote_address,
        display_name=address_answers[0].name if address_answers else remote_address,
        ip_addresses=addresses,
    )

    all_records = response.all_records
    for pointer in response.pointer_answers:
        matching = [r for r in all_records if r.name == pointer.target]
        srv = next((r for r in matching if isinstance(r, ServiceRecord)), None)
        if srv is None:
            continue

        service = ServiceEntity(
            name=pointer.target,
            port=srv.port,
            ttl=srv.ttl,
            protocol=pointer.name,
        )
        for txt in matching:
            if isinstance(txt, TextRecord):
                service.add_property_set(parse_txt_properties(txt.strings))
        host.add_service(service)

    return host
