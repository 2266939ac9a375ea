from typing import Optional

from pydantic import Field

from .common import AdapterInformation, BasePydanticModel


class ServiceEntity(BasePydanticModel):
    name: str = Field(..., description="Fully qualified service instance name, e.g. 'Printer._ipp._tcp.local.'.")
    port: int
    ttl: int
    protocol: str = Field(..., description="Service type the instance was advertised under (owner name of the PTR record).")
    # One property set per TXT record; a value of None means the key was present without '='
    properties: list[dict[str, Optional[str]]] = Field(default_factory=list)

    def add_property_set(self, property_set: dict[str, Optional[str]]) -> None:
        self.properties.append(property_set)

class HostEntity(BasePydanticModel):
    id: str = Field(..., description="First discovered IP address, or the address the packets came from.")
    display_name: str
    ip_addresses: list[str] = Field(default_factory=list)
    services: dict[str, ServiceEntity] = Field(default_factory=dict)

    @property
    def ip_address(self) -> Optional[str]:
        return self.ip_addresses[0] if self.ip_addresses else None

    def add_service(self, service: ServiceEntity) -> None:
        self.services[service.name] = service

class ServiceAnnouncement(BasePydanticModel):
    adapter: AdapterInformation
    host: HostEntity
