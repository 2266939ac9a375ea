"""
Typed view of decoded DNS messages.

The codec turns every received packet into a DNSResponse made of the record
variants below. All of them are frozen: merging two responses builds a new
value instead of mutating the stored one.
"""
from pydantic import ConfigDict

from .common import BasePydanticModel


class DNSRecord(BasePydanticModel):
    model_config = ConfigDict(frozen=True)

    name: str # Owner name, absolute with trailing dot
    ttl: int

class AddressRecord(DNSRecord):
    address: str

class PointerRecord(DNSRecord):
    target: str

class ServiceRecord(DNSRecord):
    priority: int = 0
    weight: int = 0
    port: int
    target: str

class TextRecord(DNSRecord):
    strings: tuple[str, ...] = ()

class GenericRecord(DNSRecord):
    rtype: int # Numeric record type of a record this package does not interpret


class DNSResponse(BasePydanticModel):
    """One decoded packet, or the merge of several packets from one address."""
    model_config = ConfigDict(frozen=True)

    is_response: bool
    answers: tuple[DNSRecord, ...] = ()
    authorities: tuple[DNSRecord, ...] = ()
    additionals: tuple[DNSRecord, ...] = ()

    @property
    def address_answers(self) -> list[AddressRecord]:
        return [r for r in self.answers if isinstance(r, AddressRecord)]

    @property
    def address_additionals(self) -> list[AddressRecord]:
        return [r for r in self.additionals if isinstance(r, AddressRecord)]

    @property
    def pointer_answers(self) -> list[PointerRecord]:
        return [r for r in self.answers if isinstance(r, PointerRecord)]

    @property
    def all_records(self) -> list[DNSRecord]:
        """Answers, authorities and additionals, in that order."""
        return [*self.answers, *self.authorities, *self.additionals]

    def with_answers(self, extra_answers: "tuple[DNSRecord, ...] | list[DNSRecord]") -> "DNSResponse":
        """Return a copy whose answer section has `extra_answers` appended.
        Header and the other sections of this response are kept as they are."""
        return self.model_copy(update={"answers": (*self.answers, *extra_answers)})
