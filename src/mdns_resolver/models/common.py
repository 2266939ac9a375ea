from enum import Enum

from pydantic import BaseModel


class BasePydanticModel(BaseModel):
    model_config = {
        "extra": "forbid",
        "populate_by_name": True,
        "use_enum_values": True,
    }

class ScanQueryType(str, Enum):
    PTR = "ptr" # Strict PTR question per requested service name
    ANY = "any" # Wildcard question, hosts may answer with every record they own

class AdapterInformation(BasePydanticModel):
    name: str # Adapter name as reported by the OS, e.g. "eth0"
    address: str # IPv4 address the adapter sends and listens on
