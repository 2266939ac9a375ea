from typing import TYPE_CHECKING, Optional, Sequence, Union

from pydantic import ConfigDict, Field, field_validator

from .common import BasePydanticModel, ScanQueryType

if TYPE_CHECKING:
    from ..config import Config

DNS_SD_SERVICES_QUERY = "_services._dns-sd._udp.local."


class ResolutionOptions(BasePydanticModel):
    """Parameters of one resolution attempt. Frozen, so they cannot change while it runs."""
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    protocols: tuple[str, ...] = Field(..., min_length=1, description="Service names to query, e.g. '_http._tcp.local.'.")
    query_type: ScanQueryType = ScanQueryType.PTR
    scan_time: float = Field(default=2.0, gt=0, description="Scan window in seconds.")
    retries: int = Field(default=2, ge=0, description="Additional sends of the query inside the scan window.")
    retry_delay: float = Field(default=2.0, ge=0, description="Seconds between two sends.")
    adapter: Optional[str] = Field(default=None, description="Forced adapter name; None uses every usable adapter.")
    allow_overlapped_queries: bool = False

    @field_validator("protocols", mode="before")
    @classmethod
    def normalize_protocols(cls, value: Union[str, Sequence[str]]) -> tuple[str, ...]:
        if isinstance(value, str):
            value = [value]
        seen: set[str] = set()
        protocols = []
        for protocol in value:
            protocol = protocol.strip()
            if not protocol:
                raise ValueError("Service names must not be empty")
            if protocol.lower() in seen:
                continue
            seen.add(protocol.lower())
            protocols.append(protocol)
        return tuple(protocols)

    @property
    def retry_delay_ms(self) -> int:
        return int(round(self.retry_delay * 1000))

    @classmethod
    def from_config(cls, config: "Config", protocols: Union[str, Sequence[str]], **overrides) -> "ResolutionOptions":
        """Build options from the configured resolver defaults; keyword overrides win."""
        resolver_cfg = config.resolver
        values = {
            "protocols": protocols,
            "query_type": resolver_cfg.query_type,
            "scan_time": resolver_cfg.scan_time_seconds,
            "retries": resolver_cfg.retries,
            "retry_delay": resolver_cfg.retry_delay_seconds,
            "allow_overlapped_queries": resolver_cfg.allow_overlapped_queries,
        }
        values.update(overrides)
        return cls(**values)

