"""Configuration management for the mDNS resolver."""

import json
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.common import ScanQueryType


class ResolverConfig(BaseModel):
    """Defaults applied to resolutions built with ResolutionOptions.from_config()."""

    scan_time_seconds: float = Field(default=2.0, gt=0, le=300, description="Scan window during which replies to one query are collected.")
    retries: int = Field(default=2, ge=0, le=20, description="Additional times the query is re-sent inside the scan window.")
    retry_delay_seconds: float = Field(default=2.0, ge=0, le=60, description="Delay between two sends of the same query.")
    query_type: ScanQueryType = Field(default=ScanQueryType.PTR, description="Question type used for requested service names ('ptr' or 'any').")
    allow_overlapped_queries: bool = Field(default=False, description="Let resolutions run concurrently instead of one at a time.")

class TransportConfig(BaseModel):
    """Configuration for the multicast UDP transport."""

    multicast_address: str = Field(default="224.0.0.251", description="IPv4 mDNS multicast group.")
    port: int = Field(default=5353, ge=1, le=65535, description="mDNS UDP port used for sending and listening.")
    multicast_ttl: int = Field(default=255, ge=1, le=255, description="IP_MULTICAST_TTL for outgoing queries.")
    interfaces: List[str] = Field(default_factory=list, description="Adapter names to use (e.g., ['eth0', 'wlan0']). If empty, all usable adapters are used.")
    skip_loopback: bool = Field(default=True, description="Exclude loopback adapters when scanning all adapters.")

class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format ('json' or 'console')")
    file: Optional[Path] = Field(default=None, description="Log file path")


class Config(BaseSettings):
    """Main configuration. Loads from environment variables prefixed with MDNS_RESOLVER_."""

    model_config = SettingsConfigDict(
        env_prefix='MDNS_RESOLVER_',
        env_nested_delimiter='__', # e.g., MDNS_RESOLVER_RESOLVER__RETRIES
        extra='ignore',
        env_file='.env',
        env_file_encoding='utf-8'
    )

    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, file_path: Path) -> "Config":
        """Create configuration strictly from a JSON file.
        This does not layer with environment variables.
        """
        with open(file_path) as f:
            config_data = json.load(f)
        return cls.model_validate(config_data)
