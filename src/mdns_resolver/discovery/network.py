"""Network adapter enumeration utilities."""

import ipaddress
from typing import List, Optional, Sequence

import ifaddr
import structlog

from ..models.common import AdapterInformation

logger = structlog.get_logger(__name__)

def get_network_adapters(skip_loopback: bool = True) -> List[ifaddr.Adapter]:
    """Get the host's network adapters.

    Args:
        skip_loopback: Whether to exclude adapters whose addresses are all loopback.

    Returns:
        List[ifaddr.Adapter]: Adapters as reported by ifaddr.
    """
    adapters = list(ifaddr.get_adapters())
    if skip_loopback:
        adapters = [adapter for adapter in adapters if not _is_loopback_adapter(adapter)]
    return adapters

def _is_loopback_adapter(adapter: ifaddr.Adapter) -> bool:
    ipv4 = get_adapter_ipv4_addresses(adapter)
    if ipv4:
        return all(ipaddress.ip_address(ip).is_loopback for ip in ipv4)
    return adapter.name.lower().startswith(("lo", "loopback"))

def get_adapter_ipv4_addresses(adapter: ifaddr.Adapter) -> List[str]:
    """Get the IPv4 addresses of an adapter, in the order the OS reports them.

    Args:
        adapter: Adapter returned by ifaddr.

    Returns:
        List[str]: IPv4 addresses; IPv6 entries are ignored.
    """
    return [ip.ip for ip in adapter.ips if ip.is_IPv4]

def get_usable_adapters(skip_loopback: bool = True, names: Optional[Sequence[str]] = None) -> List[AdapterInformation]:
    """Get adapters that can take part in IPv4 multicast discovery.

    Args:
        skip_loopback: Whether to exclude loopback adapters.
        names: If given, only adapters with one of these names are returned.

    Returns:
        List[AdapterInformation]: One entry per adapter, using its first IPv4 address.
    """
    usable = []
    for adapter in get_network_adapters(skip_loopback=skip_loopback):
        if names and adapter.name not in names:
            continue
        ipv4 = get_adapter_ipv4_addresses(adapter)
        if not ipv4:
            logger.debug("Skipping adapter without IPv4 address", adapter=adapter.name)
            continue
        usable.append(AdapterInformation(name=adapter.name, address=ipv4[0]))
    return usable

def find_adapter(name: str) -> Optional[AdapterInformation]:
    """Find a usable adapter by name, loopback included.

    Args:
        name: Adapter name (e.g. 'eth0') or its ifaddr nice name.

    Returns:
        Optional[AdapterInformation]: None if no such adapter has an IPv4 address.
    """
    for adapter in get_network_adapters(skip_loopback=False):
        if name not in (adapter.name, adapter.nice_name):
            continue
        ipv4 = get_adapter_ipv4_addresses(adapter)
        if ipv4:
            return AdapterInformation(name=adapter.name, address=ipv4[0])
    return None
