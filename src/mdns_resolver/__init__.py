"""mdns-resolver - multicast DNS service discovery for Python.

Sends DNS-SD queries over one or many network adapters, aggregates the
replies per responding host and projects them into host/service models.
"""

__version__ = "0.1.0"
__author__ = "Tyler Zervas"
__email__ = "tz-dev@vectorweight.com"

from .config import Config
from .discovery.resolver import MDNSResolver
from .exceptions import MDNSResolverError, ResolutionCancelledError
from .models.host import HostEntity, ServiceAnnouncement, ServiceEntity
from .models.options import ResolutionOptions, ScanQueryType
from .utils.log_setup import configure_logging

__all__ = [
    "Config",
    "HostEntity",
    "MDNSResolver",
    "MDNSResolverError",
    "ResolutionCancelledError",
    "ResolutionOptions",
    "ScanQueryType",
    "ServiceAnnouncement",
    "ServiceEntity",
    "configure_logging",
]
