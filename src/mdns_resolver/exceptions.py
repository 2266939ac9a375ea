"""
Custom exceptions for the mDNS resolver.
"""
from typing import Optional


class MDNSResolverError(Exception):
    """Base class for all resolver errors."""
    pass

class ResolutionCancelledError(MDNSResolverError):
    """Raised when a resolution is cancelled before any network work started."""
    pass

class MalformedPacketError(MDNSResolverError):
    """Raised by the codec when a received packet cannot be decoded.
    The aggregator and the announcement listener drop these packets silently."""
    def __init__(self, message: str, packet_size: int = 0):
        super().__init__(message)
        self.packet_size = packet_size

class TransportError(MDNSResolverError):
    """Raised when the multicast transport cannot open any socket to send or listen on."""
    pass

class AdapterNotFoundError(TransportError):
    """Raised when a forced adapter does not exist or has no usable IPv4 address."""
    def __init__(self, adapter_name: str, message: Optional[str] = None):
        super().__init__(message or f"Network adapter '{adapter_name}' not found or has no IPv4 address")
        self.adapter_name = adapter_name
