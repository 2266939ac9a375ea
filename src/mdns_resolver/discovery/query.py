"""Outbound query construction."""
from typing import Sequence

import dns.rdataclass
import dns.rdatatype

from ..models.common import ScanQueryType
from .codec import Question, encode_query


def build_query(protocols: Sequence[str], query_type: ScanQueryType = ScanQueryType.PTR) -> bytes:
    """One question per service name, in order, all using the wildcard class."""
    rdtype = dns.rdatatype.PTR if ScanQueryType(query_type) == ScanQueryType.PTR else dns.rdatatype.ANY
    return encode_query(Question(protocol, rdtype, dns.rdataclass.ANY) for protocol in protocols)
