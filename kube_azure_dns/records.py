import ipaddress
import logging
from collections import namedtuple

from azure.mgmt.privatedns.models import AaaaRecord, ARecord, RecordSet as AzureRecordSet, TxtRecord

DEFAULT_TTL = 300

RECORD_KINDS = ('A', 'AAAA', 'TXT')
ADDRESS_KINDS = ('A', 'AAAA')

RecordSet = namedtuple('RecordSet', ['name', 'kind', 'addresses', 'ttl'])


def _ordered_unique(values):
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def classify(addresses):
    """
    Splits addresses into (ipv4, ipv6) lists.

    An address is treated as IPv6 when it has two or more colons, IPv4
    otherwise. Entries that are not valid for their family are dropped with
    a warning so one bad address never blocks the rest of the batch.
    """
    ipv4 = []
    ipv6 = []
    for address in addresses or []:
        if not isinstance(address, str) or not address:
            logging.warning(f"Dropping malformed address {address!r}")
            continue
        try:
            if address.count(':') >= 2:
                if ipaddress.IPv6Address(address).scope_id:
                    raise ValueError(f"scoped address {address}")
                ipv6.append(address)
            else:
                ipaddress.IPv4Address(address)
                ipv4.append(address)
        except ValueError:
            logging.warning(f"Dropping malformed address {address!r}")
    return _ordered_unique(ipv4), _ordered_unique(ipv6)


def build_record_set(name, kind, addresses, ttl=DEFAULT_TTL):
    """
    Builds the logical record set for one (name, kind) pair.
    """
    if kind not in RECORD_KINDS:
        raise ValueError(f"Unsupported record kind: {kind}")
    return RecordSet(name=name, kind=kind, addresses=tuple(_ordered_unique(addresses)), ttl=int(ttl))


def to_azure_record_set(record_set):
    """
    Maps a RecordSet to the Azure Private DNS create_or_update parameters.
    """
    if record_set.kind == 'A':
        return AzureRecordSet(ttl=record_set.ttl, a_records=[ARecord(ipv4_address=ip) for ip in record_set.addresses])
    if record_set.kind == 'AAAA':
        return AzureRecordSet(ttl=record_set.ttl, aaaa_records=[AaaaRecord(ipv6_address=ip) for ip in record_set.addresses])
    return AzureRecordSet(ttl=record_set.ttl, txt_records=[TxtRecord(value=[value]) for value in record_set.addresses])
