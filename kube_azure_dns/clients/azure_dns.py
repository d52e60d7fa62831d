import logging
import os
from contextlib import contextmanager

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.identity import DefaultAzureCredential
from azure.mgmt.privatedns import PrivateDnsManagementClient

from kube_azure_dns.errors import TerminalZoneError, TransientZoneError
from kube_azure_dns.records import ADDRESS_KINDS, DEFAULT_TTL, build_record_set, to_azure_record_set

VERSION_RECORD_NAME = 'dns-version'

_TRANSIENT_STATUSES = (408, 429)


@contextmanager
def _translate_errors(operation):
    """
    Re-raises Azure SDK failures as transient or terminal zone errors.
    """
    try:
        yield
    except (ServiceRequestError, ServiceResponseError) as e:
        raise TransientZoneError(f"{operation}: {e}") from e
    except ClientAuthenticationError as e:
        raise TerminalZoneError(f"{operation}: {e}") from e
    except HttpResponseError as e:
        status = e.status_code or 0
        if status in _TRANSIENT_STATUSES or status >= 500:
            raise TransientZoneError(f"{operation}: {e}") from e
        raise TerminalZoneError(f"{operation}: {e}") from e


class AzureDNSClient:
    def __init__(self, dns_client, resource_group, zone_name):
        """
        Wraps the record set operations of an Azure Private DNS zone.

        Args:
            dns_client (PrivateDnsManagementClient): The Azure SDK client. It should be built
                without SDK retries; the controller requeues failed reconciles itself.
            resource_group (str): The resource group holding the zone.
            zone_name (str): The private DNS zone name, e.g. "cluster.example.com".
        """
        self.dns_client = dns_client
        self.resource_group = resource_group
        self.zone_name = zone_name

    def upsert(self, name, kind, addresses, ttl=DEFAULT_TTL):
        """
        Creates or fully replaces the record set for (name, kind).

        Args:
            name (str): The record name relative to the zone.
            kind (str): "A", "AAAA" or "TXT".
            addresses (list): The addresses (or TXT values) the record set should hold.
            ttl (int): Record TTL in seconds.

        Raises:
            TransientZoneError: The call may succeed if retried.
            TerminalZoneError: The call will keep failing until the configuration changes.
        """
        record_set = build_record_set(name, kind, addresses, ttl)
        logging.debug(f"Upserting {kind} {name} -> {list(record_set.addresses)} (ttl {record_set.ttl})")
        with _translate_errors(f"upsert {kind} {name}"):
            self.dns_client.record_sets.create_or_update(
                self.resource_group,
                self.zone_name,
                kind,
                name,
                to_azure_record_set(record_set),
            )

    def delete(self, name, kinds=ADDRESS_KINDS):
        """
        Deletes the record sets of the given kinds for name. Missing record sets are ignored.

        Args:
            name (str): The record name relative to the zone.
            kinds (tuple): The record kinds to remove. Defaults to A and AAAA.

        Raises:
            TransientZoneError: The call may succeed if retried.
            TerminalZoneError: The call will keep failing until the configuration changes.
        """
        for kind in kinds:
            logging.debug(f"Deleting {kind} {name}")
            with _translate_errors(f"delete {kind} {name}"):
                try:
                    self.dns_client.record_sets.delete(self.resource_group, self.zone_name, kind, name)
                except HttpResponseError as e:
                    if not isinstance(e, ResourceNotFoundError) and e.status_code != 404:
                        raise
                    logging.debug(f"{kind} {name} already absent")

    def set_version_marker(self, version, ttl=DEFAULT_TTL):
        """
        Writes the zone-wide TXT record naming the DNS schema version this controller serves.
        """
        self.upsert(VERSION_RECORD_NAME, 'TXT', [version], ttl)


def from_env():
    """
    Creates an AzureDNSClient instance from environment variables.
    """
    subscription_id = os.getenv("AZURE_SUBSCRIPTION_ID")
    resource_group = os.getenv("AZURE_RESOURCE_GROUP")
    zone_name = os.getenv("AZURE_DNS_ZONE")

    if not all([subscription_id, resource_group, zone_name]):
        raise ValueError("AZURE_SUBSCRIPTION_ID, AZURE_RESOURCE_GROUP, and AZURE_DNS_ZONE must be set")

    dns_client = PrivateDnsManagementClient(
        credential=DefaultAzureCredential(),
        subscription_id=subscription_id,
        retry_total=0,
    )
    return AzureDNSClient(dns_client, resource_group, zone_name)
