import logging
import time

from kube_azure_dns.clients.cluster import add_finalizer, has_finalizer, remove_finalizer
from kube_azure_dns.errors import ReconcileCancelled
from kube_azure_dns.naming import is_headless, resolve_service_addresses, resolve_service_dns_name
from kube_azure_dns.records import DEFAULT_TTL, classify

FINALIZER = 'dns.azure.com'


class _Deadline:
    def __init__(self, cancel, timeout):
        self.cancel = cancel
        self.expires_at = time.monotonic() + timeout if timeout else None

    def check(self, step):
        if self.cancel is not None and self.cancel.is_set():
            raise ReconcileCancelled(f"cancelled before {step}")
        if self.expires_at is not None and time.monotonic() >= self.expires_at:
            raise ReconcileCancelled(f"deadline exceeded before {step}")


class DNSServicesPlugin:
    def __init__(self, cluster, zone_client, config):
        self.cluster = cluster
        self.zone_client = zone_client
        self.config = config or {}
        self.plugin_id = 'dns-services'
        self.ttl = int(self.config.get('ttl', DEFAULT_TTL))
        self.timeout = self.config.get('reconcile-timeout')

    def run(self):
        """
        Reconciles every Service in the cluster once.

        A failing Service is logged and skipped so it cannot hold up the others.
        Returns the "namespace/name" keys that failed.
        """
        logging.info(f"Running {self.plugin_id} plugin reconciliation...")

        try:
            services = self.cluster.list_services()
        except Exception as e:
            logging.error(f"Error getting Service resources: {e}")
            raise

        failed = []
        for service in services:
            key = f"{service.metadata.namespace}/{service.metadata.name}"
            try:
                self.reconcile(service.metadata.namespace, service.metadata.name)
            except Exception as e:
                logging.warning(f"Initial reconcile of Service {key} failed: {e}")
                failed.append(key)
        return failed

    def reconcile(self, namespace, name, cancel=None, timeout=None):
        """
        Converges the DNS records of one Service with its current state.

        Everything is derived from the Service as it is now, never from a previous
        reconcile, so stale or repeated deliveries converge to the same result.
        Any error is raised for the caller to requeue; the finalizer is only
        added before a DNS write and only removed after a successful delete.

        Args:
            namespace (str): The Service namespace.
            name (str): The Service name.
            cancel (threading.Event, optional): Set to abandon the reconcile.
            timeout (float, optional): Seconds the reconcile may take. Defaults to the
                configured reconcile-timeout.

        Raises:
            ReconcileCancelled: cancel was set or the deadline passed before a step.
        """
        deadline = _Deadline(cancel, timeout if timeout is not None else self.timeout)
        key = f"{namespace}/{name}"

        deadline.check("fetching the service")
        service, not_found = self.cluster.get_service(namespace, name)
        if not_found:
            logging.debug(f"Service {key} is gone, nothing to do")
            return

        dns_name = resolve_service_dns_name(service)

        if service.metadata.deletion_timestamp is not None:
            if not has_finalizer(service, FINALIZER):
                return
            logging.info(f"Deleting DNS records for Service {key} ({dns_name})...")
            self._teardown(service, dns_name, deadline)
            return

        if is_headless(service):
            if has_finalizer(service, FINALIZER):
                logging.info(f"Service {key} is now headless, removing its DNS records ({dns_name})...")
                self._teardown(service, dns_name, deadline)
            else:
                logging.debug(f"Ignoring headless Service {key}")
            return

        ipv4, ipv6 = classify(resolve_service_addresses(service))
        if not ipv4 and not ipv6:
            if has_finalizer(service, FINALIZER):
                logging.info(f"Service {key} has no addresses, removing its DNS records ({dns_name})...")
                deadline.check("deleting records")
                self.zone_client.delete(dns_name)
            else:
                logging.debug(f"Service {key} has no addresses yet")
            return

        logging.info(f"Reconciling Service {key} ...")
        had_finalizer = has_finalizer(service, FINALIZER)
        if add_finalizer(service, FINALIZER):
            deadline.check("adding the finalizer")
            self.cluster.update_service(service)

        for kind, addresses in (('A', ipv4), ('AAAA', ipv6)):
            if addresses:
                deadline.check(f"upserting {kind} records")
                self.zone_client.upsert(dns_name, kind, addresses, self.ttl)
            elif had_finalizer:
                # A family the Service no longer has may still hold records from an earlier pass.
                deadline.check(f"deleting {kind} records")
                self.zone_client.delete(dns_name, kinds=(kind,))

        logging.info(f"Successfully updated DNS for Service {key} -> {ipv4 + ipv6}")

    def _teardown(self, service, dns_name, deadline):
        deadline.check("deleting records")
        self.zone_client.delete(dns_name)

        # The delete succeeded. If we stop here the finalizer stays and the next
        # reconcile repeats the (idempotent) delete.
        deadline.check("removing the finalizer")
        remove_finalizer(service, FINALIZER)
        self.cluster.update_service(service)
        logging.info(f"Removed DNS records for Service "
                     f"{service.metadata.namespace}/{service.metadata.name} ({dns_name})")
