from kube_azure_dns.errors import NoSelectorError

HEADLESS_CLUSTER_IP = 'None'


def service_dns_name(name, namespace):
    """
    Returns the record name, relative to the zone, for a Service: <name>.<namespace>.svc
    """
    return f"{name}.{namespace}.svc"


def resolve_service_dns_name(service):
    # Only name and namespace: labels and annotations can change over the Service's lifetime.
    return service_dns_name(service.metadata.name, service.metadata.namespace)


def is_headless(service):
    return service.spec.cluster_ip == HEADLESS_CLUSTER_IP


def resolve_service_addresses(service):
    """
    Returns the cluster IPs assigned to a non-headless Service.
    """
    addresses = service.spec.cluster_i_ps or []
    if not addresses and service.spec.cluster_ip:
        addresses = [service.spec.cluster_ip]
    return [ip for ip in addresses if ip and ip != HEADLESS_CLUSTER_IP]


def resolve_headless_addresses(cluster, service):
    """
    Returns the addresses of every Pod selected by a headless Service, in no particular order.

    Raises:
        NoSelectorError: The Service has no selector (manually managed Endpoints).
    """
    selector = service.spec.selector
    if not selector:
        raise NoSelectorError(
            f"headless service {service.metadata.namespace}/{service.metadata.name} has no selector"
        )

    addresses = []
    for pod in cluster.list_pods(service.metadata.namespace, selector):
        status = pod.status
        if status is None:
            continue
        pod_ips = [p.ip for p in (status.pod_i_ps or []) if p.ip]
        if status.pod_ip and status.pod_ip not in pod_ips:
            pod_ips.insert(0, status.pod_ip)
        for ip in pod_ips:
            if ip not in addresses:
                addresses.append(ip)
    return addresses
