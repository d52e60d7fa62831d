import logging

from kubernetes.client import ApiException


def has_finalizer(obj, finalizer):
    return finalizer in (obj.metadata.finalizers or [])


def add_finalizer(obj, finalizer):
    """
    Adds finalizer to the object's metadata. Returns True if it was missing.
    """
    finalizers = list(obj.metadata.finalizers or [])
    if finalizer in finalizers:
        return False
    finalizers.append(finalizer)
    obj.metadata.finalizers = finalizers
    return True


def remove_finalizer(obj, finalizer):
    """
    Removes finalizer from the object's metadata. Returns True if it was present.
    """
    finalizers = list(obj.metadata.finalizers or [])
    if finalizer not in finalizers:
        return False
    obj.metadata.finalizers = [f for f in finalizers if f != finalizer]
    return True


class KubernetesCluster:
    def __init__(self, k8s_core_v1_api):
        """
        Reads Services and Pods and persists Service finalizer changes.

        Args:
            k8s_core_v1_api (kubernetes.client.CoreV1Api): The core API client.
        """
        self.k8s_core_v1_api = k8s_core_v1_api

    def get_service(self, namespace, name):
        """
        Fetches a Service.

        Returns:
            tuple: (service, not_found). not_found is True and service is None when the
            Service no longer exists.
        """
        try:
            return self.k8s_core_v1_api.read_namespaced_service(name, namespace), False
        except ApiException as e:
            if e.status == 404:
                return None, True
            raise

    def list_services(self):
        return self.k8s_core_v1_api.list_service_for_all_namespaces().items

    def list_pods(self, namespace, selector):
        """
        Lists the Pods in namespace whose labels match every key/value pair in selector.
        """
        label_selector = ",".join(f"{k}={v}" for k, v in sorted(selector.items()))
        return self.k8s_core_v1_api.list_namespaced_pod(namespace, label_selector=label_selector).items

    def update_service(self, service):
        """
        Replaces the Service. The body carries the resourceVersion it was read at, so a
        concurrent change fails with a 409 conflict instead of being overwritten.
        """
        logging.debug(f"Updating Service {service.metadata.namespace}/{service.metadata.name} "
                      f"finalizers={service.metadata.finalizers}")
        return self.k8s_core_v1_api.replace_namespaced_service(
            service.metadata.name,
            service.metadata.namespace,
            service,
        )
