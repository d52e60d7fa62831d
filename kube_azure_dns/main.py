import os
import logging
import signal
import sys
import threading
import yaml
from dotenv import load_dotenv
from kubernetes import client, config, watch
from kube_azure_dns.clients.azure_dns import from_env as azure_dns_from_env
from kube_azure_dns.clients.cluster import KubernetesCluster
from kube_azure_dns.errors import NoSelectorError, ZoneError, is_transient
from kube_azure_dns.plugins.dns_services import DNSServicesPlugin
from kube_azure_dns.records import DEFAULT_TTL
from kube_azure_dns.workqueue import WorkQueue
from .version import __version__, DNS_SCHEMA_VERSION

# --- Configuration ---
load_dotenv()
logging.basicConfig(
    level=getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO),
    format='%(asctime)s - %(levelname)s - %(message)s',
)

CONFIG_SECTION = 'azure-private-dns'

DEFAULT_SETTINGS = {
    'ttl': DEFAULT_TTL,
    'workers': 4,
    'reconcile-timeout': 60.0,
    'backoff-base': 1.0,
    'backoff-max': 300.0,
    'watch-timeout': 300,
}

WATCH_RETRY_SECONDS = 5


# --- Helper Functions ---
def get_controller_config(k8s_core_v1_api):
    """
    Fetches and parses the controller's ConfigMap from the cluster.

    A missing ConfigMap is not an error: the controller runs on defaults.
    Returns None when the ConfigMap exists but cannot be used.
    """
    namespace = os.getenv('CONTROLLER_NAMESPACE', 'kube-system')
    name = os.getenv('CONTROLLER_CONFIGMAP', 'kube-azure-dns')
    logging.info(f"Attempting to load configuration from ConfigMap: {namespace}/{name}")

    try:
        cm = k8s_core_v1_api.read_namespaced_config_map(name, namespace)
    except client.ApiException as e:
        if e.status == 404:
            logging.info(f"ConfigMap '{name}' not found in namespace '{namespace}', using defaults.")
            return {}
        logging.error(f"Error reading ConfigMap: {e}")
        return None

    config_yaml = (cm.data or {}).get('config')
    if not config_yaml:
        logging.error(f"ConfigMap '{name}' does not have a 'config' key.")
        return None

    try:
        parsed = yaml.safe_load(config_yaml) or {}
    except yaml.YAMLError as e:
        logging.error(f"Error parsing ConfigMap YAML: {e}")
        return None

    if not isinstance(parsed, dict):
        logging.error(f"ConfigMap '{name}' config is not a mapping.")
        return None
    return parsed


def load_settings(controller_config):
    """
    Merges the controller's config section over the defaults.

    Raises:
        ValueError: A setting has the wrong type or is not positive.
    """
    section = (controller_config or {}).get(CONFIG_SECTION) or {}
    settings = dict(DEFAULT_SETTINGS)
    for key, default in DEFAULT_SETTINGS.items():
        if key not in section:
            continue
        try:
            value = type(default)(section[key])
        except (TypeError, ValueError):
            raise ValueError(f"{CONFIG_SECTION}.{key} must be a number, got {section[key]!r}")
        if value <= 0:
            raise ValueError(f"{CONFIG_SECTION}.{key} must be positive, got {value}")
        settings[key] = value
    return settings


# --- Watcher and Worker Threads ---
def watch_services(k8s_core_v1_api, queue, stop, timeout_seconds):
    """
    Queues the key of every Service that changes. Each stream starts with a full
    list, so restarting it after a timeout also resyncs every Service.
    """
    w = watch.Watch()
    logging.info("Starting to watch for service events...")
    while not stop.is_set():
        try:
            for event in w.stream(k8s_core_v1_api.list_service_for_all_namespaces, timeout_seconds=timeout_seconds):
                if stop.is_set():
                    w.stop()
                    break
                if event['type'] == 'ERROR':
                    logging.warning(f"Service watch returned an error: {event.get('raw_object')}")
                    continue
                service = event['object']
                key = f"{service.metadata.namespace}/{service.metadata.name}"
                logging.debug(f"Event: {event['type']} on service {key}")
                queue.add(key)
        except Exception as e:
            logging.warning(f"Service watch interrupted, restarting: {e}")
            stop.wait(WATCH_RETRY_SECONDS)
    logging.info("Service watch stopped.")


def process_queue(plugin, queue, cancel):
    """
    Drains the queue, reconciling one Service key at a time until the queue shuts down.
    """
    while True:
        key = queue.get()
        if key is None:
            return
        namespace, name = key.split('/', 1)
        try:
            plugin.reconcile(namespace, name, cancel=cancel)
            queue.forget(key)
        except NoSelectorError as e:
            # Raised once headless Services resolve Pod addresses. Nothing changes
            # until the Service spec does, which triggers a new event.
            logging.warning(f"Skipping Service {key}: {e}")
            queue.forget(key)
        except Exception as e:
            if is_transient(e):
                logging.warning(f"Reconcile of Service {key} failed, retrying: {e}")
            else:
                logging.error(f"Reconcile of Service {key} failed: {e}")
            queue.add_rate_limited(key)
        finally:
            queue.done(key)


# --- Initialization ---
def main():
    logging.info(f"Starting Kubernetes Azure DNS controller {__version__}")

    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()

    k8s_core_v1 = client.CoreV1Api()

    try:
        zone_client = azure_dns_from_env()
        logging.info(f"Azure DNS client initialized for zone {zone_client.zone_name}.")
    except ValueError as e:
        logging.error(f"Failed to initialize Azure DNS client: {e}")
        return 1

    controller_config = get_controller_config(k8s_core_v1)
    if controller_config is None:
        logging.error("Could not load controller configuration. Exiting.")
        return 1

    try:
        settings = load_settings(controller_config)
    except ValueError as e:
        logging.error(f"Invalid controller configuration: {e}")
        return 1

    try:
        zone_client.set_version_marker(DNS_SCHEMA_VERSION, settings['ttl'])
    except ZoneError as e:
        logging.error(f"Failed to write the DNS schema version record: {e}")
        return 1

    plugin = DNSServicesPlugin(KubernetesCluster(k8s_core_v1), zone_client, settings)
    queue = WorkQueue(base_delay=settings['backoff-base'], max_delay=settings['backoff-max'])
    stop = threading.Event()

    def handle_signal(signum, frame):
        logging.info(f"Received signal {signum}, shutting down controller...")
        stop.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    # --- Initial Reconciliation ---
    logging.info("Performing initial reconciliation...")
    try:
        for key in plugin.run():
            queue.add_rate_limited(key)
    except Exception as e:
        logging.warning(f"Initial reconciliation failed, relying on the watch: {e}")

    # --- Main Controller Loop ---
    threads = [threading.Thread(
        target=watch_services,
        args=(k8s_core_v1, queue, stop, settings['watch-timeout']),
        daemon=True,
    )]
    for i in range(settings['workers']):
        threads.append(threading.Thread(target=process_queue, args=(plugin, queue, stop), name=f"worker-{i}"))

    for t in threads:
        t.start()

    while not stop.wait(1):
        pass

    queue.shutdown()
    for t in threads[1:]:
        t.join(timeout=settings['reconcile-timeout'])

    logging.info("Controller shut down.")
    return 0


if __name__ == '__main__':
    sys.exit(main())
