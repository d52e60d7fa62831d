__version__ = '0.1.0'

# Version of the Kubernetes DNS-based service discovery schema published in the zone.
DNS_SCHEMA_VERSION = '1.1.0'
