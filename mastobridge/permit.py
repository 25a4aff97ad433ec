"""
Instance permit list. The optional `permit_instances` scalar is a comma-separated
list of hostnames; unset or blank lets every instance in. Entries are bare hostnames:
the port of an instance URL is not part of the check.
"""
import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

from mastobridge.config import KEY_PERMIT_INSTANCES
from mastobridge.errors import ClientInputError
from mastobridge.store import CredentialStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstanceRef:
    url: str  # scheme://host[:port], no path
    host: str  # lowercase host[:port]; the key for app credentials
    hostname: str  # lowercase host without port; what the permit list matches


def parse_instance_url(raw: str) -> InstanceRef:
    """Parse a caller-supplied instance URL. Raises ClientInputError if unusable."""
    try:
        parts = urlsplit(raw.strip())
        hostname = parts.hostname
        port = parts.port
    except ValueError as e:
        raise ClientInputError("unable to parse instance_url", instance_url=raw) from e
    if parts.scheme not in ("http", "https") or not hostname:
        raise ClientInputError("unable to parse instance_url", instance_url=raw)
    netloc = f"[{hostname}]" if ":" in hostname else hostname
    host = f"{netloc}:{port}" if port else netloc
    return InstanceRef(url=f"{parts.scheme}://{host}", host=host, hostname=hostname)


def parse_permit_list(value: str | None) -> set[str]:
    """Normalize the scalar to a set of lowercase hostnames. Blank entries are dropped."""
    if not value:
        return set()
    return {entry.strip().lower() for entry in value.split(",") if entry.strip()}


class PermitFilter:
    def __init__(self, store: CredentialStore):
        self.store = store

    def is_permitted(self, host: str) -> bool:
        """
        True if host may use the gateway. A store failure propagates (StoreError) rather
        than being read as either answer.
        """
        permitted = parse_permit_list(self.store.get_config(KEY_PERMIT_INSTANCES))
        if not permitted:
            return True
        allowed = host.strip().lower() in permitted
        if not allowed:
            logger.info("instance %s rejected by permit list", host)
        return allowed
