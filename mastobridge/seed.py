"""
Seed operator config scalars from environment. Existing values are never overwritten.

MASTOBRIDGE_SEED_APP_NAME, _WEBSITE, _REDIRECT_URI, _SCOPES, _PERMIT_INSTANCES set the
matching scalar. The signing key comes from MASTOBRIDGE_SEED_JWT_SIGNING_KEY_PATH (a PEM
file) or, with MASTOBRIDGE_SEED_GENERATE_SIGNING_KEY=1, is generated.
"""
import logging
import os
from pathlib import Path

from mastobridge.config import CONFIG_KEYS, KEY_JWT_SIGNING_KEY
from mastobridge.keys import decode_signing_key, generate_signing_key_pem
from mastobridge.store import CredentialStore

logger = logging.getLogger(__name__)

ENV_PREFIX = "MASTOBRIDGE_SEED_"


def _seed_value(store: CredentialStore, key: str, value: str) -> bool:
    if store.get_config(key) is not None:
        logger.debug("Config already set: %s", key)
        return False
    store.put_config(key, value)
    logger.info("Seeded config: %s", key)
    return True


def seed_from_env(store: CredentialStore, environ=None) -> list[str]:
    """Write any config scalars provided by env. Returns the keys written."""
    environ = os.environ if environ is None else environ
    written = []
    for key in CONFIG_KEYS:
        if key == KEY_JWT_SIGNING_KEY:
            continue
        value = environ.get(ENV_PREFIX + key.upper())
        if value and _seed_value(store, key, value.strip()):
            written.append(key)

    key_path = environ.get(ENV_PREFIX + "JWT_SIGNING_KEY_PATH")
    pem = None
    if key_path:
        pem = Path(key_path).read_text()
        # Fail at startup rather than on the first callback
        decode_signing_key(pem)
    elif environ.get(ENV_PREFIX + "GENERATE_SIGNING_KEY") == "1" and store.get_config(KEY_JWT_SIGNING_KEY) is None:
        pem = generate_signing_key_pem()
    if pem and _seed_value(store, KEY_JWT_SIGNING_KEY, pem):
        written.append(KEY_JWT_SIGNING_KEY)
    return written
