"""
Gateway configuration. Deployment settings come from env; operator scalars
(app name, redirect URI, scopes, signing key, permit list) live in the credential store.
"""
import os

# SQLite for development; any SQLAlchemy URL works
DATABASE_URL = os.environ.get("MASTOBRIDGE_DATABASE_URL", "sqlite:///./mastobridge.db")

# Session token lifetime (seconds): one week, no renewal
SESSION_TOKEN_EXPIRES = 7 * 24 * 60 * 60

# Upstream HTTP timeout (seconds). Unset means this layer imposes none.
_timeout = os.environ.get("MASTOBRIDGE_UPSTREAM_TIMEOUT", "").strip()
UPSTREAM_TIMEOUT = float(_timeout) if _timeout else None

USER_AGENT = os.environ.get("MASTOBRIDGE_USER_AGENT", "mastobridge/0.1")

# Config scalar keys in the credential store. Names are a contract with operator tooling.
KEY_APP_NAME = "app_name"
KEY_WEBSITE = "website"
KEY_REDIRECT_URI = "redirect_uri"
KEY_PERMIT_INSTANCES = "permit_instances"
KEY_SCOPES = "scopes"
KEY_JWT_SIGNING_KEY = "jwt_signing_key"

CONFIG_KEYS = (
    KEY_APP_NAME,
    KEY_WEBSITE,
    KEY_REDIRECT_URI,
    KEY_PERMIT_INSTANCES,
    KEY_SCOPES,
    KEY_JWT_SIGNING_KEY,
)

# kid placed in session token headers and the published JWKS
SIGNING_KEY_ID = "mastobridge-session-key"
