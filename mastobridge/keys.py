"""
RSA key for signing session tokens.

The PEM lives in the `jwt_signing_key` config scalar; verification uses its public half,
which is also published as a JWKS. No key material in code or on disk here.
"""
import base64
import logging

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey, generate_private_key

from mastobridge.config import KEY_JWT_SIGNING_KEY, SIGNING_KEY_ID
from mastobridge.errors import ConfigurationError
from mastobridge.store import CredentialStore

logger = logging.getLogger(__name__)

_KEY_BITS = 2048


def generate_signing_key_pem() -> str:
    """Fresh PKCS#1 PEM, for operators bootstrapping a deployment."""
    key = generate_private_key(65537, _KEY_BITS)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def decode_signing_key(pem: str) -> RSAPrivateKey:
    """PEM (PKCS#1 or PKCS#8, unencrypted) -> RSA private key. Anything else is a config error."""
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(KEY_JWT_SIGNING_KEY, f"unable to decode '{KEY_JWT_SIGNING_KEY}' PEM: {e}") from e
    if not isinstance(key, RSAPrivateKey):
        raise ConfigurationError(
            KEY_JWT_SIGNING_KEY,
            f"'{KEY_JWT_SIGNING_KEY}' is a {type(key).__name__}, expected an RSA private key",
        )
    return key


def load_signing_key(store: CredentialStore) -> RSAPrivateKey:
    pem = store.get_config(KEY_JWT_SIGNING_KEY)
    if pem is None or not pem.strip():
        raise ConfigurationError(KEY_JWT_SIGNING_KEY)
    return decode_signing_key(pem)


def load_public_key(store: CredentialStore) -> RSAPublicKey:
    return load_signing_key(store).public_key()


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def public_key_to_jwk(public_key: RSAPublicKey, kid: str = SIGNING_KEY_ID) -> dict:
    """Export an RSA public key as a JWK."""
    numbers = public_key.public_numbers()
    return {
        "kty": "RSA",
        "kid": kid,
        "alg": "RS256",
        "use": "sig",
        "n": _b64url_uint(numbers.n),
        "e": _b64url_uint(numbers.e),
    }


def get_jwks(store: CredentialStore) -> dict:
    return {"keys": [public_key_to_jwk(load_public_key(store))]}
