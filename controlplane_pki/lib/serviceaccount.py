"""Service-account signing key used by the API server for bearer tokens."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from .cert_utils import (
    PRIVATE_KEY_MODE,
    deserialize_private_key,
    generate_private_key,
    read_file,
    write_file,
)
from .errors import CertificateError
from .logging_config import LOGGER

SERVICE_ACCOUNT_KEY_SIZE = 2048
DEFAULT_ISSUER = "https://kubernetes.default.svc"


def ensure_service_account_key(
    path: Path, key_size: int = SERVICE_ACCOUNT_KEY_SIZE
) -> RSAPrivateKey:
    """Load the service-account key, generating it (PKCS#1 PEM, mode 0600) if absent.

    An existing key is kept: replacing it would invalidate every token
    already handed out.
    """
    if path.exists():
        return deserialize_private_key(read_file(path))

    key = generate_private_key(key_size)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    write_file(path, pem, PRIVATE_KEY_MODE)
    LOGGER.info("Generated service account key", extra={"file": str(path)})
    return key


def sign_token(
    key: RSAPrivateKey,
    subject: str,
    issuer: str = DEFAULT_ISSUER,
    ttl: timedelta = timedelta(hours=1),
) -> str:
    """Sign an RS256 bearer token for subject."""
    now = datetime.now(timezone.utc)
    claims = {"iss": issuer, "sub": subject, "iat": now, "exp": now + ttl}
    return jwt.encode(claims, key, algorithm="RS256")


def validate_token(
    token: str, public_key: RSAPublicKey, issuer: str = DEFAULT_ISSUER
) -> dict[str, str | int] | None:
    """Validate an RS256 bearer token and return its claims, or None if invalid."""
    try:
        return jwt.decode(
            token,
            public_key,
            algorithms=["RS256"],
            issuer=issuer,
            options={"require": ["exp", "iss", "sub"]},
        )
    except jwt.exceptions.PyJWTError:
        return None


def verify_service_account_key(key: RSAPrivateKey) -> None:
    """Check the key can sign a token that validates against its public half.

    Raises:
        CertificateError: If the round trip fails
    """
    token = sign_token(key, subject="system:serviceaccount:startup-check")
    if validate_token(token, key.public_key()) is None:
        raise CertificateError("service account key failed to validate its own token")
