"""Rotation policy: decide which certificates in the chains must be regenerated.

The whole certificate directory cannot simply be wiped and rebuilt: some
certificates are long-lived trust anchors (the root-anchored bundles, the
system:admin client identity) that external consumers may have cached.
Those get a larger safety margin than short-lived service certificates.
"""

from datetime import datetime, timedelta, timezone

from cryptography import x509

from .cert_utils import get_certificate_serial_hex
from .chains import CertificateChains
from .logging_config import LOGGER, cert_fields
from .models import CertPath, RotationResult

MONTH = timedelta(days=30)

# Certificates valid for less than this in total are short-lived
SHORT_LIVED_MAX_VALIDITY = timedelta(days=5 * 365)

SHORT_LIVED_ROTATION_MARGIN = 7 * MONTH
LONG_LIVED_ROTATION_MARGIN = 18 * MONTH


def is_cert_short_lived(cert: x509.Certificate) -> bool:
    """Return True if the certificate's total validity span is under 5 years."""
    return cert.not_valid_after_utc - cert.not_valid_before_utc < SHORT_LIVED_MAX_VALIDITY


def needs_regeneration(cert: x509.Certificate, now: datetime) -> bool:
    """Return True if the certificate must be regenerated before use.

    Args:
        cert: Certificate to check
        now: Current time (timezone-aware)

    Returns:
        True if the certificate is not valid at now, or has less than
        7 months (short-lived) / 18 months (long-lived) left
    """
    not_before = cert.not_valid_before_utc
    not_after = cert.not_valid_after_utc
    if now < not_before or now > not_after:
        return True

    time_left = not_after - now
    if is_cert_short_lived(cert):
        return time_left < SHORT_LIVED_ROTATION_MARGIN
    return time_left < LONG_LIVED_ROTATION_MARGIN


def certs_to_regenerate(
    chains: CertificateChains, now: datetime | None = None
) -> list[CertPath]:
    """Walk the chains and return the paths of certificates to regenerate.

    Paths are returned once each, in walk order. Descendants of a flagged
    CA are omitted because regenerating the CA re-issues them.
    """
    now = now or datetime.now(timezone.utc)
    flagged: list[CertPath] = []

    def visit(path: CertPath, cert: x509.Certificate) -> None:
        if any(path[: len(prefix)] == prefix for prefix in flagged):
            return
        if needs_regeneration(cert, now):
            LOGGER.info(
                "Certificate needs regeneration",
                extra=cert_fields(
                    path,
                    serial=get_certificate_serial_hex(cert),
                    not_after=cert.not_valid_after_utc.isoformat(),
                ),
            )
            flagged.append(path)

    chains.walk_chains(None, visit)
    return flagged


def rotate_certificates(
    chains: CertificateChains, now: datetime | None = None, dry_run: bool = False
) -> RotationResult:
    """Regenerate every certificate flagged by the rotation policy.

    Args:
        chains: Completed certificate chains
        now: Current time, defaults to the system clock
        dry_run: If True, only report the paths

    Returns:
        RotationResult with the flagged paths

    Raises:
        PKIError: If any regeneration fails; rotation never skips a path
    """
    paths = certs_to_regenerate(chains, now)

    if dry_run:
        LOGGER.info("DRY RUN - certificates would be regenerated", extra={"count": len(paths)})
        return RotationResult(regenerated_paths=paths, dry_run=True)

    for path in paths:
        chains.regenerate(*path)

    if paths:
        LOGGER.warning("Regenerated certificates", extra={"count": len(paths)})
    return RotationResult(regenerated_paths=paths)
