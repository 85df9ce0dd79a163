"""Certificate utility functions for keys, PEM files, serial counters and SAN inspection."""

import ipaddress
import os
import uuid
from collections.abc import Iterable
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .errors import CertificateError, CertificateFileError

PRIVATE_KEY_MODE = 0o600
PUBLIC_FILE_MODE = 0o644


def generate_private_key(key_size: int = 2048) -> RSAPrivateKey:
    """Generate RSA private key with specified size."""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def serialize_private_key(key: RSAPrivateKey) -> bytes:
    """Serialize private key to PEM format (PKCS8, no encryption)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def deserialize_private_key(pem_data: bytes) -> RSAPrivateKey:
    """Deserialize RSA private key from PEM bytes.

    Raises:
        CertificateError: If the PEM is malformed or not an RSA key
    """
    try:
        key = serialization.load_pem_private_key(pem_data, password=None)
    except (ValueError, TypeError) as e:
        raise CertificateError(f"failed to parse private key: {e}") from e
    if not isinstance(key, RSAPrivateKey):
        raise CertificateError("expected RSA private key")
    return key


def serialize_certificate(cert: x509.Certificate) -> bytes:
    """Serialize certificate to PEM format."""
    return cert.public_bytes(serialization.Encoding.PEM)


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes.

    Raises:
        CertificateError: If the PEM is malformed
    """
    try:
        return x509.load_pem_x509_certificate(pem_data)
    except ValueError as e:
        raise CertificateError(f"failed to parse certificate: {e}") from e


def generate_serial_number() -> int:
    """Generate a random 128-bit certificate serial number from UUID4.

    Used for CAs that have no serial counter file (externally supplied CAs).
    """
    return uuid.uuid4().int


def get_certificate_serial_hex(cert: x509.Certificate) -> str:
    """Return certificate serial number as hex with colons (e.g., 3A:F2:B1:...)."""
    serial_hex = f"{cert.serial_number:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    return ":".join(serial_hex[i : i + 2] for i in range(0, len(serial_hex), 2))


def create_bundle(ca_cert_pems: Iterable[bytes]) -> bytes:
    """Concatenate CA certificate PEMs in the given order, byte for byte."""
    return b"".join(ca_cert_pems)


def read_file(path: Path) -> bytes:
    """Read a PKI file.

    Raises:
        CertificateFileError: If the file cannot be read
    """
    try:
        return path.read_bytes()
    except OSError as e:
        raise CertificateFileError(f"failed to read {path}: {e}") from e


def write_file(path: Path, data: bytes, mode: int = PUBLIC_FILE_MODE) -> None:
    """Write a PKI file, creating parent directories as needed.

    Raises:
        CertificateFileError: If the directory or file cannot be written
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        os.chmod(path, mode)
    except OSError as e:
        raise CertificateFileError(f"failed to write {path}: {e}") from e


def load_certificate(path: Path) -> x509.Certificate:
    """Read and parse a PEM certificate file."""
    return deserialize_certificate(read_file(path))


def load_private_key(path: Path) -> RSAPrivateKey:
    """Read and parse a PEM private key file."""
    return deserialize_private_key(read_file(path))


def write_cert_key_pair(
    cert_path: Path, key_path: Path, cert: x509.Certificate, key: RSAPrivateKey
) -> None:
    """Persist a certificate and its private key (key first, mode 0600)."""
    write_file(key_path, serialize_private_key(key), PRIVATE_KEY_MODE)
    write_file(cert_path, serialize_certificate(cert))


def key_matches_certificate(key: RSAPrivateKey, cert: x509.Certificate) -> bool:
    """Return True if the private key belongs to the certificate's public key."""
    public_key = cert.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        return False
    return public_key.public_numbers() == key.public_key().public_numbers()


def is_directly_issued_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    """Return True if cert's issuer name and signature match the issuer certificate."""
    try:
        cert.verify_directly_issued_by(issuer)
        return True
    except (ValueError, TypeError, InvalidSignature):
        return False


def read_serial(serial_path: Path) -> int:
    """Read the next serial number from a hex serial counter file.

    Raises:
        CertificateError: If the file does not hold a hex number
    """
    content = read_file(serial_path).decode("ascii", errors="replace").strip()
    try:
        return int(content, 16)
    except ValueError as e:
        raise CertificateError(f"invalid serial file {serial_path}: {content!r}") from e


def write_serial(serial_path: Path, serial: int) -> None:
    """Write the next serial number as even-length uppercase hex (openssl style)."""
    serial_hex = f"{serial:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    write_file(serial_path, f"{serial_hex}\n".encode("ascii"))


def next_serial(serial_path: Path) -> int:
    """Take the next serial number from the counter file and advance it."""
    serial = read_serial(serial_path)
    write_serial(serial_path, serial + 1)
    return serial


def to_general_names(hostnames: Iterable[str]) -> list[x509.GeneralName]:
    """Convert DNS names and IP literals to SAN entries, dropping duplicates."""
    names: list[x509.GeneralName] = []
    seen: set[str] = set()
    for hostname in hostnames:
        if not hostname or hostname in seen:
            continue
        seen.add(hostname)
        try:
            names.append(x509.IPAddress(ipaddress.ip_address(hostname)))
        except ValueError:
            names.append(x509.DNSName(hostname))
    return names


def certificate_hostnames(cert: x509.Certificate) -> set[str]:
    """Return the DNS names and IP addresses (as strings) in a certificate's SAN."""
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return set()
    dns_names = san.get_values_for_type(x509.DNSName)
    ip_addresses = [str(ip) for ip in san.get_values_for_type(x509.IPAddress)]
    return set(dns_names) | set(ip_addresses)


def normalize_hostnames(hostnames: Iterable[str]) -> set[str]:
    """Normalize requested hostnames the way they appear once parsed from a SAN."""
    result = set()
    for hostname in hostnames:
        if not hostname:
            continue
        try:
            result.add(str(ipaddress.ip_address(hostname)))
        except ValueError:
            result.add(hostname)
    return result


def certificate_identity(cert: x509.Certificate) -> tuple[str, tuple[str, ...]]:
    """Return (common name, sorted organizations) from a certificate subject."""
    common_names = cert.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)
    cn = common_names[0].value if common_names else ""
    if not isinstance(cn, str):
        raise CertificateError("CN must be string")
    groups = [
        str(attr.value)
        for attr in cert.subject.get_attributes_for_oid(x509.NameOID.ORGANIZATION_NAME)
    ]
    return cn, tuple(sorted(groups))
