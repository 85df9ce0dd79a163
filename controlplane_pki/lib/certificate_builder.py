"""Certificate builder for X.509 certificate construction."""

from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .errors import CertificateError

CA_KEY_USAGE = x509.KeyUsage(
    digital_signature=True,
    content_commitment=False,
    key_encipherment=True,
    data_encipherment=False,
    key_agreement=False,
    key_cert_sign=True,
    crl_sign=False,
    encipher_only=False,
    decipher_only=False,
)

LEAF_KEY_USAGE = x509.KeyUsage(
    digital_signature=True,
    content_commitment=False,
    key_encipherment=True,
    data_encipherment=False,
    key_agreement=False,
    key_cert_sign=False,
    crl_sign=False,
    encipher_only=False,
    decipher_only=False,
)


def build_csr(subject: x509.Name, private_key: RSAPrivateKey) -> x509.CertificateSigningRequest:
    """Build a CSR for subject, self-signed with private_key."""
    return x509.CertificateSigningRequestBuilder().subject_name(subject).sign(
        private_key, hashes.SHA256()
    )


def _validity(validity_days: int, not_before: datetime | None) -> tuple[datetime, datetime]:
    start = not_before or datetime.now(timezone.utc)
    return start, start + timedelta(days=validity_days)


def _csr_public_key(csr: x509.CertificateSigningRequest) -> RSAPublicKey:
    """Validate the CSR self-signature and return its RSA public key.

    Raises:
        CertificateError: If the signature is invalid or the key is not RSA
    """
    if not csr.is_signature_valid:
        raise CertificateError("CSR signature validation failed")
    public_key = csr.public_key()
    if not isinstance(public_key, RSAPublicKey):
        raise CertificateError("CSR public key must be RSA type")
    return public_key


class CertificateBuilder:
    """Builds X.509 certificates for the CA tree and its leaf certificates."""

    @staticmethod
    def build_self_signed_ca(
        common_name: str,
        private_key: RSAPrivateKey,
        serial_number: int,
        validity_days: int,
        not_before: datetime | None = None,
    ) -> x509.Certificate:
        """Build a self-signed root CA certificate.

        Args:
            common_name: CN of the CA (its signer name)
            private_key: RSA private key for signing
            serial_number: Serial number of the certificate
            validity_days: Certificate validity period in days
            not_before: Start of validity, defaults to now

        Returns:
            Self-signed X.509 certificate with CA extensions
        """
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        start, end = _validity(validity_days, not_before)
        public_key = private_key.public_key()

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(start)
            .not_valid_after(end)
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(CA_KEY_USAGE, critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
        )

        return builder.sign(private_key, hashes.SHA256())

    @staticmethod
    def build_sub_ca(
        csr: x509.CertificateSigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        serial_number: int,
        validity_days: int,
        path_length: int | None = 0,
        not_before: datetime | None = None,
    ) -> x509.Certificate:
        """Build an intermediate CA certificate from a CSR, signed by its parent CA.

        Args:
            csr: Certificate signing request of the sub-CA
            issuer_cert: Parent CA certificate
            issuer_key: Parent CA private key
            serial_number: Serial number taken from the parent's counter
            validity_days: Certificate validity period in days
            path_length: 0 when the sub-CA signs only leaves, None when it has sub-CAs
            not_before: Start of validity, defaults to now

        Returns:
            X.509 CA certificate signed by the parent

        Raises:
            CertificateError: If the CSR signature is invalid
        """
        public_key = _csr_public_key(csr)
        start, end = _validity(validity_days, not_before)

        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_cert.subject)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(start)
            .not_valid_after(end)
            .add_extension(x509.BasicConstraints(ca=True, path_length=path_length), critical=True)
            .add_extension(CA_KEY_USAGE, critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
                critical=False,
            )
        )

        return builder.sign(issuer_key, hashes.SHA256())

    @staticmethod
    def build_leaf_certificate(
        csr: x509.CertificateSigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        serial_number: int,
        validity_days: int,
        usages: list[x509.ObjectIdentifier],
        hostnames: list[x509.GeneralName] | None = None,
        not_before: datetime | None = None,
    ) -> x509.Certificate:
        """Build an end-entity certificate from a CSR, signed by the issuing CA.

        Args:
            csr: Certificate signing request carrying subject and public key
            issuer_cert: Issuing CA certificate
            issuer_key: Issuing CA private key
            serial_number: Serial number taken from the issuer's counter
            validity_days: Certificate validity period in days
            usages: Extended key usages (server auth, client auth or both)
            hostnames: SAN entries, omitted from the certificate when empty
            not_before: Start of validity, defaults to now

        Returns:
            X.509 end-entity certificate

        Raises:
            CertificateError: If the CSR signature is invalid
        """
        public_key = _csr_public_key(csr)
        start, end = _validity(validity_days, not_before)

        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_cert.subject)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(start)
            .not_valid_after(end)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(LEAF_KEY_USAGE, critical=True)
            .add_extension(x509.ExtendedKeyUsage(usages), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
                critical=False,
            )
        )
        if hostnames:
            builder = builder.add_extension(x509.SubjectAlternativeName(hostnames), critical=False)

        return builder.sign(issuer_key, hashes.SHA256())


SERVER_USAGES = [ExtendedKeyUsageOID.SERVER_AUTH]
CLIENT_USAGES = [ExtendedKeyUsageOID.CLIENT_AUTH]
PEER_USAGES = [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
