"""CA descriptor: locate, load or generate a single certificate authority."""

from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import NameOID

from .cert_utils import (
    generate_private_key,
    generate_serial_number,
    get_certificate_serial_hex,
    is_directly_issued_by,
    key_matches_certificate,
    load_certificate,
    load_private_key,
    next_serial,
    write_cert_key_pair,
    write_serial,
)
from .certificate_builder import CertificateBuilder, build_csr
from .config import SigningConfig
from .errors import CertificateError, ConfigurationError
from .logging_config import LOGGER, cert_fields


@dataclass
class CA:
    """A loaded CA: certificate, private key and where its serial numbers come from.

    serial_file is None for externally supplied CAs, which issue random
    128-bit serials instead of counting.
    """

    certificate: x509.Certificate
    private_key: RSAPrivateKey
    serial_file: Path | None = None

    def next_serial(self) -> int:
        if self.serial_file is None:
            return generate_serial_number()
        return next_serial(self.serial_file)

    def issued(self, cert: x509.Certificate) -> bool:
        """Return True if cert was signed by this CA's current certificate."""
        return is_directly_issued_by(cert, self.certificate)

    def issue_leaf(
        self,
        subject: x509.Name,
        usages: list[x509.ObjectIdentifier],
        hostnames: list[x509.GeneralName],
        validity_days: int,
        key_size: int,
    ) -> tuple[x509.Certificate, RSAPrivateKey]:
        """Generate a key and CSR for subject and sign it as an end-entity certificate."""
        key = generate_private_key(key_size)
        cert = CertificateBuilder.build_leaf_certificate(
            csr=build_csr(subject, key),
            issuer_cert=self.certificate,
            issuer_key=self.private_key,
            serial_number=self.next_serial(),
            validity_days=validity_days,
            usages=usages,
            hostnames=hostnames,
        )
        return cert, key


@dataclass(frozen=True)
class CAInfo:
    """Identity and file locations of one CA.

    A CAInfo without a serial file describes an externally supplied CA:
    its cert and key must already exist and are never regenerated.
    """

    signer_name: str
    validity_days: int
    cert_file: Path
    key_file: Path
    serial_file: Path | None = None

    @property
    def externally_provided(self) -> bool:
        return self.serial_file is None

    def load_ca(self) -> CA:
        """Load the CA from its cert and key files.

        Raises:
            CertificateFileError: If a file cannot be read
            CertificateError: If a file is corrupt or the key does not match
        """
        cert = load_certificate(self.cert_file)
        key = load_private_key(self.key_file)
        if not key_matches_certificate(key, cert):
            raise CertificateError(
                f"CA {self.signer_name}: key {self.key_file} does not match {self.cert_file}"
            )
        if self.serial_file is not None and not self.serial_file.exists():
            LOGGER.warning(
                "Serial file missing, seeding a random counter",
                extra=cert_fields(self.signer_name, file=self.serial_file),
            )
            write_serial(self.serial_file, generate_serial_number())
        return CA(certificate=cert, private_key=key, serial_file=self.serial_file)

    def ensure_ca(
        self,
        parent: CA | None = None,
        signing_config: SigningConfig = SigningConfig(),
        path_length: int | None = None,
    ) -> CA:
        """Return a usable CA, generating and persisting it if absent.

        Existing files are loaded unchanged. A self-managed sub-CA that is
        not issued by the current parent is regenerated.

        Args:
            parent: Issuing CA, None for a root CA (self-signed)
            signing_config: Key size used when generating
            path_length: BasicConstraints path length for a generated sub-CA

        Returns:
            Loaded or freshly generated CA

        Raises:
            ConfigurationError: If an externally provided CA is missing a file
            CertificateError: If existing files are corrupt or an externally
                provided sub-CA is not issued by its parent
            CertificateFileError: If files cannot be written
        """
        files_exist = self.cert_file.exists() and self.key_file.exists()

        if self.externally_provided:
            for path in (self.cert_file, self.key_file):
                if not path.exists():
                    raise ConfigurationError(
                        f"externally provided CA {self.signer_name}: {path} does not exist"
                    )
            ca = self.load_ca()
            if parent is not None and not parent.issued(ca.certificate):
                raise CertificateError(
                    f"externally provided CA {self.signer_name} is not issued by its parent"
                )
            return ca

        if files_exist:
            ca = self.load_ca()
            if parent is None or parent.issued(ca.certificate):
                return ca
            LOGGER.info(
                "Regenerating CA",
                extra=cert_fields(self.signer_name, reason="not issued by its current parent"),
            )

        return self._generate(parent, signing_config, path_length)

    def regenerate_ca(
        self,
        parent: CA | None = None,
        signing_config: SigningConfig = SigningConfig(),
        path_length: int | None = None,
    ) -> CA:
        """Force a new key and certificate for a self-managed CA.

        Raises:
            ConfigurationError: If the CA is externally provided
        """
        if self.externally_provided:
            raise ConfigurationError(
                f"externally provided CA {self.signer_name} cannot be regenerated"
            )
        return self._generate(parent, signing_config, path_length)

    def _generate(
        self, parent: CA | None, signing_config: SigningConfig, path_length: int | None
    ) -> CA:
        if self.serial_file is None:
            raise ConfigurationError(f"CA {self.signer_name} has no serial file")

        if not self.serial_file.exists():
            write_serial(self.serial_file, 1)

        key = generate_private_key(signing_config.key_size)
        if parent is None:
            cert = CertificateBuilder.build_self_signed_ca(
                common_name=self.signer_name,
                private_key=key,
                serial_number=next_serial(self.serial_file),
                validity_days=self.validity_days,
            )
        else:
            subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, self.signer_name)])
            cert = CertificateBuilder.build_sub_ca(
                csr=build_csr(subject, key),
                issuer_cert=parent.certificate,
                issuer_key=parent.private_key,
                serial_number=parent.next_serial(),
                validity_days=self.validity_days,
                path_length=path_length,
            )

        write_cert_key_pair(self.cert_file, self.key_file, cert, key)
        LOGGER.info(
            "Generated CA",
            extra=cert_fields(
                self.signer_name, file=self.cert_file, serial=get_certificate_serial_hex(cert)
            ),
        )
        return CA(certificate=cert, private_key=key, serial_file=self.serial_file)
