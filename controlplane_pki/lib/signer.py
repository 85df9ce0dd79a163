"""Certificate signer node: one CA, the leaf certificates it issues and its sub-CAs."""

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.x509.oid import NameOID

from .cainfo import CA, CAInfo
from .cert_utils import (
    certificate_hostnames,
    certificate_identity,
    get_certificate_serial_hex,
    key_matches_certificate,
    load_certificate,
    load_private_key,
    normalize_hostnames,
    to_general_names,
    write_cert_key_pair,
)
from .certificate_builder import CLIENT_USAGES, PEER_USAGES, SERVER_USAGES
from .config import SigningConfig
from .errors import CertificateError, ConfigurationError
from .logging_config import LOGGER, cert_fields
from .models import (
    ClientCertificateRequest,
    LeafRequest,
    PeerCertificateRequest,
    ServingCertificateRequest,
)

CA_CERT_FILE_NAME = "ca.crt"
CA_KEY_FILE_NAME = "ca.key"
CA_SERIAL_FILE_NAME = "serial.txt"


def requested_hostnames(request: LeafRequest, signing_config: SigningConfig) -> list[str]:
    """Return the SAN hostnames a leaf request asks for, in declared order."""
    if isinstance(request, ServingCertificateRequest):
        hostnames = list(request.hostnames)
        if request.include_api_host and signing_config.api_host:
            hostnames.append(signing_config.api_host)
        return hostnames
    if isinstance(request, PeerCertificateRequest):
        return list(request.hostnames)
    return []


def requested_subject(request: LeafRequest, signing_config: SigningConfig) -> x509.Name:
    if isinstance(request, ServingCertificateRequest):
        hostnames = requested_hostnames(request, signing_config)
        common_name = hostnames[0] if hostnames else request.name
        return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    return request.user.to_x509_name()


def _usages(request: LeafRequest) -> list[x509.ObjectIdentifier]:
    if isinstance(request, ServingCertificateRequest):
        return SERVER_USAGES
    if isinstance(request, ClientCertificateRequest):
        return CLIENT_USAGES
    return PEER_USAGES


@dataclass(frozen=True)
class CertificateSigner:
    """A node in the CA tree.

    The node's CA lives at <directory>/ca.crt and <directory>/ca.key unless
    ca_info points elsewhere; each leaf lives at <directory>/<leaf name>/.
    The tree is immutable once built: children are given at construction.
    """

    name: str
    directory: Path
    validity_days: int
    ca_info: CAInfo | None = None
    serving_certificates: tuple[ServingCertificateRequest, ...] = ()
    client_certificates: tuple[ClientCertificateRequest, ...] = ()
    peer_certificates: tuple[PeerCertificateRequest, ...] = ()
    sub_signers: tuple["CertificateSigner", ...] = ()

    def __post_init__(self) -> None:
        for attr in (
            "serving_certificates",
            "client_certificates",
            "peer_certificates",
            "sub_signers",
        ):
            object.__setattr__(self, attr, tuple(getattr(self, attr)))

        seen: set[str] = set()
        for child in [*self.leaf_requests, *self.sub_signers]:
            if child.name in seen:
                raise ConfigurationError(f"signer {self.name}: duplicate child name {child.name}")
            seen.add(child.name)

    @property
    def leaf_requests(self) -> tuple[LeafRequest, ...]:
        return (*self.serving_certificates, *self.client_certificates, *self.peer_certificates)

    @property
    def resolved_ca_info(self) -> CAInfo:
        """The explicit CAInfo, or the default self-managed one under directory."""
        if self.ca_info is not None:
            return self.ca_info
        return CAInfo(
            signer_name=self.name,
            validity_days=self.validity_days,
            cert_file=self.directory / CA_CERT_FILE_NAME,
            key_file=self.directory / CA_KEY_FILE_NAME,
            serial_file=self.directory / CA_SERIAL_FILE_NAME,
        )

    @property
    def path_length(self) -> int | None:
        return None if self.sub_signers else 0

    def get_leaf(self, name: str) -> LeafRequest | None:
        return next((r for r in self.leaf_requests if r.name == name), None)

    def get_sub_signer(self, name: str) -> "CertificateSigner | None":
        return next((s for s in self.sub_signers if s.name == name), None)

    def iter_signers(self) -> Iterator["CertificateSigner"]:
        """Yield this signer and every descendant, parents first."""
        yield self
        for sub_signer in self.sub_signers:
            yield from sub_signer.iter_signers()

    def ensure_ca(self, parent_ca: CA | None, signing_config: SigningConfig) -> CA:
        return self.resolved_ca_info.ensure_ca(parent_ca, signing_config, self.path_length)

    def complete(self, parent_ca: CA | None, signing_config: SigningConfig) -> CA:
        """Ensure this node's CA, its leaf certificates and then its sub-signers.

        Args:
            parent_ca: CA of the parent node, None for the root
            signing_config: Settings for any certificate issued

        Returns:
            This node's CA

        Raises:
            PKIError: On the first I/O, certificate or configuration failure
        """
        ca = self.ensure_ca(parent_ca, signing_config)

        for request in self.leaf_requests:
            self.ensure_leaf(ca, request, signing_config)

        for sub_signer in self.sub_signers:
            sub_signer.complete(ca, signing_config)

        return ca

    def ensure_leaf(self, ca: CA, request: LeafRequest, signing_config: SigningConfig) -> None:
        """Issue the leaf certificate unless a valid one is already on disk."""
        if self.leaf_is_valid(ca, request, signing_config):
            return
        self.issue_leaf(ca, request, signing_config)

    def issue_leaf(self, ca: CA, request: LeafRequest, signing_config: SigningConfig) -> None:
        """Issue and persist a new leaf certificate, replacing any existing one."""
        cert, key = ca.issue_leaf(
            subject=requested_subject(request, signing_config),
            usages=_usages(request),
            hostnames=to_general_names(requested_hostnames(request, signing_config)),
            validity_days=request.validity_days,
            key_size=signing_config.key_size,
        )
        write_cert_key_pair(
            request.cert_path(self.directory), request.key_path(self.directory), cert, key
        )
        LOGGER.info(
            "Issued leaf certificate",
            extra=cert_fields(
                (self.name, request.name),
                kind=request.kind,
                serial=get_certificate_serial_hex(cert),
            ),
        )

    def leaf_is_valid(self, ca: CA, request: LeafRequest, signing_config: SigningConfig) -> bool:
        """Return True if the leaf on disk can be kept as is.

        A leaf is kept when both files parse, the key matches, the current
        CA issued it and its SANs and subject identity match the request.
        """
        cert_path = request.cert_path(self.directory)
        leaf_path = (self.name, request.name)
        key_path = request.key_path(self.directory)
        if not cert_path.exists() or not key_path.exists():
            return False

        try:
            cert = load_certificate(cert_path)
            key = load_private_key(key_path)
        except CertificateError as e:
            LOGGER.warning(
                "Replacing unreadable certificate",
                extra=cert_fields(leaf_path, file=cert_path, reason=str(e)),
            )
            return False

        reason = None
        if not key_matches_certificate(key, cert):
            reason = "key does not match certificate"
        elif not ca.issued(cert):
            reason = "not issued by the current CA"
        elif certificate_hostnames(cert) != normalize_hostnames(
            requested_hostnames(request, signing_config)
        ):
            reason = "hostnames changed"
        elif not isinstance(request, ServingCertificateRequest) and certificate_identity(cert) != (
            request.user.name,
            tuple(sorted(request.user.groups)),
        ):
            reason = "subject identity changed"

        if reason is not None:
            LOGGER.info("Replacing certificate", extra=cert_fields(leaf_path, reason=reason))
            return False
        return True
