"""Certificate request descriptors and result models for certificate chains."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar

from cryptography import x509
from cryptography.x509 import oid

CertPath = tuple[str, ...]


@dataclass(frozen=True)
class UserInfo:
    """Subject identity embedded in client and peer certificates.

    The name becomes the CN and each group an O attribute, which is how
    the API server maps a client certificate to a user for RBAC.
    """

    name: str
    groups: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "groups", tuple(self.groups))

    def to_x509_name(self) -> x509.Name:
        """Convert to cryptography x509.Name for certificate generation."""
        attributes = [x509.NameAttribute(oid.NameOID.ORGANIZATION_NAME, g) for g in self.groups]
        attributes.append(x509.NameAttribute(oid.NameOID.COMMON_NAME, self.name))
        return x509.Name(attributes)


@dataclass(frozen=True, kw_only=True)
class CSRMeta:
    """Name and validity shared by every leaf certificate request."""

    name: str
    validity_days: int

    cert_file_name: ClassVar[str] = ""
    key_file_name: ClassVar[str] = ""
    kind: ClassVar[str] = ""

    def cert_path(self, signer_dir: Path) -> Path:
        return signer_dir / self.name / self.cert_file_name

    def key_path(self, signer_dir: Path) -> Path:
        return signer_dir / self.name / self.key_file_name


@dataclass(frozen=True, kw_only=True)
class ServingCertificateRequest(CSRMeta):
    """Serving certificate valid for a list of DNS names and IP literals.

    When include_api_host is set, the externally reachable hostname from
    the signing configuration is appended to the SANs.
    """

    hostnames: tuple[str, ...] = ()
    include_api_host: bool = False

    cert_file_name: ClassVar[str] = "server.crt"
    key_file_name: ClassVar[str] = "server.key"
    kind: ClassVar[str] = "serving"

    def __post_init__(self) -> None:
        object.__setattr__(self, "hostnames", tuple(self.hostnames))


@dataclass(frozen=True, kw_only=True)
class ClientCertificateRequest(CSRMeta):
    """Client certificate carrying a subject identity."""

    user: UserInfo

    cert_file_name: ClassVar[str] = "client.crt"
    key_file_name: ClassVar[str] = "client.key"
    kind: ClassVar[str] = "client"


@dataclass(frozen=True, kw_only=True)
class PeerCertificateRequest(CSRMeta):
    """Peer certificate for mutual TLS between members of a clustered store."""

    user: UserInfo
    hostnames: tuple[str, ...] = ()

    cert_file_name: ClassVar[str] = "peer.crt"
    key_file_name: ClassVar[str] = "peer.key"
    kind: ClassVar[str] = "peer"

    def __post_init__(self) -> None:
        object.__setattr__(self, "hostnames", tuple(self.hostnames))


LeafRequest = ServingCertificateRequest | ClientCertificateRequest | PeerCertificateRequest


@dataclass(frozen=True)
class BundleSpec:
    """Named CA bundle: the CA certificates of signer_names, concatenated in order."""

    path: Path
    signer_names: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "signer_names", tuple(self.signer_names))


@dataclass
class RotationResult:
    """Result from a rotation pass over the certificate chains."""

    regenerated_paths: list[CertPath] = field(default_factory=list)
    dry_run: bool = False

    @property
    def regenerated_count(self) -> int:
        return len(self.regenerated_paths)


@dataclass
class BootstrapResult:
    """Result from the control-plane certificate bootstrap.

    Contains the certificate root and the paths of artifacts consumed by
    the API server and internal components.
    """

    certs_directory: Path
    serving_cert_path: Path
    serving_key_path: Path
    client_ca_cert_path: Path
    client_ca_key_path: Path
    service_account_key_path: Path
    kubeconfig_path: Path
    rotation: RotationResult
