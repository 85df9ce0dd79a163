"""Control-plane certificate layout and the startup bootstrap sequence."""

from pathlib import Path

from .cainfo import CAInfo
from .cert_utils import read_file
from .chains import CertificateChains
from .config import (
    LONG_LIVED_CERTIFICATE_VALIDITY_DAYS,
    SHORT_LIVED_CERTIFICATE_VALIDITY_DAYS,
    ControlPlaneConfig,
    SigningConfig,
)
from .kubeconfig import write_kubeconfig
from .logging_config import LOGGER
from .models import (
    BootstrapResult,
    BundleSpec,
    ClientCertificateRequest,
    PeerCertificateRequest,
    ServingCertificateRequest,
    UserInfo,
)
from .rotation import rotate_certificates
from .serviceaccount import ensure_service_account_key, verify_service_account_key
from .signer import CA_CERT_FILE_NAME, CA_KEY_FILE_NAME, CA_SERIAL_FILE_NAME, CertificateSigner

SERVICE_ACCOUNT_KEY_FILE_NAME = "kube-serviceaccount.key"
KUBECONFIG_FILE_NAME = "kube-aggregator.kubeconfig"

# client identities
USER_ADMIN = "system:admin"
USER_KUBE_APISERVER = "kube-apiserver"
USER_AUTH_PROXY = "system:auth-proxy"
GROUP_MASTERS = "system:masters"
USER_ETCD = "etcd"
GROUP_ETCD = "etcd"
USER_ETCD_PEER = "system:etcd-peer:client"
GROUP_ETCD_PEERS = "system:etcd-peers"

# bundles
CA_BUNDLE_DIR_NAME = "ca-bundle"
ROOT_CA_BUNDLE_FILE_NAME = "root-ca-bundle.crt"
SERVER_CA_BUNDLE_FILE_NAME = "server-ca-bundle.crt"
CLIENT_CA_BUNDLE_FILE_NAME = "client-ca-bundle.crt"
REQUEST_HEADER_CA_BUNDLE_FILE_NAME = "request-header-ca-bundle.crt"
ETCD_CA_BUNDLE_FILE_NAME = "etcd-ca-bundle.crt"

# signer directories
ROOT_CA_DIR_NAME = "root-ca"
SERVER_CA_DIR_NAME = "server-ca"
CLIENT_CA_DIR_NAME = "client-ca"
REQUEST_HEADER_CA_DIR_NAME = "request-header-ca"
ETCD_CA_DIR_NAME = "etcd-ca"

# leaf directories
ADMIN_DIR_NAME = "admin"
KUBE_APISERVER_DIR_NAME = "kube-apiserver"
KUBE_AGGREGATOR_DIR_NAME = "kube-aggregator"
AUTH_PROXY_DIR_NAME = "auth-proxy"
PEER_DIR_NAME = "peer"
CLIENT_DIR_NAME = "client"

FIRST_SERVICE_CLUSTER_IP = "10.0.0.1"


def ca_bundle_path(certs_dir: Path, file_name: str) -> Path:
    return certs_dir / CA_BUNDLE_DIR_NAME / file_name


def serving_cert_file(certs_dir: Path) -> Path:
    return certs_dir / SERVER_CA_DIR_NAME / KUBE_APISERVER_DIR_NAME / "server.crt"


def serving_key_file(certs_dir: Path) -> Path:
    return certs_dir / SERVER_CA_DIR_NAME / KUBE_APISERVER_DIR_NAME / "server.key"


def client_ca_cert_file(certs_dir: Path) -> Path:
    return certs_dir / CLIENT_CA_DIR_NAME / CA_CERT_FILE_NAME


def client_ca_key_file(certs_dir: Path) -> Path:
    return certs_dir / CLIENT_CA_DIR_NAME / CA_KEY_FILE_NAME


def service_account_key_file(certs_dir: Path) -> Path:
    return certs_dir / SERVICE_ACCOUNT_KEY_FILE_NAME


def kubeconfig_file(certs_dir: Path) -> Path:
    return certs_dir / KUBECONFIG_FILE_NAME


def _short_lived(name: str) -> dict:
    return {"name": name, "validity_days": SHORT_LIVED_CERTIFICATE_VALIDITY_DAYS}


def build_certificate_chains(config: ControlPlaneConfig) -> CertificateChains:
    """Declare the control-plane CA tree and its bundles.

    root-ca signs server-ca, request-header-ca, client-ca and, with an
    embedded etcd, etcd-ca. The root may be supplied externally.
    """
    certs_dir = config.certs_directory
    root_dir = certs_dir / ROOT_CA_DIR_NAME

    if config.is_ca_provided():
        root_ca_info = CAInfo(
            signer_name=ROOT_CA_DIR_NAME,
            validity_days=LONG_LIVED_CERTIFICATE_VALIDITY_DAYS,
            cert_file=Path(config.ca_file),
            key_file=Path(config.ca_key_file),
        )
    else:
        root_ca_info = CAInfo(
            signer_name=ROOT_CA_DIR_NAME,
            validity_days=LONG_LIVED_CERTIFICATE_VALIDITY_DAYS,
            cert_file=root_dir / CA_CERT_FILE_NAME,
            key_file=root_dir / CA_KEY_FILE_NAME,
            serial_file=root_dir / CA_SERIAL_FILE_NAME,
        )

    server_signer = CertificateSigner(
        name=SERVER_CA_DIR_NAME,
        directory=certs_dir / SERVER_CA_DIR_NAME,
        validity_days=SHORT_LIVED_CERTIFICATE_VALIDITY_DAYS,
        serving_certificates=(
            ServingCertificateRequest(
                **_short_lived(KUBE_APISERVER_DIR_NAME),
                hostnames=(
                    "kubernetes.default",
                    "kubernetes.default.svc",
                    "localhost",
                    config.api_host_ip,
                    FIRST_SERVICE_CLUSTER_IP,
                ),
                include_api_host=True,
            ),
            ServingCertificateRequest(
                **_short_lived(KUBE_AGGREGATOR_DIR_NAME),
                hostnames=("api.kube-public.svc", "localhost", config.api_host_ip),
            ),
        ),
    )

    request_header_signer = CertificateSigner(
        name=REQUEST_HEADER_CA_DIR_NAME,
        directory=certs_dir / REQUEST_HEADER_CA_DIR_NAME,
        validity_days=SHORT_LIVED_CERTIFICATE_VALIDITY_DAYS,
        client_certificates=(
            ClientCertificateRequest(
                **_short_lived(AUTH_PROXY_DIR_NAME), user=UserInfo(USER_AUTH_PROXY)
            ),
        ),
    )

    client_signer = CertificateSigner(
        name=CLIENT_CA_DIR_NAME,
        directory=certs_dir / CLIENT_CA_DIR_NAME,
        validity_days=SHORT_LIVED_CERTIFICATE_VALIDITY_DAYS,
        client_certificates=(
            ClientCertificateRequest(
                **_short_lived(ADMIN_DIR_NAME), user=UserInfo(USER_ADMIN, (GROUP_MASTERS,))
            ),
            ClientCertificateRequest(
                **_short_lived(KUBE_APISERVER_DIR_NAME), user=UserInfo(USER_KUBE_APISERVER)
            ),
            ClientCertificateRequest(
                **_short_lived(KUBE_AGGREGATOR_DIR_NAME),
                user=UserInfo(USER_ADMIN, (GROUP_MASTERS,)),
            ),
        ),
    )

    sub_signers = [server_signer, request_header_signer, client_signer]
    bundles = [
        BundleSpec(ca_bundle_path(certs_dir, ROOT_CA_BUNDLE_FILE_NAME), (ROOT_CA_DIR_NAME,)),
        BundleSpec(
            ca_bundle_path(certs_dir, SERVER_CA_BUNDLE_FILE_NAME),
            (ROOT_CA_DIR_NAME, SERVER_CA_DIR_NAME),
        ),
        BundleSpec(
            ca_bundle_path(certs_dir, REQUEST_HEADER_CA_BUNDLE_FILE_NAME),
            (ROOT_CA_DIR_NAME, REQUEST_HEADER_CA_DIR_NAME),
        ),
        BundleSpec(
            ca_bundle_path(certs_dir, CLIENT_CA_BUNDLE_FILE_NAME),
            (ROOT_CA_DIR_NAME, CLIENT_CA_DIR_NAME),
        ),
    ]

    # An external etcd brings its own certificates
    if config.embed_etcd:
        sub_signers.append(
            CertificateSigner(
                name=ETCD_CA_DIR_NAME,
                directory=certs_dir / ETCD_CA_DIR_NAME,
                validity_days=SHORT_LIVED_CERTIFICATE_VALIDITY_DAYS,
                client_certificates=(
                    ClientCertificateRequest(
                        **_short_lived(CLIENT_DIR_NAME), user=UserInfo(USER_ETCD, (GROUP_ETCD,))
                    ),
                ),
                peer_certificates=(
                    PeerCertificateRequest(
                        **_short_lived(PEER_DIR_NAME),
                        user=UserInfo(USER_ETCD_PEER, (GROUP_ETCD_PEERS,)),
                        hostnames=("localhost",),
                    ),
                ),
            )
        )
        bundles.append(
            BundleSpec(
                ca_bundle_path(certs_dir, ETCD_CA_BUNDLE_FILE_NAME),
                (ROOT_CA_DIR_NAME, ETCD_CA_DIR_NAME),
            )
        )

    root_signer = CertificateSigner(
        name=ROOT_CA_DIR_NAME,
        directory=root_dir,
        validity_days=LONG_LIVED_CERTIFICATE_VALIDITY_DAYS,
        ca_info=root_ca_info,
        sub_signers=tuple(sub_signers),
    )
    return CertificateChains(root_signer, bundles)


def init_certs(config: ControlPlaneConfig) -> BootstrapResult:
    """Materialize the control-plane PKI and rotate whatever the policy flags.

    Order: complete the chains, ensure the service-account key, regenerate
    flagged certificates, then write the admin kubeconfig from the server
    bundle and the kube-aggregator client certificate.

    Raises:
        PKIError: On any failure; the control plane must not start
    """
    config.validate()
    certs_dir = config.certs_directory

    chains = build_certificate_chains(config)
    LOGGER.info("Completing certificate chains", extra={"directory": str(certs_dir)})
    chains.complete(SigningConfig(api_host=config.external_hostname, key_size=config.key_size))

    sa_key_path = service_account_key_file(certs_dir)
    verify_service_account_key(ensure_service_account_key(sa_key_path))

    # Not every certificate can be replaced on a whim: long-lived trust
    # anchors get a wider margin, see rotation.py
    rotation = rotate_certificates(chains)

    trust_bundle = read_file(ca_bundle_path(certs_dir, SERVER_CA_BUNDLE_FILE_NAME))
    cert_pem, key_pem = chains.get_cert_key(
        ROOT_CA_DIR_NAME, CLIENT_CA_DIR_NAME, KUBE_AGGREGATOR_DIR_NAME
    )
    kubeconfig_path = write_kubeconfig(
        kubeconfig_file(certs_dir), config.url, trust_bundle, cert_pem, key_pem
    )

    return BootstrapResult(
        certs_directory=certs_dir,
        serving_cert_path=serving_cert_file(certs_dir),
        serving_key_path=serving_key_file(certs_dir),
        client_ca_cert_path=client_ca_cert_file(certs_dir),
        client_ca_key_path=client_ca_key_file(certs_dir),
        service_account_key_path=sa_key_path,
        kubeconfig_path=kubeconfig_path,
        rotation=rotation,
    )
