"""Test fixtures for controlplane_pki tests."""

from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from controlplane_pki.lib.cainfo import CAInfo
from controlplane_pki.lib.cert_utils import generate_private_key, write_cert_key_pair
from controlplane_pki.lib.certificate_builder import CertificateBuilder
from controlplane_pki.lib.chains import CertificateChains
from controlplane_pki.lib.config import ControlPlaneConfig, SigningConfig
from controlplane_pki.lib.models import (
    BundleSpec,
    ClientCertificateRequest,
    ServingCertificateRequest,
    UserInfo,
)
from controlplane_pki.lib.signer import CertificateSigner


@pytest.fixture
def certs_dir(tmp_path: Path) -> Path:
    """Return temporary certificate root directory."""
    return tmp_path / "cert"


@pytest.fixture
def signing_config() -> SigningConfig:
    """Return signing configuration with 2048-bit keys (faster for tests)."""
    return SigningConfig(api_host="controlplane.example.com", key_size=2048)


@pytest.fixture
def root_key() -> RSAPrivateKey:
    """Generate RSA private key for Root CA."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def root_cert(root_key: RSAPrivateKey) -> x509.Certificate:
    """Generate self-signed Root CA certificate."""
    return CertificateBuilder.build_self_signed_ca(
        common_name="Test Root CA",
        private_key=root_key,
        serial_number=1,
        validity_days=3650,
    )


@pytest.fixture
def external_root_files(
    tmp_path: Path, root_key: RSAPrivateKey, root_cert: x509.Certificate
) -> tuple[Path, Path]:
    """Write an externally provided root CA to disk and return (cert, key) paths."""
    cert_path = tmp_path / "external" / "root-ca.crt"
    key_path = tmp_path / "external" / "root-ca.key"
    write_cert_key_pair(cert_path, key_path, root_cert, root_key)
    return cert_path, key_path


def make_chains(certs_dir: Path, root_ca_info: CAInfo | None = None) -> CertificateChains:
    """Build a root -> (server-ca, client-ca) tree with one [root, server] bundle.

    server-ca issues two serving certs, client-ca one admin client cert.
    """
    server_signer = CertificateSigner(
        name="server-ca",
        directory=certs_dir / "server-ca",
        validity_days=365,
        serving_certificates=(
            ServingCertificateRequest(
                name="kube-apiserver", validity_days=365, hostnames=("localhost", "10.0.0.1")
            ),
            ServingCertificateRequest(
                name="kube-aggregator", validity_days=365, hostnames=("api.kube-public.svc",)
            ),
        ),
    )
    client_signer = CertificateSigner(
        name="client-ca",
        directory=certs_dir / "client-ca",
        validity_days=365,
        client_certificates=(
            ClientCertificateRequest(
                name="admin",
                validity_days=365,
                user=UserInfo("system:admin", ("system:masters",)),
            ),
        ),
    )
    root_signer = CertificateSigner(
        name="root-ca",
        directory=certs_dir / "root-ca",
        validity_days=3650,
        ca_info=root_ca_info,
        sub_signers=(server_signer, client_signer),
    )
    return CertificateChains(
        root_signer,
        [BundleSpec(certs_dir / "ca-bundle" / "server-ca-bundle.crt", ("root-ca", "server-ca"))],
    )


@pytest.fixture
def chains(certs_dir: Path) -> CertificateChains:
    """Return an uncompleted certificate chains tree."""
    return make_chains(certs_dir)


@pytest.fixture
def completed_chains(
    chains: CertificateChains, signing_config: SigningConfig
) -> CertificateChains:
    """Return the certificate chains tree materialized on disk."""
    return chains.complete(signing_config)


@pytest.fixture
def controlplane_config(tmp_path: Path) -> ControlPlaneConfig:
    """Return control-plane configuration rooted in a temporary directory."""
    return ControlPlaneConfig(
        config_directory=tmp_path / "ocmconfig",
        external_hostname="controlplane.example.com",
        api_host_ip="192.168.1.10",
        key_size=2048,
    )


def snapshot(directory: Path) -> dict[Path, bytes]:
    """Return the bytes of every file under directory."""
    return {path: path.read_bytes() for path in sorted(directory.rglob("*")) if path.is_file()}


@pytest.fixture
def chains_factory():
    """Return make_chains for tests that need a custom root CAInfo."""
    return make_chains


@pytest.fixture
def take_snapshot():
    """Return snapshot for byte-level comparisons of a directory tree."""
    return snapshot
