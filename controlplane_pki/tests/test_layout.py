"""Tests for the control-plane layout and init_certs() bootstrap sequence."""

import base64
from datetime import timedelta
from pathlib import Path

import pytest
import yaml
from cryptography import x509

from controlplane_pki.lib.cert_utils import (
    certificate_hostnames,
    key_matches_certificate,
    load_certificate,
    load_private_key,
)
from controlplane_pki.lib.config import ControlPlaneConfig
from controlplane_pki.lib.errors import ConfigurationError
from controlplane_pki.lib.layout import (
    build_certificate_chains,
    ca_bundle_path,
    init_certs,
)
from controlplane_pki.lib.rotation import MONTH, is_cert_short_lived, needs_regeneration


class TestBuildCertificateChains:
    """Tests for the declared control-plane tree."""

    def test_embedded_etcd_adds_etcd_signer_and_bundle(
        self, controlplane_config: ControlPlaneConfig
    ) -> None:
        """With an embedded etcd the tree has four sub-CAs and five bundles."""
        chains = build_certificate_chains(controlplane_config)

        names = [signer.name for signer in chains.root.sub_signers]
        assert names == ["server-ca", "request-header-ca", "client-ca", "etcd-ca"]
        assert len(chains.bundles) == 5

    def test_external_etcd_skips_etcd_certificates(
        self, controlplane_config: ControlPlaneConfig
    ) -> None:
        """An external etcd brings its own certificates."""
        controlplane_config.embed_etcd = False

        chains = build_certificate_chains(controlplane_config)

        assert "etcd-ca" not in [signer.name for signer in chains.root.sub_signers]
        assert len(chains.bundles) == 4

    def test_provided_ca_used_as_root(
        self,
        controlplane_config: ControlPlaneConfig,
        external_root_files: tuple[Path, Path],
    ) -> None:
        """Supplied CA files replace root self-generation."""
        controlplane_config.ca_file, controlplane_config.ca_key_file = external_root_files

        chains = build_certificate_chains(controlplane_config)

        info = chains.root.resolved_ca_info
        assert info.externally_provided
        assert info.cert_file == external_root_files[0]


class TestConfigValidation:
    """Tests for ControlPlaneConfig.validate()."""

    def test_external_hostname_required(self, tmp_path: Path) -> None:
        """Serving certs cannot be issued without the external hostname."""
        with pytest.raises(ConfigurationError, match="external hostname"):
            ControlPlaneConfig(config_directory=tmp_path).validate()

    def test_ca_files_all_or_nothing(self, tmp_path: Path) -> None:
        """A CA cert without its key is rejected."""
        config = ControlPlaneConfig(
            config_directory=tmp_path, external_hostname="cp", ca_file=tmp_path / "ca.crt"
        )

        with pytest.raises(ConfigurationError, match="together"):
            config.validate()


class TestInitCerts:
    """Tests for init_certs() end to end."""

    def test_bootstrap_produces_consumed_artifacts(
        self, controlplane_config: ControlPlaneConfig
    ) -> None:
        """Serving cert, client CA, SA key, bundles and kubeconfig all exist."""
        result = init_certs(controlplane_config)

        certs_dir = controlplane_config.certs_directory
        assert result.certs_directory == certs_dir
        for path in (
            result.serving_cert_path,
            result.serving_key_path,
            result.client_ca_cert_path,
            result.client_ca_key_path,
            result.service_account_key_path,
            result.kubeconfig_path,
            certs_dir / "etcd-ca" / "peer" / "peer.crt",
            certs_dir / "request-header-ca" / "auth-proxy" / "client.crt",
        ):
            assert path.exists(), path
        assert result.rotation.regenerated_count == 0

    def test_serving_cert_sans(self, controlplane_config: ControlPlaneConfig) -> None:
        """The API server cert covers in-cluster names, host IP and external hostname."""
        result = init_certs(controlplane_config)

        assert certificate_hostnames(load_certificate(result.serving_cert_path)) == {
            "kubernetes.default",
            "kubernetes.default.svc",
            "localhost",
            "192.168.1.10",
            "controlplane.example.com",
            "10.0.0.1",
        }

    def test_kubeconfig_uses_aggregator_identity_and_server_bundle(
        self, controlplane_config: ControlPlaneConfig
    ) -> None:
        """The admin kubeconfig trusts the server bundle and authenticates as system:admin."""
        result = init_certs(controlplane_config)
        certs_dir = controlplane_config.certs_directory

        config = yaml.safe_load(result.kubeconfig_path.read_text())
        cluster = config["clusters"][0]["cluster"]
        user = config["users"][0]["user"]
        assert cluster["server"] == "https://controlplane.example.com:9443/"
        assert base64.b64decode(cluster["certificate-authority-data"]) == ca_bundle_path(
            certs_dir, "server-ca-bundle.crt"
        ).read_bytes()
        client_cert = x509.load_pem_x509_certificate(base64.b64decode(user["client-certificate-data"]))
        cn = client_cert.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)[0].value
        assert cn == "system:admin"

    def test_second_bootstrap_is_idempotent(
        self, controlplane_config: ControlPlaneConfig, take_snapshot
    ) -> None:
        """Restarting keeps every certificate, key and bundle byte for byte."""
        init_certs(controlplane_config)
        before = take_snapshot(controlplane_config.certs_directory)

        init_certs(controlplane_config)

        assert take_snapshot(controlplane_config.certs_directory) == before


class TestCertificateLifetimes:
    """Tests for the validity spans of the bootstrapped tree."""

    @pytest.fixture
    def tree_certs(self, controlplane_config: ControlPlaneConfig) -> dict[str, x509.Certificate]:
        init_certs(controlplane_config)
        certs: dict[str, x509.Certificate] = {}
        build_certificate_chains(controlplane_config).walk_chains(
            None, lambda path, cert: certs.__setitem__("/".join(path), cert)
        )
        return certs

    def test_root_is_long_lived_for_five_years(
        self, tree_certs: dict[str, x509.Certificate]
    ) -> None:
        """The root CA tree_certs exactly 1825 days and gets the long-lived margin."""
        root = tree_certs["root-ca"]

        assert root.not_valid_after_utc - root.not_valid_before_utc == timedelta(days=1825)
        assert not is_cert_short_lived(root)

    def test_everything_below_root_is_short_lived(
        self, tree_certs: dict[str, x509.Certificate]
    ) -> None:
        """Sub-CAs and leaves span 365 days and rotate on the short-lived margin."""
        below_root = {path: cert for path, cert in tree_certs.items() if path != "root-ca"}

        assert "root-ca/etcd-ca/peer" in below_root
        for path, cert in below_root.items():
            assert cert.not_valid_after_utc - cert.not_valid_before_utc == timedelta(days=365), path
            assert is_cert_short_lived(cert), path

    def test_root_rotates_eighteen_months_before_expiry(
        self, tree_certs: dict[str, x509.Certificate]
    ) -> None:
        """A fresh root is kept for three and a half years, then flagged."""
        root = tree_certs["root-ca"]
        not_after = root.not_valid_after_utc

        assert not needs_regeneration(root, not_after - 18 * MONTH - timedelta(days=1))
        assert needs_regeneration(root, not_after - 18 * MONTH + timedelta(days=1))

    def test_client_ca_key_matches_certificate(
        self, controlplane_config: ControlPlaneConfig
    ) -> None:
        """The client CA key handed to the API server signs with the client CA cert."""
        result = init_certs(controlplane_config)

        assert key_matches_certificate(
            load_private_key(result.client_ca_key_path),
            load_certificate(result.client_ca_cert_path),
        )
