"""Tests for kubeconfig rendering."""

import base64
from pathlib import Path

import yaml

from controlplane_pki.lib.kubeconfig import build_kubeconfig, write_kubeconfig


class TestKubeconfig:
    """Tests for build_kubeconfig() and write_kubeconfig()."""

    def test_embeds_trust_bundle_and_client_material(self) -> None:
        """Cluster CA data and client cert/key are base64 encoded."""
        config = yaml.safe_load(
            build_kubeconfig("https://cp.example.com:9443/", b"BUNDLE", b"CERT", b"KEY")
        )

        cluster = config["clusters"][0]["cluster"]
        user = config["users"][0]["user"]
        assert cluster["server"] == "https://cp.example.com:9443/"
        assert base64.b64decode(cluster["certificate-authority-data"]) == b"BUNDLE"
        assert base64.b64decode(user["client-certificate-data"]) == b"CERT"
        assert base64.b64decode(user["client-key-data"]) == b"KEY"
        assert config["current-context"] == config["contexts"][0]["name"]

    def test_write_uses_private_mode(self, tmp_path: Path) -> None:
        """The kubeconfig embeds a private key, so only the owner may read it."""
        path = write_kubeconfig(
            tmp_path / "cert" / "kube.kubeconfig", "https://x/", b"B", b"C", b"K"
        )

        assert path.exists()
        assert path.stat().st_mode & 0o777 == 0o600

    def test_rendered_as_block_yaml(self) -> None:
        """Keys keep their declared order in block style, as kubectl writes them."""
        text = build_kubeconfig("https://x/", b"B", b"C", b"K").decode("utf-8")

        assert text.startswith("apiVersion: v1\nkind: Config\n")
        assert "current-context: multicluster-controlplane\n" in text
