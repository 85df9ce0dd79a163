"""Kubeconfig authenticating internal components with a client certificate."""

import base64
from pathlib import Path

import yaml

from .cert_utils import PRIVATE_KEY_MODE, write_file

CLUSTER_NAME = "multicluster-controlplane"
USER_NAME = "user"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def build_kubeconfig(
    cluster_url: str, trust_bundle: bytes, client_cert_pem: bytes, client_key_pem: bytes
) -> bytes:
    """Render a single-cluster kubeconfig as YAML."""
    config = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [
            {
                "name": CLUSTER_NAME,
                "cluster": {
                    "server": cluster_url,
                    "certificate-authority-data": _b64(trust_bundle),
                },
            }
        ],
        "contexts": [
            {
                "name": CLUSTER_NAME,
                "context": {"cluster": CLUSTER_NAME, "namespace": "default", "user": USER_NAME},
            }
        ],
        "current-context": CLUSTER_NAME,
        "users": [
            {
                "name": USER_NAME,
                "user": {
                    "client-certificate-data": _b64(client_cert_pem),
                    "client-key-data": _b64(client_key_pem),
                },
            }
        ],
        "preferences": {},
    }
    return yaml.safe_dump(config, default_flow_style=False, sort_keys=False).encode("utf-8")


def write_kubeconfig(
    path: Path,
    cluster_url: str,
    trust_bundle: bytes,
    client_cert_pem: bytes,
    client_key_pem: bytes,
) -> Path:
    """Write the kubeconfig with mode 0600 since it embeds a private key."""
    data = build_kubeconfig(cluster_url, trust_bundle, client_cert_pem, client_key_pem)
    write_file(path, data, PRIVATE_KEY_MODE)
    return path
