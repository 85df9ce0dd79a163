#!/usr/bin/env python3
"""Bootstrap the control-plane PKI: CA tree, leaf certs, bundles, SA key and kubeconfig."""

import argparse
import sys
from pathlib import Path

from controlplane_pki.lib.config import ControlPlaneConfig
from controlplane_pki.lib.errors import PKIError
from controlplane_pki.lib.layout import init_certs
from controlplane_pki.lib.logging_config import LOGGER


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create or refresh the control-plane certificates"
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=Path(".ocmconfig"),
        help="Control-plane config directory; certificates go to <dir>/cert (default: .ocmconfig)",
    )
    parser.add_argument(
        "--external-hostname",
        required=True,
        help="Externally reachable API server hostname, added to the serving cert SANs",
    )
    parser.add_argument(
        "--api-host-ip",
        default="127.0.0.1",
        help="API server IP added to serving cert SANs (default: 127.0.0.1)",
    )
    parser.add_argument("--port", type=int, default=9443, help="API server port (default: 9443)")
    parser.add_argument("--ca-file", type=Path, help="Externally provided root CA certificate")
    parser.add_argument("--ca-key-file", type=Path, help="Externally provided root CA key")
    parser.add_argument(
        "--external-etcd",
        action="store_true",
        help="Skip etcd certificates; an external etcd brings its own",
    )
    parser.add_argument(
        "--key-size", type=int, default=2048, help="RSA key size for generated keys (default: 2048)"
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ControlPlaneConfig:
    return ControlPlaneConfig(
        config_directory=args.config_dir,
        external_hostname=args.external_hostname,
        api_host_ip=args.api_host_ip,
        port=args.port,
        ca_file=args.ca_file,
        ca_key_file=args.ca_key_file,
        embed_etcd=not args.external_etcd,
        key_size=args.key_size,
    )


def main(argv: list[str] | None = None) -> int:
    """Bootstrap the certificates.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)

        LOGGER.info("Bootstrapping control-plane certificates...")
        result = init_certs(config)

        LOGGER.info("Certificates ready in %s", result.certs_directory)
        LOGGER.info("  Serving cert: %s", result.serving_cert_path)
        LOGGER.info("  Client CA: %s", result.client_ca_cert_path)
        LOGGER.info("  Client CA key: %s", result.client_ca_key_path)
        LOGGER.info("  Service account key: %s", result.service_account_key_path)
        LOGGER.info("  Kubeconfig: %s", result.kubeconfig_path)
        LOGGER.info("  Regenerated: %d", result.rotation.regenerated_count)
        return 0

    except PKIError as e:
        LOGGER.error("Certificate bootstrap failed: %s", e)
        return 1
    except Exception as e:
        LOGGER.error("Certificate bootstrap failed unexpectedly: %s", e, exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
