#!/usr/bin/env python3
"""Report which control-plane certificates the rotation policy would regenerate."""

import argparse
import sys

from controlplane_pki.lib.errors import PKIError
from controlplane_pki.lib.layout import build_certificate_chains
from controlplane_pki.lib.logging_config import LOGGER
from controlplane_pki.lib.rotation import rotate_certificates
from controlplane_pki.scripts.bootstrap_pki import build_parser, config_from_args


def main(argv: list[str] | None = None) -> int:
    """Walk the existing certificates without changing any file.

    Returns:
        Exit code (0 when nothing needs rotating, 2 when something does,
        1 on failure)
    """
    parser: argparse.ArgumentParser = build_parser()
    parser.description = "Report certificates due for regeneration (no changes are made)"
    args = parser.parse_args(argv)

    try:
        chains = build_certificate_chains(config_from_args(args))
        result = rotate_certificates(chains, dry_run=True)

        for path in result.regenerated_paths:
            LOGGER.info("Due: %s", "/".join(path))
        return 2 if result.regenerated_count else 0

    except PKIError as e:
        LOGGER.error("Rotation check failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
