"""Certificate chains: the CA tree, its bundles and path-based access to certificates."""

from collections.abc import Callable, Iterable, Sequence
from pathlib import Path

from cryptography import x509

from .cainfo import CA
from .cert_utils import (
    create_bundle,
    load_certificate,
    read_file,
    serialize_certificate,
    write_file,
)
from .config import SigningConfig
from .errors import ConfigurationError
from .logging_config import LOGGER, cert_fields
from .models import BundleSpec, CertPath, LeafRequest
from .signer import CertificateSigner

ChainVisitor = Callable[[CertPath, x509.Certificate], None]


class CertificateChains:
    """Owns the root signer and the named CA bundles built from the tree.

    Paths address certificates by name from the root, e.g.
    ("root-ca", "client-ca", "kube-aggregator") for a leaf or
    ("root-ca", "client-ca") for an intermediate CA.
    """

    def __init__(self, root: CertificateSigner, bundles: Iterable[BundleSpec] = ()) -> None:
        """Validate the tree and bundle specifications.

        Args:
            root: Root signer of the CA tree
            bundles: Bundle specifications referencing signer names

        Raises:
            ConfigurationError: If signer names repeat or a bundle references
                a signer not in the tree
        """
        self.root = root
        self.bundles = tuple(bundles)
        self.signing_config = SigningConfig()

        self._signers_by_name: dict[str, CertificateSigner] = {}
        for signer in root.iter_signers():
            if signer.name in self._signers_by_name:
                raise ConfigurationError(f"duplicate signer name {signer.name}")
            self._signers_by_name[signer.name] = signer

        for bundle in self.bundles:
            for name in bundle.signer_names:
                if name not in self._signers_by_name:
                    raise ConfigurationError(
                        f"bundle {bundle.path} references unknown signer {name}"
                    )

    def complete(self, signing_config: SigningConfig | None = None) -> "CertificateChains":
        """Materialize every CA and leaf certificate, then write every bundle.

        Args:
            signing_config: Settings for issued certificates, kept for later
                regenerate() calls

        Returns:
            self, fully materialized on disk

        Raises:
            PKIError: On the first failure; the tree must not be used then
        """
        if signing_config is not None:
            self.signing_config = signing_config

        self.root.complete(None, self.signing_config)

        for bundle in self.bundles:
            self._write_bundle(bundle)

        return self

    def get_signer(self, *path: str) -> CertificateSigner:
        """Return the signer at path.

        Raises:
            ConfigurationError: If path does not name a signer
        """
        signers, leaf = self._resolve(path)
        if leaf is not None:
            raise ConfigurationError(f"{'/'.join(path)} is a leaf certificate, not a signer")
        return signers[-1]

    def get_cert_key(self, *path: str) -> tuple[bytes, bytes]:
        """Return (cert PEM, key PEM) of the leaf or CA at path, as stored on disk."""
        signers, leaf = self._resolve(path)
        signer = signers[-1]
        if leaf is None:
            ca_info = signer.resolved_ca_info
            return read_file(ca_info.cert_file), read_file(ca_info.key_file)
        return (
            read_file(leaf.cert_path(signer.directory)),
            read_file(leaf.key_path(signer.directory)),
        )

    def walk_chains(self, root_path: Sequence[str] | None, visitor: ChainVisitor) -> None:
        """Call visitor(path, certificate) for every certificate below root_path.

        Within a signer the CA is visited first, then its serving, client and
        peer certificates, then each sub-signer depth-first. None walks the
        whole tree. Exceptions raised by the visitor propagate.
        """
        if root_path:
            start = self.get_signer(*root_path)
            prefix = tuple(root_path)
        else:
            start = self.root
            prefix = (self.root.name,)
        self._walk(start, prefix, visitor)

    def _walk(self, signer: CertificateSigner, path: CertPath, visitor: ChainVisitor) -> None:
        visitor(path, load_certificate(signer.resolved_ca_info.cert_file))
        for request in signer.leaf_requests:
            visitor((*path, request.name), load_certificate(request.cert_path(signer.directory)))
        for sub_signer in signer.sub_signers:
            self._walk(sub_signer, (*path, sub_signer.name), visitor)

    def regenerate(self, *path: str) -> None:
        """Re-issue the certificate at path.

        A leaf is re-issued by its existing CA, leaving siblings untouched.
        A CA is regenerated together with everything it signed. Bundles
        containing any CA that was regenerated or had to be recreated on
        the way down the path are rewritten.

        Raises:
            ConfigurationError: If path is unknown or names an externally
                provided CA
        """
        signers, leaf = self._resolve(path)

        if leaf is not None:
            ca, changed = self._ensure_cas(signers)
            signers[-1].issue_leaf(ca, leaf, self.signing_config)
            self._rewrite_bundles(changed)
            LOGGER.info("Regenerated leaf certificate", extra=cert_fields(path))
            return

        parent_ca, changed = self._ensure_cas(signers[:-1])
        target = signers[-1]
        ca = target.resolved_ca_info.regenerate_ca(
            parent_ca, self.signing_config, target.path_length
        )
        for request in target.leaf_requests:
            target.ensure_leaf(ca, request, self.signing_config)
        for sub_signer in target.sub_signers:
            sub_signer.complete(ca, self.signing_config)

        changed.update(signer.name for signer in target.iter_signers())
        self._rewrite_bundles(changed)
        LOGGER.info("Regenerated CA and the certificates it signed", extra=cert_fields(path))

    def _ensure_cas(self, signers: Sequence[CertificateSigner]) -> tuple[CA | None, set[str]]:
        """Load the CAs along signers top-down, generating any that are missing.

        Returns:
            The last CA (None for an empty sequence) and the names of the
            signers whose certificate changed on disk
        """
        ca: CA | None = None
        changed: set[str] = set()
        for signer in signers:
            cert_file = signer.resolved_ca_info.cert_file
            before = read_file(cert_file) if cert_file.exists() else None
            ca = signer.ensure_ca(ca, self.signing_config)
            if read_file(cert_file) != before:
                changed.add(signer.name)
        return ca, changed

    def _rewrite_bundles(self, signer_names: set[str]) -> None:
        for bundle in self.bundles:
            if signer_names.intersection(bundle.signer_names):
                self._write_bundle(bundle)

    def _resolve(
        self, path: Sequence[str]
    ) -> tuple[list[CertificateSigner], LeafRequest | None]:
        """Split path into the signers along it and the leaf it ends in, if any."""
        if not path or path[0] != self.root.name:
            raise ConfigurationError(f"path {'/'.join(path)} does not start at {self.root.name}")

        signers = [self.root]
        for i, name in enumerate(path[1:], start=1):
            current = signers[-1]
            sub_signer = current.get_sub_signer(name)
            if sub_signer is not None:
                signers.append(sub_signer)
                continue
            leaf = current.get_leaf(name)
            if leaf is not None and i == len(path) - 1:
                return signers, leaf
            raise ConfigurationError(f"unknown certificate path {'/'.join(path)}")

        return signers, None

    def _write_bundle(self, bundle: BundleSpec) -> None:
        pems = [
            serialize_certificate(load_certificate(self._ca_cert_file(name)))
            for name in bundle.signer_names
        ]
        write_file(bundle.path, create_bundle(pems))
        LOGGER.info(
            "Wrote CA bundle",
            extra={"bundle": str(bundle.path), "signers": list(bundle.signer_names)},
        )

    def _ca_cert_file(self, signer_name: str) -> Path:
        return self._signers_by_name[signer_name].resolved_ca_info.cert_file
