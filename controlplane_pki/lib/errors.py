"""Error taxonomy for certificate chain operations.

Every error is fatal to control-plane startup: nothing here is retried
or recovered locally.
"""


class PKIError(Exception):
    """Base class for certificate chain errors."""


class CertificateFileError(PKIError):
    """Raised when a certificate, key, serial or bundle file cannot be read or written."""


class CertificateError(PKIError):
    """Raised for malformed PEM, parse failures and key or chain mismatches."""


class ConfigurationError(PKIError):
    """Raised when the declared tree, a bundle or a path is inconsistent."""
