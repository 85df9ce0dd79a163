"""Signing and control-plane configuration dataclasses."""

from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

LONG_LIVED_CERTIFICATE_VALIDITY_DAYS = 365 * 5
SHORT_LIVED_CERTIFICATE_VALIDITY_DAYS = 365


@dataclass(frozen=True)
class SigningConfig:
    """Settings applied to every certificate issued during a chains pass."""

    api_host: str = ""
    key_size: int = 2048


@dataclass
class ControlPlaneConfig:
    """Runtime configuration of the control plane, as far as certificates are concerned."""

    config_directory: Path = Path(".ocmconfig")
    external_hostname: str = ""
    api_host_ip: str = "127.0.0.1"
    port: int = 9443
    ca_file: Path | None = None
    ca_key_file: Path | None = None
    embed_etcd: bool = True
    key_size: int = 2048

    @property
    def certs_directory(self) -> Path:
        return self.config_directory / "cert"

    @property
    def url(self) -> str:
        return f"https://{self.external_hostname}:{self.port}/"

    def is_ca_provided(self) -> bool:
        return self.ca_file is not None and self.ca_key_file is not None

    def validate(self) -> None:
        """Check the settings the certificate bootstrap cannot start without.

        Raises:
            ConfigurationError: If the external hostname is empty or only one
                of the CA cert/key files is given
        """
        if not self.external_hostname:
            raise ConfigurationError("external hostname must not be empty")
        if (self.ca_file is None) != (self.ca_key_file is None):
            raise ConfigurationError("CA cert file and CA key file must be provided together")
