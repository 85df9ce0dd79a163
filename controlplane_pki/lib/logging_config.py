"""JSON logging for the control-plane PKI.

Certificate events carry their subject as structured fields instead of
interpolating it into the message, e.g.

    LOGGER.info("Regenerated certificate", extra={"cert_path": "root-ca/client-ca"})
"""

import logging

from pythonjsonlogger import jsonlogger

RECORD_FIELDS = frozenset({"timestamp", "level", "message", "exc_info", "funcName", "lineno"})

# Passed through extra=; anything else attached to a record is dropped
CERTIFICATE_FIELDS = frozenset(
    {
        "cert_path",
        "kind",
        "serial",
        "not_after",
        "file",
        "directory",
        "bundle",
        "signers",
        "count",
        "reason",
    }
)


def cert_fields(path: tuple[str, ...] | str, **fields) -> dict:
    """Build the extra= mapping for an event about the certificate at path.

    Tuple paths are joined with "/". Paths and other objects become strings.
    """
    if not isinstance(path, str):
        path = "/".join(path)
    return {"cert_path": path, **{key: _render(value) for key, value in fields.items()}}


def _render(value):
    if isinstance(value, (str, int)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_render(item) for item in value]
    return str(value)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Emit the record fields plus whitelisted certificate fields as one JSON object."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        for key in [key for key in log_record if key not in RECORD_FIELDS | CERTIFICATE_FIELDS]:
            log_record.pop(key)


def _setup_logger() -> logging.Logger:
    logger = logging.getLogger("controlplane_pki")
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(
        CustomJsonFormatter(
            fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
            timestamp=True,
        )
    )
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


LOGGER = _setup_logger()
