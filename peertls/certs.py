import logging
import re
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509

logger = logging.getLogger(__name__)

PEM_CRL_BLOCK = re.compile(
    rb"-----BEGIN X509 CRL-----.+?-----END X509 CRL-----", re.DOTALL
)


@dataclass
class KeyData:
    """A client certificate and the private key that belongs to it."""

    cert_file: str
    private_key_file: str


def split_pem_crls(data: bytes) -> list[bytes]:
    """
    Split concatenated PEM data into its X509 CRL blocks.
    Anything outside of a block is ignored.
    """
    return PEM_CRL_BLOCK.findall(data)


def load_crl_file(path: str | Path | None) -> list[x509.CertificateRevocationList]:
    """
    Load all CRLs stored in the file at `path`.

    A file that cannot be read yields an empty list, so that the proxy keeps
    running without CRL enforcement. Blocks that fail to parse are skipped.
    """
    crls: list[x509.CertificateRevocationList] = []
    if not path:
        return crls

    try:
        data = Path(path).read_bytes()
    except OSError as e:
        logger.warning(f"Failed to open CRL file {path}: {e}")
        return crls

    for i, block in enumerate(split_pem_crls(data)):
        try:
            crls.append(x509.load_pem_x509_crl(block))
        except ValueError as e:
            logger.warning(f"Skipping malformed CRL #{i + 1} in {path}: {e}")

    logger.debug(f"Loaded {len(crls)} CRL(s) from {path}.")
    return crls
