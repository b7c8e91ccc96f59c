import logging
import os
import ssl
import tempfile
from collections.abc import Callable
from collections.abc import Mapping
from collections.abc import Sequence
from functools import lru_cache
from types import MappingProxyType
from types import ModuleType
from typing import Any

import certifi
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from OpenSSL import crypto
from OpenSSL import SSL

from peertls import exceptions
from peertls.certs import KeyData
from peertls.tlsopts import Flag

logger = logging.getLogger(__name__)

# options= labels and the library constant each one maps to.
# A label is only offered when the library defines a non-zero bit for it.
OPTION_NAMES: tuple[tuple[str, str], ...] = (
    ("NETSCAPE_REUSE_CIPHER_CHANGE_BUG", "OP_NETSCAPE_REUSE_CIPHER_CHANGE_BUG"),
    ("SSLREF2_REUSE_CERT_TYPE_BUG", "OP_SSLREF2_REUSE_CERT_TYPE_BUG"),
    ("MICROSOFT_BIG_SSLV3_BUFFER", "OP_MICROSOFT_BIG_SSLV3_BUFFER"),
    ("SSLEAY_080_CLIENT_DH_BUG", "OP_SSLEAY_080_CLIENT_DH_BUG"),
    ("TLS_D5_BUG", "OP_TLS_D5_BUG"),
    ("TLS_BLOCK_PADDING_BUG", "OP_TLS_BLOCK_PADDING_BUG"),
    ("TLS_ROLLBACK_BUG", "OP_TLS_ROLLBACK_BUG"),
    ("ALL", "OP_ALL"),
    ("SINGLE_DH_USE", "OP_SINGLE_DH_USE"),
    ("EPHEMERAL_RSA", "OP_EPHEMERAL_RSA"),
    ("PKCS1_CHECK_1", "OP_PKCS1_CHECK_1"),
    ("PKCS1_CHECK_2", "OP_PKCS1_CHECK_2"),
    ("NETSCAPE_CA_DN_BUG", "OP_NETSCAPE_CA_DN_BUG"),
    ("NON_EXPORT_FIRST", "OP_NON_EXPORT_FIRST"),
    ("CIPHER_SERVER_PREFERENCE", "OP_CIPHER_SERVER_PREFERENCE"),
    ("NETSCAPE_DEMO_CIPHER_CHANGE_BUG", "OP_NETSCAPE_DEMO_CIPHER_CHANGE_BUG"),
    ("NO_SSLv3", "OP_NO_SSLv3"),
    ("NO_TLSv1", "OP_NO_TLSv1"),
    ("NO_TLSv1_1", "OP_NO_TLSv1_1"),
    ("NO_TLSv1_2", "OP_NO_TLSv1_2"),
    ("NO_TLSv1_3", "OP_NO_TLSv1_3"),
    ("No_Compression", "OP_NO_COMPRESSION"),
    ("NO_TICKET", "OP_NO_TICKET"),
    ("SINGLE_ECDH_USE", "OP_SINGLE_ECDH_USE"),
)

# The single protocol advertised by the protocol selection stub.
SELECTED_PROTOCOL = b"http/1.1"


def _option_table(module: ModuleType) -> Mapping[str, int]:
    table = {}
    for label, attr in OPTION_NAMES:
        value = int(getattr(module, attr, 0))
        if value:
            table[label] = value
    return MappingProxyType(table)


class TlsBackend:
    """
    The operations peertls needs from a TLS library.

    Bitmask resolution only depends on `options`, `legacy_protocol_floor` and
    `supports_crl_check`. Everything else operates on a context returned by
    `allocate_context`. Operations on a context raise
    `exceptions.TlsContextError` on failure.
    """

    name: str = "abstract"
    options: Mapping[str, int] = MappingProxyType({})
    legacy_protocol_floor: int = 0
    """Bit that disables SSLv2. Always set on resolved options if non-zero."""
    supports_crl_check: bool = False
    supports_trust_dir: bool = False

    def __repr__(self):
        return f"<{type(self).__name__}({self.name})>"

    def has_option(self, label: str) -> bool:
        return label in self.options

    def option(self, label: str) -> int:
        return self.options.get(label, 0)

    def _unsupported(self, what: str) -> exceptions.TlsContextError:
        return exceptions.TlsContextError(
            f"{what} is not supported by the {self.name} TLS backend."
        )

    def allocate_context(self) -> Any:
        raise exceptions.TlsConfigFatal(
            "Failed to allocate TLS client context: No TLS library"
        )

    def apply_options(self, context: Any, options: int) -> None:
        raise self._unsupported("Setting options")

    def apply_flags(self, context: Any, flags: int) -> None:
        raise self._unsupported("Setting flags")

    def apply_cipher_list(self, context: Any, cipher_list: str) -> None:
        raise self._unsupported("Setting a cipher list")

    def use_certificate(self, context: Any, cert_file: str, key_file: str) -> None:
        raise self._unsupported("Loading client certificates")

    def load_trust_file(self, context: Any, path: str) -> None:
        raise self._unsupported("Loading CA files")

    def load_trust_dir(self, context: Any, path: str) -> None:
        raise self._unsupported("Loading CA directories")

    def load_system_trust(self, context: Any) -> None:
        raise self._unsupported("Loading the default CA store")

    def install_crl(self, context: Any, crl: x509.CertificateRevocationList) -> None:
        raise self._unsupported("Installing CRLs")

    def set_crl_checking(self, context: Any, full_chain: bool) -> None:
        raise self._unsupported("CRL checking")

    def set_protocol_selection(self, context: Any, protocol: bytes) -> None:
        raise self._unsupported("Protocol selection")


class NullBackend(TlsBackend):
    """Build without a TLS library. Contexts cannot be created."""

    name = "none"


class OpenSSLBackend(TlsBackend):
    name = "openssl"
    options = _option_table(SSL)
    legacy_protocol_floor = int(getattr(SSL, "OP_NO_SSLv2", 0))
    supports_crl_check = hasattr(crypto.X509StoreFlags, "CRL_CHECK")
    supports_trust_dir = True

    def allocate_context(self) -> SSL.Context:
        try:
            return SSL.Context(SSL.TLS_CLIENT_METHOD)
        except SSL.Error as e:
            raise exceptions.TlsConfigFatal(
                f"Failed to allocate TLS client context: {e}"
            ) from e

    def apply_options(self, context: SSL.Context, options: int) -> None:
        try:
            context.set_options(options)
        except OverflowError as e:
            raise exceptions.TlsContextError(f"Invalid TLS options {options:#x}: {e}") from e

    def apply_flags(self, context: SSL.Context, flags: int) -> None:
        if flags & Flag.DONT_VERIFY_PEER:
            context.set_verify(SSL.VERIFY_NONE, None)
        else:
            context.set_verify(SSL.VERIFY_PEER, None)
        if flags & Flag.NO_SESSION_REUSE:
            context.set_session_cache_mode(SSL.SESS_CACHE_OFF)

    def apply_cipher_list(self, context: SSL.Context, cipher_list: str) -> None:
        try:
            context.set_cipher_list(cipher_list.encode())
        except SSL.Error as e:
            raise exceptions.TlsContextError(
                f"SSL cipher specification error: {e}"
            ) from e

    def use_certificate(
        self, context: SSL.Context, cert_file: str, key_file: str
    ) -> None:
        try:
            context.use_certificate_chain_file(cert_file)
            context.use_privatekey_file(key_file)
        except SSL.Error as e:
            raise exceptions.TlsContextError(
                f"Cannot load TLS client certificate ({cert_file=}, {key_file=}): {e}"
            ) from e

    def load_trust_file(self, context: SSL.Context, path: str) -> None:
        try:
            context.load_verify_locations(path, None)
        except SSL.Error as e:
            raise exceptions.TlsContextError(
                f"Cannot load trusted certificates from {path}: {e}"
            ) from e

    def load_trust_dir(self, context: SSL.Context, path: str) -> None:
        try:
            context.load_verify_locations(None, path)
        except SSL.Error as e:
            raise exceptions.TlsContextError(
                f"Cannot load trusted certificate directory {path}: {e}"
            ) from e

    def load_system_trust(self, context: SSL.Context) -> None:
        self.load_trust_file(context, certifi.where())

    def install_crl(
        self, context: SSL.Context, crl: x509.CertificateRevocationList
    ) -> None:
        store = context.get_cert_store()
        if store is None:
            raise exceptions.TlsContextError("Context has no certificate store.")
        try:
            store.add_crl(crl)
        except crypto.Error as e:
            raise exceptions.TlsContextError(f"Failed to add CRL: {e}") from e

    def set_crl_checking(self, context: SSL.Context, full_chain: bool) -> None:
        store = context.get_cert_store()
        if store is None:
            raise exceptions.TlsContextError("Context has no certificate store.")
        flags = crypto.X509StoreFlags.CRL_CHECK
        if full_chain:
            flags |= crypto.X509StoreFlags.CRL_CHECK_ALL
        store.set_flags(flags)

    def set_protocol_selection(self, context: SSL.Context, protocol: bytes) -> None:
        context.set_alpn_protos([protocol])


class StdlibBackend(TlsBackend):
    name = "stdlib"
    options = _option_table(ssl)
    legacy_protocol_floor = int(getattr(ssl, "OP_NO_SSLv2", 0))
    supports_crl_check = hasattr(ssl, "VERIFY_CRL_CHECK_LEAF")
    supports_trust_dir = True

    def allocate_context(self) -> ssl.SSLContext:
        try:
            return ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        except ssl.SSLError as e:
            raise exceptions.TlsConfigFatal(
                f"Failed to allocate TLS client context: {e}"
            ) from e

    def apply_options(self, context: ssl.SSLContext, options: int) -> None:
        try:
            context.options = int(context.options) | options
        except OverflowError as e:
            raise exceptions.TlsContextError(f"Invalid TLS options {options:#x}: {e}") from e

    def apply_flags(self, context: ssl.SSLContext, flags: int) -> None:
        # hostname checking must be off before verification can be disabled.
        if flags & (Flag.DONT_VERIFY_PEER | Flag.DONT_VERIFY_DOMAIN):
            context.check_hostname = False
        if flags & Flag.DONT_VERIFY_PEER:
            context.verify_mode = ssl.CERT_NONE
        if flags & Flag.NO_SESSION_REUSE:
            logger.debug("NO_SESSION_REUSE has no context-level setting in the ssl module.")

    def apply_cipher_list(self, context: ssl.SSLContext, cipher_list: str) -> None:
        try:
            context.set_ciphers(cipher_list)
        except ssl.SSLError as e:
            raise exceptions.TlsContextError(
                f"SSL cipher specification error: {e}"
            ) from e

    def use_certificate(
        self, context: ssl.SSLContext, cert_file: str, key_file: str
    ) -> None:
        try:
            context.load_cert_chain(cert_file, key_file)
        except OSError as e:
            raise exceptions.TlsContextError(
                f"Cannot load TLS client certificate ({cert_file=}, {key_file=}): {e}"
            ) from e

    def load_trust_file(self, context: ssl.SSLContext, path: str) -> None:
        try:
            context.load_verify_locations(cafile=path)
        except OSError as e:
            raise exceptions.TlsContextError(
                f"Cannot load trusted certificates from {path}: {e}"
            ) from e

    def load_trust_dir(self, context: ssl.SSLContext, path: str) -> None:
        try:
            context.load_verify_locations(capath=path)
        except OSError as e:
            raise exceptions.TlsContextError(
                f"Cannot load trusted certificate directory {path}: {e}"
            ) from e

    def load_system_trust(self, context: ssl.SSLContext) -> None:
        try:
            context.load_default_certs(ssl.Purpose.SERVER_AUTH)
        except OSError as e:
            raise exceptions.TlsContextError(
                f"Cannot load default trusted certificates: {e}"
            ) from e

    def install_crl(
        self, context: ssl.SSLContext, crl: x509.CertificateRevocationList
    ) -> None:
        # The ssl module only reads CRLs from files.
        f = tempfile.NamedTemporaryFile("wb", suffix=".crl", delete=False)
        try:
            with f:
                f.write(crl.public_bytes(serialization.Encoding.PEM))
            context.load_verify_locations(cafile=f.name)
        except OSError as e:
            raise exceptions.TlsContextError(f"Failed to add CRL: {e}") from e
        finally:
            os.unlink(f.name)

    def set_crl_checking(self, context: ssl.SSLContext, full_chain: bool) -> None:
        if full_chain:
            context.verify_flags |= ssl.VERIFY_CRL_CHECK_CHAIN
        else:
            context.verify_flags |= ssl.VERIFY_CRL_CHECK_LEAF

    def set_protocol_selection(self, context: ssl.SSLContext, protocol: bytes) -> None:
        context.set_alpn_protocols([protocol.decode()])


BACKENDS: Mapping[str, type[TlsBackend]] = MappingProxyType(
    {
        "openssl": OpenSSLBackend,
        "stdlib": StdlibBackend,
        "none": NullBackend,
    }
)

DEFAULT_BACKEND = os.getenv("PEERTLS_BACKEND") or "openssl"


@lru_cache(None)
def get_backend(name: str = DEFAULT_BACKEND) -> TlsBackend:
    try:
        cls = BACKENDS[name]
    except KeyError:
        raise exceptions.OptionsError(
            f"Unknown TLS backend {name!r}, expected one of: {', '.join(BACKENDS)}"
        ) from None
    return cls()


def _attempt(what: str, func: Callable[..., None], *args: Any) -> bool:
    try:
        func(*args)
    except exceptions.TlsContextError as e:
        logger.warning(f"Ignoring error {what}: {e}")
        return False
    return True


def create_client_context(
    backend: TlsBackend,
    *,
    options: int,
    flags: int,
    cipher_list: str | None,
    certs: Sequence[KeyData],
    ca_files: Sequence[str],
    ca_dir: str | None,
    default_ca: bool,
    protocol_selection: bool,
    crls: Sequence[x509.CertificateRevocationList],
) -> Any:
    """
    Allocate a client context and apply resolved configuration to it.

    Allocation failure raises `exceptions.TlsConfigFatal`. Failures of the
    individual steps that follow are logged and do not stop construction.
    """
    context = backend.allocate_context()

    if options:
        _attempt("setting TLS options", backend.apply_options, context, options)
    _attempt("setting TLS flags", backend.apply_flags, context, flags)

    if cipher_list:
        _attempt("setting cipher list", backend.apply_cipher_list, context, cipher_list)

    for keydata in certs:
        if keydata.cert_file:
            _attempt(
                "loading client certificate",
                backend.use_certificate,
                context,
                keydata.cert_file,
                keydata.private_key_file or keydata.cert_file,
            )

    if protocol_selection:
        _attempt(
            "setting protocol selection",
            backend.set_protocol_selection,
            context,
            SELECTED_PROTOCOL,
        )

    logger.debug("Setting CA certificate locations.")
    for path in ca_files:
        _attempt("setting CA certificate location", backend.load_trust_file, context, path)
    if ca_dir:
        _attempt("setting CA certificate directory", backend.load_trust_dir, context, ca_dir)
    if default_ca:
        _attempt("setting default trusted CA", backend.load_system_trust, context)

    verify_crl = False
    for crl in crls:
        if _attempt("adding CRL", backend.install_crl, context, crl):
            verify_crl = True

    if backend.supports_crl_check:
        if flags & Flag.VERIFY_CRL_ALL:
            _attempt("enabling CRL checks", backend.set_crl_checking, context, True)
        elif verify_crl or flags & Flag.VERIFY_CRL:
            _attempt("enabling CRL checks", backend.set_crl_checking, context, False)

    return context
