from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from cryptography import x509

from peertls import certs
from peertls import tlsopts
from peertls.certs import KeyData
from peertls.net import tls as net_tls

logger = logging.getLogger(__name__)


@dataclass
class PeerFlags:
    tls_default_ca: bool = True
    """Trust the backend's default CA store in addition to cafile= and capath=."""
    tls_npn: bool = True
    """Advertise a protocol on outgoing connections."""


@dataclass
class PeerOptions:
    """
    TLS settings for connections to one peer, built from directives such as
    `cert=/etc/peer.pem` or `options=NO_SSLv3,NO_TLSv1`.

    Directives are applied with `parse()`, one token at a time.
    Once parsing is complete, `create_client_context()` turns the settings
    into a context of the configured TLS backend.
    """

    encrypt_transport: bool = False
    certs: list[KeyData] = field(default_factory=list)
    ca_files: list[str] = field(default_factory=list)
    ca_dir: str | None = None
    crl_file: str | None = None
    parsed_crl: list[x509.CertificateRevocationList] = field(
        default_factory=list, compare=False, repr=False
    )
    ssl_options: str = ""
    parsed_options: int = 0
    ssl_flags: str = ""
    parsed_flags: int = 0
    ssl_cipher: str = ""
    ssl_domain: str = ""
    tls_min_version: str | None = None
    ssl_version: int = 0
    flags: PeerFlags = field(default_factory=PeerFlags)
    backend: net_tls.TlsBackend = field(
        default_factory=net_tls.get_backend, compare=False, repr=False
    )

    def parse(self, token: str) -> None:
        """
        Apply a single directive.

        Unknown directives are logged and ignored. Malformed options= and flags=
        values raise `exceptions.TlsConfigFatal`.
        """
        if not token:
            # just "tls" without any further settings
            self.encrypt_transport = True
            return

        if token == "disable":
            self.clear()
            return

        directive, eq, value = token.partition("=")
        directive += eq

        if directive == "cert=":
            self.certs.append(KeyData(cert_file=value, private_key_file=value))
        elif directive == "key=":
            if not self.certs or not self.certs[-1].cert_file:
                logger.error("cert= option must be set before key= is used.")
                return
            self.certs[-1].private_key_file = value
        elif directive == "version=":
            logger.warning(
                "UPGRADE WARNING: SSL version= is deprecated. "
                "Use options= to limit protocols instead."
            )
            try:
                self.ssl_version = int(value)
            except ValueError:
                logger.error(f"Invalid TLS version {value!r}")
                return
        elif directive == "min-version=":
            self.tls_min_version = value
        elif directive == "options=":
            # Each options= adds to the earlier ones.
            if self.ssl_options:
                self.ssl_options += ","
            self.ssl_options += value
            self.parsed_options = self.parse_options()
        elif directive == "cipher=":
            self.ssl_cipher = value
        elif directive == "cafile=":
            self.ca_files.append(value)
        elif directive == "capath=":
            self.ca_dir = value
            if not self.backend.supports_trust_dir:
                logger.warning(
                    f"capath= option is not supported by the {self.backend.name} TLS backend."
                )
        elif directive == "crlfile=":
            self.crl_file = value
            self.load_crl_file()
        elif directive == "flags=":
            if self.parsed_flags:
                logger.warning(f"Overwriting flags={self.ssl_flags} with {value}")
            self.ssl_flags = value
            self.parsed_flags = self.parse_flags()
        elif directive == "no-default-ca":
            self.flags.tls_default_ca = False
        elif directive == "domain=":
            self.ssl_domain = value
        elif directive == "no-npn":
            self.flags.tls_npn = False
        else:
            logger.error(f"Unknown TLS option {token!r}")
            return

        self.encrypt_transport = True

    def dump_tokens(self, pfx: str = "") -> list[str]:
        """
        Render the settings as directives, each prefixed with `pfx`.
        """
        if not self.encrypt_transport:
            return [f"{pfx}disable"]  # no other settings are relevant

        tokens = []
        for keydata in self.certs:
            if keydata.cert_file:
                tokens.append(f"{pfx}cert={keydata.cert_file}")
            if keydata.private_key_file and keydata.private_key_file != keydata.cert_file:
                tokens.append(f"{pfx}key={keydata.private_key_file}")
        if self.tls_min_version:
            tokens.append(f"{pfx}min-version={self.tls_min_version}")
        if self.ssl_version:
            tokens.append(f"{pfx}version={self.ssl_version}")
        if self.ssl_options:
            tokens.append(f"{pfx}options={self.ssl_options}")
        if self.ssl_cipher:
            tokens.append(f"{pfx}cipher={self.ssl_cipher}")
        for path in self.ca_files:
            tokens.append(f"{pfx}cafile={path}")
        if self.ca_dir:
            tokens.append(f"{pfx}capath={self.ca_dir}")
        if self.crl_file:
            tokens.append(f"{pfx}crlfile={self.crl_file}")
        if self.ssl_flags:
            tokens.append(f"{pfx}flags={self.ssl_flags}")
        if not self.flags.tls_default_ca:
            tokens.append(f"{pfx}no-default-ca")
        if not self.flags.tls_npn:
            tokens.append(f"{pfx}no-npn")
        if self.ssl_domain:
            tokens.append(f"{pfx}domain={self.ssl_domain}")
        return tokens

    def dump(self, pfx: str = "") -> str:
        return " ".join(self.dump_tokens(pfx))

    def clear(self) -> None:
        """
        Reset all settings to their defaults, which leaves TLS disabled.
        """
        fresh = type(self)(backend=self.backend)
        for f in dataclasses.fields(self):
            setattr(self, f.name, getattr(fresh, f.name))

    def copy(self) -> PeerOptions:
        return dataclasses.replace(
            self,
            certs=[dataclasses.replace(k) for k in self.certs],
            ca_files=list(self.ca_files),
            parsed_crl=list(self.parsed_crl),
            flags=dataclasses.replace(self.flags),
        )

    def parse_options(self) -> int:
        return tlsopts.parse_options(self.ssl_options, self.backend)

    def parse_flags(self) -> int:
        fl, no_default_ca = tlsopts.parse_flags(self.ssl_flags, self.backend)
        if no_default_ca:
            self.flags.tls_default_ca = False
        return fl

    def load_crl_file(self) -> None:
        """
        (Re)load the CRLs from crl_file, replacing any loaded before.
        """
        self.parsed_crl = certs.load_crl_file(self.crl_file)

    def update_tls_version_limits(self) -> None:
        """
        Fold min-version= or, if that is absent, the deprecated version= into
        the protocol options. Safe to call repeatedly.
        """
        if self.tls_min_version:
            op = tlsopts.min_version_options(self.tls_min_version, self.backend)
            if op is None:
                logger.warning(f"Unknown TLS minimum version: {self.tls_min_version}")
            else:
                self.parsed_options |= op

        elif self.ssl_version > 2:
            # Codes 0-2 (auto and SSLv2) are no longer supported.
            # The text goes into ssl_options so that it shows up in dump().
            add = tlsopts.legacy_version_options(self.ssl_version)
            if add:
                if self.ssl_options:
                    self.ssl_options += ","
                self.ssl_options += add
                self.parsed_options = self.parse_options()
            self.ssl_version = 0  # translate only once

    def create_client_context(self, apply_options: bool = True) -> Any:
        """
        Build a TLS client context from these settings.

        With apply_options=False the context is left without any option bits,
        for callers that apply options per connection.
        Raises `exceptions.TlsConfigFatal` if no context can be allocated.
        """
        self.update_tls_version_limits()
        return net_tls.create_client_context(
            self.backend,
            options=self.parsed_options if apply_options else 0,
            flags=self.parsed_flags,
            cipher_list=self.ssl_cipher or None,
            certs=tuple(self.certs),
            ca_files=tuple(self.ca_files),
            ca_dir=self.ca_dir,
            default_ca=self.flags.tls_default_ca,
            protocol_selection=self.flags.tls_npn,
            crls=tuple(self.parsed_crl),
        )


def parse_tokens(opts: PeerOptions, tokens: Iterable[str]) -> PeerOptions:
    """
    Apply every directive from a token source to `opts`.
    """
    for token in tokens:
        opts.parse(token)
    return opts
