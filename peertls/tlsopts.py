"""
Resolution of the options=, flags= and version directives into bitmasks.

Nothing in here depends on a particular TLS library: the name table for
options= and the set of bits that exist are taken from the backend.
"""
from __future__ import annotations

import enum
import logging
import string
import typing
from collections.abc import Mapping
from types import MappingProxyType

from peertls import exceptions
from peertls.utils.tokenizer import Tokenizer

if typing.TYPE_CHECKING:
    from peertls.net.tls import TlsBackend

logger = logging.getLogger(__name__)

OPTION_CHARS = frozenset(string.ascii_letters + string.digits + "_")
DELIMITERS = frozenset(":,")
# Hex literals in options= must fit in 64 bits.
MAX_OPTIONS = 2**64 - 1


class Flag(enum.IntFlag):
    NO_DEFAULT_CA = 1 << 0
    DELAYED_AUTH = 1 << 1
    DONT_VERIFY_PEER = 1 << 2
    DONT_VERIFY_DOMAIN = 1 << 3
    NO_SESSION_REUSE = 1 << 4
    VERIFY_CRL = 1 << 5
    VERIFY_CRL_ALL = 1 << 6


CRL_FLAGS = (Flag.VERIFY_CRL, Flag.VERIFY_CRL_ALL)

# Codes accepted by the deprecated version= directive, and the options= text
# each one stands for. Every code drops one more protocol from the list.
LEGACY_VERSION_OPTIONS: Mapping[int, str] = MappingProxyType(
    {
        3: "NO_TLSv1,NO_TLSv1_1,NO_TLSv1_2",
        4: "NO_SSLv3,NO_TLSv1_1,NO_TLSv1_2",
        5: "NO_SSLv3,NO_TLSv1,NO_TLSv1_2",
        6: "NO_SSLv3,NO_TLSv1,NO_TLSv1_1",
    }
)

# TLS 1.N minimum version -> protocols disabled below it.
MIN_VERSION_OPTIONS: tuple[tuple[int, str], ...] = (
    (1, "NO_TLSv1"),
    (2, "NO_TLSv1_1"),
    (3, "NO_TLSv1_2"),
)


def parse_options(text: str, backend: TlsBackend) -> int:
    """
    Resolve an options= value such as "NO_SSLv3,-ALL:+0x4000" into a bitmask.

    Unknown names are logged and ignored. Anything that is not followed by a
    delimiter or the end of input raises `exceptions.TlsConfigFatal`.
    """
    op = 0
    tok = Tokenizer(text)

    while not tok.at_end():
        remove = tok.skip("-") or tok.skip("!")
        if not remove:
            tok.skip("+")

        option = tok.prefix(OPTION_CHARS) or ""
        value = backend.options.get(option, 0)
        if not value and option:
            literal = Tokenizer(option)
            hex_value = literal.int64(16)
            if hex_value is not None and literal.at_end() and hex_value <= MAX_OPTIONS:
                value = hex_value

        if value:
            if remove:
                op &= ~value
            else:
                op |= value
        else:
            logger.error(f"Unknown TLS option {option!r}")

        if not tok.skip_all(DELIMITERS) and not tok.at_end():
            raise exceptions.TlsConfigFatal(f"Unknown TLS option {tok.remaining()!r}")

    # RFC 6176: SSLv2 is always disabled.
    return op | backend.legacy_protocol_floor


def flag_labels(backend: TlsBackend) -> Mapping[str, Flag]:
    labels = {f.name: f for f in Flag}
    if not backend.supports_crl_check:
        for f in CRL_FLAGS:
            del labels[f.name]
    return MappingProxyType(labels)


def parse_flags(text: str, backend: TlsBackend) -> tuple[int, bool]:
    """
    Resolve a flags= value such as "DONT_VERIFY_PEER:NO_SESSION_REUSE".

    Returns the bitmask and whether the deprecated NO_DEFAULT_CA label was used.
    Labels must match exactly; the first one that does not raises
    `exceptions.TlsConfigFatal`.
    """
    if not text:
        return 0, False

    labels = flag_labels(backend)
    tok = Tokenizer(text)
    fl = 0
    no_default_ca = False
    while True:
        label = tok.prefix(OPTION_CHARS)
        found = labels.get(label) if label else None
        if found is None:
            raise exceptions.TlsConfigFatal(
                f"Unknown TLS flag {(label or '') + tok.remaining()!r}"
            )
        if found is Flag.NO_DEFAULT_CA:
            logger.warning(
                "UPGRADE WARNING: flags=NO_DEFAULT_CA is deprecated. "
                "Use no-default-ca instead."
            )
            no_default_ca = True
        else:
            fl |= found
        if not tok.skip_one(DELIMITERS):
            break

    if not tok.at_end():
        raise exceptions.TlsConfigFatal(f"Unknown TLS flag {tok.remaining()!r}")
    return fl, no_default_ca


def min_version_options(text: str, backend: TlsBackend) -> int | None:
    """
    Translate a min-version= value ("1.0" to "1.3") into the options that
    disable every TLS version below it. Returns None if the value is invalid.
    """
    tok = Tokenizer(text)
    if not (tok.skip("1") and tok.skip(".")):
        return None
    minor = tok.int64(10, limit=1)
    if minor is None or minor > 3 or not tok.at_end():
        return None

    # Only TLS is handled here, SSL versions are left to options=.
    op = 0
    for threshold, label in MIN_VERSION_OPTIONS:
        if minor >= threshold:
            op |= backend.option(label)
    return op


def legacy_version_options(code: int) -> str | None:
    return LEGACY_VERSION_OPTIONS.get(code)
