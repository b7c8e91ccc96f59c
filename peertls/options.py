from collections.abc import Sequence
from typing import Optional

from peertls import log
from peertls import optmanager
from peertls.net import tls as net_tls

CONF_DIR = "~/.peertls"
CONF_BASENAME = "config"


class Options(optmanager.OptManager):
    def __init__(self, **kwargs) -> None:
        super().__init__()
        self.add_option(
            "confdir",
            str,
            CONF_DIR,
            "Location of the default peertls configuration files.",
        )
        self.add_option(
            "tls_backend",
            str,
            net_tls.DEFAULT_BACKEND,
            """
            TLS library used to build client contexts. Defaults to the
            PEERTLS_BACKEND environment variable, or openssl if unset.
            """,
            choices=list(net_tls.BACKENDS),
        )
        self.add_option(
            "tls_outgoing",
            Sequence[str],
            [],
            """
            Directives for outgoing TLS connections, one per entry,
            for example "cert=/etc/peer.pem" or "options=NO_SSLv3,NO_TLSv1".
            """,
        )
        self.add_option(
            "tls_outgoing_line",
            Optional[str],
            None,
            """
            Directives for outgoing TLS connections as a single line. Tokens are
            separated by whitespace and may be quoted. Applied after tls_outgoing.
            """,
        )
        self.add_option(
            "verbosity",
            str,
            "info",
            "Log verbosity.",
            choices=log.LogLevels,
        )
        self.update(**kwargs)
