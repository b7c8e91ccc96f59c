import logging
from typing import Any

from peertls import directive_lexer
from peertls import options
from peertls.net import tls as net_tls
from peertls.peeroptions import parse_tokens
from peertls.peeroptions import PeerOptions

logger = logging.getLogger(__name__)


class OutgoingConfig:
    """
    The process-wide TLS settings for outgoing connections.

    Whenever one of the tls_* options changes, a fresh PeerOptions object is
    built from scratch and swapped in. The previous object is never modified,
    so contexts built from it keep working.
    """

    peer_options: PeerOptions

    def __init__(self, opts: options.Options):
        self.opts = opts
        opts.subscribe(self.configure, ["tls_backend", "tls_outgoing", "tls_outgoing_line"])
        self.configure(opts, {"tls_backend", "tls_outgoing", "tls_outgoing_line"})

    def tokens(self, opts: options.Options) -> list[str]:
        tokens = list(opts.tls_outgoing)
        if opts.tls_outgoing_line:
            # The lexer accepts any input, unterminated quotes included.
            tokens.extend(directive_lexer.split(opts.tls_outgoing_line))
        return tokens

    def configure(self, opts: options.Options, updated: set[str]) -> None:
        peer = PeerOptions(backend=net_tls.get_backend(opts.tls_backend))
        parse_tokens(peer, self.tokens(opts))
        # Loading is complete, settle the version limits once.
        peer.update_tls_version_limits()
        self.peer_options = peer
        logger.debug(f"Outgoing TLS configuration: {peer.dump() or '(enabled)'}")

    def create_client_context(self, apply_options: bool = True) -> Any:
        return self.peer_options.create_client_context(apply_options)
