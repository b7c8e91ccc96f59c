from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import IO

from peertls import config
from peertls import directive_lexer
from peertls import exceptions
from peertls import log
from peertls import options
from peertls import optmanager
from peertls import version
from peertls.tools import cmdline


def process_options(parser, opts, args):
    if args.version:
        print(version.get_dev_version())
        sys.exit(0)
    if args.options:
        # we don't want log messages from regular startup then.
        args.verbosity = "error"

    adict = {
        key: val for key, val in vars(args).items() if key in opts and val is not None
    }
    opts.update(**adict)


def run(arguments: Sequence[str], out: IO[str] | None = None) -> int:
    out = out or sys.stdout
    opts = options.Options()
    parser = cmdline.peertls_dump(opts)
    args = parser.parse_args(arguments)

    handler = log.TermLogHandler()
    handler.install()
    logging.getLogger().setLevel(logging.DEBUG)
    try:
        opts.set(*args.setoptions)
        optmanager.load_paths(
            opts,
            os.path.join(opts.confdir, f"{options.CONF_BASENAME}.yaml"),
            os.path.join(opts.confdir, f"{options.CONF_BASENAME}.yml"),
        )
        process_options(parser, opts, args)
        handler.set_verbosity(opts.verbosity)

        if args.options:
            optmanager.dump_defaults(opts, out)
            return 0
        if args.directives:
            opts.update(tls_outgoing=[*opts.tls_outgoing, *args.directives])

        outgoing = config.OutgoingConfig(opts)
        print(
            directive_lexer.join(outgoing.peer_options.dump_tokens(args.prefix)),
            file=out,
        )
        if args.build:
            context = outgoing.create_client_context()
            print(
                f"# built {type(context).__module__}.{type(context).__qualname__} "
                f"with the {outgoing.peer_options.backend.name} backend",
                file=out,
            )
    except exceptions.OptionsError as e:
        print(f"{sys.argv[0]}: {e}", file=sys.stderr)
        return 1
    except exceptions.TlsConfigFatal as e:
        print(f"{sys.argv[0]}: FATAL: {e}", file=sys.stderr)
        return 1
    finally:
        handler.uninstall()
    return 0


def peertls_dump(args=None) -> int:  # pragma: no cover
    return run(sys.argv[1:] if args is None else args)
