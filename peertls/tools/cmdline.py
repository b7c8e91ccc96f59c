import argparse


def common_options(parser, opts):
    parser.add_argument(
        "--version",
        action="store_true",
        help="show version number and exit",
        dest="version",
    )
    parser.add_argument(
        "--options",
        action="store_true",
        help="Show all options and their default values",
    )
    parser.add_argument(
        "--set",
        type=str,
        dest="setoptions",
        default=[],
        action="append",
        metavar="option[=value]",
        help="""
            Set an option. When the value is omitted, booleans are set to true,
            strings and integers are set to None (if permitted), and sequences
            are emptied. Boolean values can be true, false or toggle.
            Sequences are set using multiple invocations to set for
            the same option.
        """,
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_const",
        dest="verbosity",
        const="error",
        help="Quiet.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_const",
        dest="verbosity",
        const="debug",
        help="Increase log verbosity.",
    )
    opts.make_parser(parser, "tls_backend")


def peertls_dump(opts):
    parser = argparse.ArgumentParser(
        usage="%(prog)s [options] [directive ...]",
        description="Resolve TLS peer directives and print the resulting configuration.",
    )
    common_options(parser, opts)

    group = parser.add_argument_group("TLS Options")
    opts.make_parser(group, "tls_outgoing", metavar="DIRECTIVE", short="d")
    opts.make_parser(group, "tls_outgoing_line", metavar="LINE")
    group.add_argument(
        "--prefix",
        type=str,
        default="",
        help='Prefix for every printed directive, for example "tls-".',
    )
    group.add_argument(
        "--build",
        action="store_true",
        help="Build a client context from the configuration to check that it can be applied.",
    )
    parser.add_argument(
        "directives",
        nargs="*",
        help="Additional directives, applied after the configured ones.",
    )
    return parser
