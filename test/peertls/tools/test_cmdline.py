import argparse

from peertls import options
from peertls.tools import cmdline
from peertls.tools import main


def test_common():
    parser = argparse.ArgumentParser()
    opts = options.Options()
    cmdline.common_options(parser, opts)
    args = parser.parse_args(args=[])
    main.process_options(parser, opts, args)
    assert opts.verbosity == "info"

    args = parser.parse_args(args=["-v", "--tls-backend", "stdlib"])
    main.process_options(parser, opts, args)
    assert opts.verbosity == "debug"
    assert opts.tls_backend == "stdlib"


def test_peertls_dump():
    opts = options.Options()
    ap = cmdline.peertls_dump(opts)
    args = ap.parse_args(["-d", "cert=/a.pem", "-d", "no-npn", "cafile=/ca.pem"])
    assert args.tls_outgoing == ["cert=/a.pem", "no-npn"]
    assert args.directives == ["cafile=/ca.pem"]
    assert args.prefix == ""
    assert not args.build
