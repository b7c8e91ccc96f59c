import argparse
import copy
import io
import typing
from collections.abc import Sequence

import pytest

from peertls import exceptions
from peertls import options
from peertls import optmanager


class TLSOpts(optmanager.OptManager):
    def __init__(self):
        super().__init__()
        self.add_option("backend", str, "openssl", "help", ["openssl", "stdlib", "none"])
        self.add_option("directives", Sequence[str], [], "help")
        self.add_option("line", typing.Optional[str], None, "help")
        self.add_option("strict", bool, False, "help")
        self.add_option("default_ca", bool, True, "help")
        self.add_option("retries", int, 3, "help")
        self.add_option("timeout", typing.Optional[int], None, "help")
        self.add_option("prefix", str | None, None, "help")
        self.add_option("ratio", float, 0.5, "help")


@pytest.fixture
def opts():
    return TLSOpts()


def test_attributes(opts):
    assert opts.keys() >= {"backend", "directives", "strict"}
    assert "line" in opts
    assert opts.default("backend") == "openssl"
    assert opts.line is None

    opts.line = "cert=/a.pem"
    assert opts.line == "cert=/a.pem"

    with pytest.raises(AttributeError):
        opts.nonexistent
    with pytest.raises(exceptions.OptionsError, match="Unknown options"):
        opts.nonexistent = "value"
    with pytest.raises(exceptions.OptionsError, match="Expected"):
        opts.retries = "3"
    assert opts.retries == 3


def test_returned_values_are_copies(opts):
    opts.directives = ["cert=/a.pem"]
    opts.directives.append("no-npn")
    assert opts.directives == ["cert=/a.pem"]


def test_deepcopy(opts):
    opts.directives = ["cafile=/ca.pem"]
    seen = []

    def record(o, updated):
        seen.append(updated)

    opts.subscribe(record, ["directives"])

    dup = copy.deepcopy(opts)
    assert isinstance(dup, TLSOpts)
    assert dup.directives == ["cafile=/ca.pem"]
    assert dup.default("directives") == []

    dup.directives = ["disable"]
    assert opts.directives == ["cafile=/ca.pem"]
    assert seen == []
    assert copy.copy(opts).directives == ["cafile=/ca.pem"]


def test_choices(opts):
    opts.backend = "stdlib"
    with pytest.raises(exceptions.OptionsError, match="Valid values are openssl, stdlib, none"):
        opts.backend = "gnutls"
    assert opts.backend == "stdlib"


class Rec:
    def __init__(self):
        self.called = None

    def __call__(self, *args, **kwargs):
        self.called = (args, kwargs)


def test_subscribe(opts):
    r = Rec()

    # pytest.raises would keep a reference to r alive.
    try:
        opts.subscribe(r, ["unknown"])
    except exceptions.OptionsError:
        pass
    else:
        raise AssertionError
    assert len(opts._subscriptions) == 0

    opts.subscribe(r, ["backend"])
    opts.strict = True
    assert not r.called
    opts.backend = "none"
    assert r.called[0] == (opts, {"backend"})

    del r
    opts.backend = "stdlib"
    assert len(opts._subscriptions) == 0


def test_subscribe_bound_method():
    class Watcher:
        def __init__(self):
            self.opts = TLSOpts()
            self.updates = []
            self.opts.subscribe(self.configure, ["line"])

        def configure(self, opts, updated):
            self.updates.append(updated)

    w = Watcher()
    w.opts.update(line="disable", strict=True)
    assert w.updates == [{"line", "strict"}]


def test_rollback(opts):
    seen = []

    def record(o, updated):
        seen.append((o.line, o.strict))

    def reject(o, updated):
        if o.line == "flags=BOGUS" or o.strict:
            raise exceptions.OptionsError("rejected")

    opts.subscribe(record, ["line", "strict"])
    opts.subscribe(reject, ["line", "strict"])

    with pytest.raises(exceptions.OptionsError):
        opts.line = "flags=BOGUS"
    assert opts.line is None
    with pytest.raises(exceptions.OptionsError):
        opts.update(line="no-npn", strict=True)
    assert opts.line is None
    assert opts.strict is False
    assert seen == [
        ("flags=BOGUS", False),
        (None, False),
        ("no-npn", True),
        (None, False),
    ]


def test_option():
    o = optmanager._Option("test", int, 1, "help", None)
    assert o.current() == 1
    with pytest.raises(TypeError):
        o.set("foo")
    with pytest.raises(TypeError):
        optmanager._Option("test", str, 1, "help", None)
    with pytest.raises(TypeError):
        optmanager._Option("test", Sequence[str], "notalist", "help", None)
    with pytest.raises(TypeError):
        optmanager._Option("test", Sequence[str], [1], "help", None)
    assert repr(o) == "1 [<class 'int'>]"


class TestSet:
    def test_str(self, opts):
        opts.set("backend=stdlib")
        assert opts.backend == "stdlib"
        with pytest.raises(exceptions.OptionsError, match="Option is required"):
            opts.set("backend")

        opts.set("line=cert=/a.pem")
        assert opts.line == "cert=/a.pem"
        opts.set("line")
        assert opts.line is None
        opts.set("prefix=tls-")
        assert opts.prefix == "tls-"

    def test_bool(self, opts):
        opts.set("strict")
        assert opts.strict is True
        opts.set("strict=false")
        assert opts.strict is False
        opts.set("strict=toggle")
        assert opts.strict is True
        with pytest.raises(exceptions.OptionsError, match="Boolean"):
            opts.set("strict=maybe")

    def test_int(self, opts):
        opts.set("retries=5")
        assert opts.retries == 5
        with pytest.raises(exceptions.OptionsError, match="Not an integer"):
            opts.set("retries=many")
        with pytest.raises(exceptions.OptionsError, match="Option is required"):
            opts.set("retries")
        opts.set("timeout=10")
        opts.set("timeout")
        assert opts.timeout is None
        with pytest.raises(exceptions.OptionsError, match="multiple values"):
            opts.set("retries=1", "retries=2")

    def test_sequence(self, opts):
        opts.set("directives=cert=/a.pem", "directives=no-npn")
        assert opts.directives == ["cert=/a.pem", "no-npn"]
        opts.set("directives")
        assert opts.directives == []

    def test_unknown(self, opts):
        with pytest.raises(exceptions.OptionsError, match="Unknown option"):
            opts.set("backend=stdlib", "tls_version=1.2")
        assert opts.backend == "openssl"

    def test_unsupported_type(self, opts):
        with pytest.raises(NotImplementedError):
            opts.set("ratio=1.0")


def test_make_parser(opts):
    parser = argparse.ArgumentParser()
    opts.make_parser(parser, "backend")
    opts.make_parser(parser, "line", metavar="LINE", short="l")
    opts.make_parser(parser, "strict", short="s")
    opts.make_parser(parser, "default_ca")
    opts.make_parser(parser, "retries")
    opts.make_parser(parser, "directives", short="d")
    opts.make_parser(parser, "nonexistent")
    with pytest.raises(ValueError):
        opts.make_parser(parser, "ratio")

    args = parser.parse_args(
        ["-l", "no-npn", "--no-default-ca", "--retries", "4", "-d", "a", "-d", "b"]
    )
    assert args.line == "no-npn"
    assert args.strict is None
    assert args.default_ca is False
    assert args.retries == 4
    assert args.directives == ["a", "b"]
    with pytest.raises(SystemExit):
        parser.parse_args(["--backend", "gnutls"])


class TestLoad:
    def test_parse(self):
        assert optmanager.parse("") == {}
        assert optmanager.parse("# nothing here") == {}
        assert optmanager.parse("line: no-npn") == {"line": "no-npn"}
        with pytest.raises(exceptions.OptionsError, match="Config error"):
            optmanager.parse("line: foo\nline")
        with pytest.raises(exceptions.OptionsError, match="no keys found"):
            optmanager.parse("just text")

    def test_load_paths(self, opts, tmp_path):
        first = tmp_path / "first.yaml"
        second = tmp_path / "second.yaml"
        first.write_text("backend: stdlib\ndirectives:\n  - cert=/a.pem\n")
        second.write_text("backend: none\n")

        optmanager.load_paths(opts, first, tmp_path / "missing.yaml", second)
        assert opts.backend == "none"
        assert opts.directives == ["cert=/a.pem"]

    def test_load_errors(self, opts, tmp_path):
        conf = tmp_path / "conf.yaml"
        conf.write_text("tls_version: '1.2'\n")
        with pytest.raises(exceptions.OptionsError, match="Unknown options: tls_version"):
            optmanager.load_paths(opts, conf)

        conf.write_text("retries: many\n")
        with pytest.raises(exceptions.OptionsError, match="Error reading"):
            optmanager.load_paths(opts, conf)
        assert opts.retries == 3

        conf.write_bytes(b"\xff\xff\xff")
        with pytest.raises(exceptions.OptionsError):
            optmanager.load_paths(opts, conf)


def test_dump_defaults():
    buf = io.StringIO()
    optmanager.dump_defaults(options.Options(), buf)
    text = buf.getvalue()
    assert "tls_outgoing: []" in text
    assert "verbosity: info" in text
    assert "'stdlib'" in text
