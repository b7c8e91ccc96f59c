"""
Typed settings shared by the command line, the YAML configuration file and
the objects that rebuild TLS state when a setting changes.
"""
from __future__ import annotations

import contextlib
import copy
import textwrap
import types
import typing
import weakref
from collections import abc
from collections.abc import Callable
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from typing import Optional
from typing import TextIO

import ruamel.yaml

from peertls import exceptions

unset = object()

Subscriber = Callable[["OptManager", set[str]], None]


def check_option_type(name: str, value: Any, typespec: Any) -> None:
    """
    Raise a TypeError if value does not match typespec. Only the types used
    by settings are supported: bool, int, str, Optional[...] and Sequence[str].
    """
    e = TypeError(f"Expected {typespec} for {name}, but got {type(value)}.")
    origin = typing.get_origin(typespec)
    if origin is typing.Union or origin is types.UnionType:
        if value is None and type(None) in typing.get_args(typespec):
            return
        (inner,) = (t for t in typing.get_args(typespec) if t is not type(None))
        check_option_type(name, value, inner)
    elif origin is abc.Sequence:
        (inner,) = typing.get_args(typespec)
        if not isinstance(value, (tuple, list)):
            raise e
        for v in value:
            check_option_type(name, v, inner)
    elif not isinstance(value, typespec):
        raise e


def typespec_to_str(typespec: Any) -> str:
    if typespec in (str, int, bool):
        return typespec.__name__
    elif typespec == Optional[str]:
        return "optional str"
    elif typespec == Optional[int]:
        return "optional int"
    elif typespec == Sequence[str]:
        return "sequence of str"
    raise NotImplementedError


class _Option:
    __slots__ = ("name", "typespec", "value", "_default", "choices", "help")

    def __init__(
        self,
        name: str,
        typespec: type | object,  # Optional[x] is not a type
        default: Any,
        help: str,
        choices: Sequence[str] | None,
    ) -> None:
        check_option_type(name, default, typespec)
        self.name = name
        self.typespec = typespec
        self._default = default
        self.value = unset
        self.help = textwrap.dedent(help).strip().replace("\n", " ")
        self.choices = choices

    def __repr__(self):
        return f"{self.current()} [{self.typespec}]"

    @property
    def default(self):
        return copy.deepcopy(self._default)

    def current(self) -> Any:
        return copy.deepcopy(self._default if self.value is unset else self.value)

    def set(self, value: Any) -> None:
        check_option_type(self.name, value, self.typespec)
        if self.choices is not None and value not in self.choices:
            raise exceptions.OptionsError(
                f"Invalid value for {self.name}: {value!r}. "
                f"Valid values are {', '.join(self.choices)}."
            )
        self.value = value

    def __deepcopy__(self, _):
        o = _Option(self.name, self.typespec, self._default, self.help, self.choices)
        o.value = copy.deepcopy(self.value) if self.value is not unset else unset
        return o


class OptManager:
    """
    Base class for the Options object.

    Values are read and written as attributes. Reads return a copy, so
    mutating a returned list leaves the stored setting alone.

    Subscribers are called with (options, updated) after every change that
    touches one of their settings. If a subscriber raises `OptionsError`,
    the whole update is rolled back, subscribers see the old values again,
    and the error propagates.
    """

    def __init__(self) -> None:
        self._subscriptions: list[tuple[weakref.ref, set[str]]] = []
        # Must be assigned last: from here on, attribute assignment is an
        # option update.
        self._options: dict[str, _Option] = {}

    def add_option(
        self,
        name: str,
        typespec: type | object,
        default: Any,
        help: str,
        choices: Sequence[str] | None = None,
    ) -> None:
        self._options[name] = _Option(name, typespec, default, help, choices)
        self._notify_subscribers({name})

    @contextlib.contextmanager
    def rollback(self, updated: set[str]):
        old = copy.deepcopy(self._options)
        try:
            yield
        except exceptions.OptionsError:
            self.__dict__["_options"] = old
            self._notify_subscribers(updated)
            raise

    def subscribe(self, func: Subscriber, opts: abc.Iterable[str]) -> None:
        """
        Call `func` whenever one of the named settings changes.
        Only a weak reference to `func` is kept.
        """
        opts = set(opts)
        for i in opts:
            if i not in self._options:
                raise exceptions.OptionsError(f"No such option: {i}")
        if hasattr(func, "__self__"):
            ref: weakref.ref = weakref.WeakMethod(func)  # type: ignore[arg-type]
        else:
            ref = weakref.ref(func)
        self._subscriptions.append((ref, opts))

    def _notify_subscribers(self, updated: set[str]) -> None:
        dead = False
        for ref, opts in self._subscriptions:
            callback = ref()
            if callback is None:
                dead = True
            elif opts & updated:
                callback(self, updated)

        if dead:
            self.__dict__["_subscriptions"] = [
                (ref, opts) for (ref, opts) in self._subscriptions if ref() is not None
            ]

    def __deepcopy__(self, memodict=None):
        o = type(self).__new__(type(self))
        o.__dict__["_subscriptions"] = []
        o.__dict__["_options"] = copy.deepcopy(self._options, memodict)
        return o

    __copy__ = __deepcopy__

    def __getattr__(self, attr):
        # _options is looked up here too while an instance is being copied.
        options = self.__dict__.get("_options", {})
        if attr in options:
            return options[attr].current()
        raise AttributeError(f"No such option: {attr}")

    def __setattr__(self, attr, value):
        if "_options" not in self.__dict__:
            super().__setattr__(attr, value)
        else:
            self.update(**{attr: value})

    def keys(self) -> set[str]:
        return set(self._options)

    def items(self):
        return self._options.items()

    def __contains__(self, k):
        return k in self._options

    def default(self, option: str) -> Any:
        return self._options[option].default

    def update(self, **kwargs: Any) -> None:
        """
        Set several options at once. Subscribers are notified once.

        Raises `OptionsError` for unknown options or invalid values.
        """
        unknown = [k for k in kwargs if k not in self._options]
        if unknown:
            raise exceptions.OptionsError(f"Unknown options: {', '.join(unknown)}")
        updated = set(kwargs)
        if not updated:
            return
        with self.rollback(updated):
            try:
                for k, v in kwargs.items():
                    self._options[k].set(v)
            except TypeError as e:
                raise exceptions.OptionsError(str(e)) from e
            self._notify_subscribers(updated)

    def set(self, *specs: str) -> None:
        """
        Apply `option=value` specs, as given to --set. A bare `option`
        clears optional settings and switches booleans on. Sequence
        settings collect every value given for them.
        """
        values: dict[str, list[str]] = {}
        for spec in specs:
            name, eq, value = spec.partition("=")
            values.setdefault(name, [])
            if eq:
                values[name].append(value)

        unknown = [name for name in values if name not in self._options]
        if unknown:
            raise exceptions.OptionsError(f"Unknown option(s): {', '.join(unknown)}")

        self.update(
            **{
                name: self._parse_setval(self._options[name], vals)
                for name, vals in values.items()
            }
        )

    def _parse_setval(self, o: _Option, values: list[str]) -> Any:
        if o.typespec == Sequence[str]:
            return values
        if len(values) > 1:
            raise exceptions.OptionsError(
                f"Received multiple values for {o.name}: {values}"
            )

        optstr = values[0] if values else None

        if o.typespec in (str, Optional[str]):
            if o.typespec == str and optstr is None:
                raise exceptions.OptionsError(f"Option is required: {o.name}")
            return optstr
        elif o.typespec in (int, Optional[int]):
            if optstr:
                try:
                    return int(optstr)
                except ValueError:
                    raise exceptions.OptionsError(f"Not an integer: {optstr}")
            elif o.typespec == int:
                raise exceptions.OptionsError(f"Option is required: {o.name}")
            return None
        elif o.typespec == bool:
            if optstr == "toggle":
                return not o.current()
            if not optstr or optstr == "true":
                return True
            elif optstr == "false":
                return False
            raise exceptions.OptionsError(
                'Boolean must be "true", "false", or have the value omitted.'
            )
        raise NotImplementedError(f"Unsupported option type: {o.typespec}")

    def make_parser(self, parser, optname, metavar=None, short=None):
        """
        Add a command line argument for a setting. Unknown names are skipped,
        so a parser can be shared between option sets.
        """
        if optname not in self._options:
            return

        o = self._options[optname]
        flags = [f"--{optname.replace('_', '-')}"]
        if short:
            flags.append(f"-{short}")

        if o.typespec == bool:
            g = parser.add_mutually_exclusive_group(required=False)
            g.add_argument(
                f"--no-{optname.replace('_', '-')}",
                action="store_false",
                dest=optname,
            )
            g.add_argument(*flags, action="store_true", dest=optname, help=o.help)
            parser.set_defaults(**{optname: None})
        elif o.typespec in (int, Optional[int]):
            parser.add_argument(
                *flags, action="store", type=int, dest=optname, help=o.help, metavar=metavar
            )
        elif o.typespec in (str, Optional[str]):
            parser.add_argument(
                *flags,
                action="store",
                type=str,
                dest=optname,
                help=o.help,
                metavar=metavar,
                choices=o.choices,
            )
        elif o.typespec == Sequence[str]:
            parser.add_argument(
                *flags,
                action="append",
                type=str,
                dest=optname,
                help=o.help + " May be passed multiple times.",
                metavar=metavar,
            )
        else:
            raise ValueError(f"Unsupported option type: {o.typespec}")


def dump_defaults(opts: OptManager, out: TextIO):
    """
    Write every setting with its default value as commented YAML.
    """
    s = ruamel.yaml.comments.CommentedMap()
    for k in sorted(opts.keys()):
        o = opts._options[k]
        s[k] = o.default
        txt = o.help
        if o.choices:
            txt += " Valid values are %s." % ", ".join(repr(c) for c in o.choices)
        else:
            txt += " Type %s." % typespec_to_str(o.typespec)
        s.yaml_set_comment_before_after_key(k, before="\n" + "\n".join(textwrap.wrap(txt)))
    return ruamel.yaml.YAML().dump(s, out)


def parse(text: str) -> dict[str, Any]:
    if not text:
        return {}
    try:
        data = ruamel.yaml.YAML(typ="safe", pure=True).load(text)
    except ruamel.yaml.error.YAMLError as v:
        if hasattr(v, "problem_mark"):
            snip = v.problem_mark.get_snippet()
            raise exceptions.OptionsError(
                "Config error at line %s:\n%s\n%s"
                % (v.problem_mark.line + 1, snip, getattr(v, "problem", ""))
            )
        raise exceptions.OptionsError("Could not parse options.")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise exceptions.OptionsError("Config error - no keys found.")
    return data


def load_paths(opts: OptManager, *paths: Path | str) -> None:
    """
    Load YAML configuration files in order, later files winning.
    Missing files are skipped. Any other problem raises `OptionsError`.
    """
    for p in paths:
        p = Path(p).expanduser()
        if not p.is_file():
            continue
        try:
            opts.update(**parse(p.read_text(encoding="utf8")))
        except (UnicodeDecodeError, exceptions.OptionsError) as e:
            raise exceptions.OptionsError(f"Error reading {p}: {e}") from e
