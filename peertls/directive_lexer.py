"""
Splits a directive line such as

    cert=/etc/peer.pem key="/etc/keys/peer key.pem" options=NO_SSLv3

into the tokens that `PeerOptions.parse` consumes.
"""
import re

import pyparsing

PartialQuotedString = pyparsing.Regex(
    re.compile(
        r"""
            "[^"]*(?:"|$)  # double-quoted string that ends with double quote or EOF
            |
            '[^']*(?:'|$)  # single-quoted string that ends with single quote or EOF
        """,
        re.VERBOSE,
    )
)

expr = pyparsing.ZeroOrMore(
    PartialQuotedString
    | pyparsing.Word(" \r\n\t")
    | pyparsing.CharsNotIn("""'" \r\n\t""")
).leave_whitespace()


def quote(val: str) -> str:
    if val and all(char not in val for char in "'\" \r\n\t"):
        return val
    if '"' not in val:
        return f'"{val}"'
    if "'" not in val:
        return f"'{val}'"
    return '"' + val.replace('"', r"\x22") + '"'


def unquote(x: str) -> str:
    if len(x) > 1 and x[0] in "'\"" and x[0] == x[-1]:
        return x[1:-1]
    else:
        return x


def split(line: str) -> list[str]:
    """
    Split a line at unquoted whitespace. Quoted parts are unquoted and joined
    with their neighbours, so `key="/a b.pem"` becomes `key=/a b.pem`.
    """
    tokens: list[str] = []
    current: list[str] | None = None
    for part in expr.parse_string(line, parse_all=True):
        if part.isspace():
            if current is not None:
                tokens.append("".join(current))
            current = None
        else:
            if current is None:
                current = []
            current.append(unquote(part))
    if current is not None:
        tokens.append("".join(current))
    return tokens


def join(tokens: list[str]) -> str:
    return " ".join(quote(t) for t in tokens)
