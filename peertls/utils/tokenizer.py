"""
A small cursor over a configuration value, used by the options=, flags= and
min-version= resolvers.
"""
import string

ALPHA = frozenset(string.ascii_letters)
DIGIT = frozenset(string.digits)
HEXDIG = frozenset(string.hexdigits)


class Tokenizer:
    def __init__(self, buf: str) -> None:
        self.buf = buf
        self.pos = 0

    def __repr__(self):
        return f"Tokenizer({self.remaining()!r})"

    def remaining(self) -> str:
        return self.buf[self.pos :]

    def at_end(self) -> bool:
        return self.pos >= len(self.buf)

    def skip(self, literal: str) -> bool:
        """
        Consume `literal` if the remaining input starts with it.
        """
        if literal and self.buf.startswith(literal, self.pos):
            self.pos += len(literal)
            return True
        return False

    def skip_one(self, chars: frozenset[str]) -> bool:
        """
        Consume a single character if it is a member of `chars`.
        """
        if not self.at_end() and self.buf[self.pos] in chars:
            self.pos += 1
            return True
        return False

    def skip_all(self, chars: frozenset[str]) -> int:
        """
        Consume the longest run of characters from `chars` and return its length.
        """
        start = self.pos
        while self.skip_one(chars):
            pass
        return self.pos - start

    def prefix(self, chars: frozenset[str], limit: int | None = None) -> str | None:
        """
        Consume and return the longest non-empty run of characters from `chars`,
        or None if the next character is not a member.
        """
        end = self.pos
        stop = len(self.buf) if limit is None else min(len(self.buf), self.pos + limit)
        while end < stop and self.buf[end] in chars:
            end += 1
        if end == self.pos:
            return None
        token = self.buf[self.pos : end]
        self.pos = end
        return token

    def int64(
        self, base: int = 10, allow_sign: bool = False, limit: int | None = None
    ) -> int | None:
        """
        Parse an integer in the given base (10 or 16) and consume it.

        Base 16 accepts an optional 0x prefix. At most `limit` digits are consumed.
        Returns None and consumes nothing if no digits are found.
        """
        if base not in (10, 16):
            raise ValueError(f"Unsupported base: {base}")
        start = self.pos
        sign = 1
        if allow_sign:
            if self.skip("-"):
                sign = -1
            else:
                self.skip("+")
        if base == 16 and self.buf[self.pos : self.pos + 2] in ("0x", "0X"):
            if self.pos + 2 < len(self.buf) and self.buf[self.pos + 2] in HEXDIG:
                self.pos += 2
        digits = self.prefix(HEXDIG if base == 16 else DIGIT, limit)
        if digits is None:
            self.pos = start
            return None
        return sign * int(digits, base)
