"""
Strict parser for JavaScript literal expressions.

Accepts arrays, objects, strings, numbers, true/false/null/undefined and
`new Date(...)`. No identifier is ever resolved and nothing is executed, so a
hostile payload can at worst fail to parse.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

_WHITESPACE = " \t\n\r\f\v\u00a0\ufeff"
_IDENT_START = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_$"
_IDENT_PART = _IDENT_START + "0123456789"
_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}
_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MAX_DEPTH = 64


class LiteralSyntaxError(ValueError):
    """Raised when the input is not a supported literal."""

    def __init__(self, message: str, position: int):
        super().__init__(f"{message} at position {position}")
        self.position = position


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.depth = 0

    def fail(self, message: str) -> LiteralSyntaxError:
        return LiteralSyntaxError(message, self.pos)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_whitespace(self) -> None:
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char in _WHITESPACE:
                self.pos += 1
            elif self.text.startswith("//", self.pos):
                end = self.text.find("\n", self.pos)
                self.pos = len(self.text) if end < 0 else end + 1
            elif self.text.startswith("/*", self.pos):
                end = self.text.find("*/", self.pos + 2)
                if end < 0:
                    raise self.fail("Unterminated comment")
                self.pos = end + 2
            else:
                break

    def expect(self, char: str) -> None:
        self.skip_whitespace()
        if self.peek() != char:
            raise self.fail(f"Expected {char!r}")
        self.pos += 1

    def parse_document(self) -> Any:
        value = self.parse_value()
        self.skip_whitespace()
        if self.pos != len(self.text):
            raise self.fail("Unexpected trailing content")
        return value

    def parse_value(self) -> Any:
        self.skip_whitespace()
        char = self.peek()
        if not char:
            raise self.fail("Unexpected end of input")
        if char == "[":
            return self.nested(self.parse_array)
        if char == "{":
            return self.nested(self.parse_object)
        if char in "\"'":
            return self.parse_string()
        if char in "-+.0123456789":
            return self.parse_number()
        if char in _IDENT_START:
            word = self.parse_identifier()
            if word in _KEYWORDS:
                return _KEYWORDS[word]
            if word == "new":
                return self.parse_date()
            if word in ("NaN", "Infinity"):
                return float(word.lower() if word == "NaN" else "inf")
            raise self.fail(f"Identifier {word!r} is not allowed")
        raise self.fail(f"Unexpected character {char!r}")

    def nested(self, parse: Any) -> Any:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise self.fail("Nesting too deep")
        try:
            return parse()
        finally:
            self.depth -= 1

    def parse_array(self) -> List[Any]:
        self.expect("[")
        items: List[Any] = []
        while True:
            self.skip_whitespace()
            if self.peek() == "]":
                self.pos += 1
                return items
            items.append(self.parse_value())
            self.skip_whitespace()
            if self.peek() == ",":
                self.pos += 1
            elif self.peek() != "]":
                raise self.fail("Expected ',' or ']'")

    def parse_object(self) -> Dict[str, Any]:
        self.expect("{")
        obj: Dict[str, Any] = {}
        while True:
            self.skip_whitespace()
            char = self.peek()
            if char == "}":
                self.pos += 1
                return obj
            if char in "\"'":
                key = self.parse_string()
            elif char and char in _IDENT_START:
                key = self.parse_identifier()
            elif char and char in "0123456789":
                key = self.format_key(self.parse_number())
            else:
                raise self.fail("Expected property name")
            self.expect(":")
            obj[key] = self.parse_value()
            self.skip_whitespace()
            if self.peek() == ",":
                self.pos += 1
            elif self.peek() != "}":
                raise self.fail("Expected ',' or '}'")

    @staticmethod
    def format_key(number: float) -> str:
        return str(int(number)) if float(number).is_integer() else repr(number)

    def parse_identifier(self) -> str:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] in _IDENT_PART:
            self.pos += 1
        return self.text[start:self.pos]

    def parse_string(self) -> str:
        quote = self.text[self.pos]
        self.pos += 1
        chunks: List[str] = []
        while True:
            if self.pos >= len(self.text):
                raise self.fail("Unterminated string")
            char = self.text[self.pos]
            if char == quote:
                self.pos += 1
                return "".join(chunks)
            if char in "\n\r":
                raise self.fail("Line break inside string")
            if char == "\\":
                chunks.append(self.parse_escape())
                continue
            chunks.append(char)
            self.pos += 1

    def parse_escape(self) -> str:
        self.pos += 1
        if self.pos >= len(self.text):
            raise self.fail("Unterminated escape")
        char = self.text[self.pos]
        self.pos += 1
        if char in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[char]
        if char == "u":
            return chr(self.read_hex(4))
        if char == "x":
            return chr(self.read_hex(2))
        if char == "\r" and self.peek() == "\n":
            self.pos += 1
            return ""
        if char in "\n\r\u2028\u2029":
            return ""
        return char

    def read_hex(self, size: int) -> int:
        digits = self.text[self.pos:self.pos + size]
        if len(digits) != size:
            raise self.fail("Truncated hex escape")
        try:
            code = int(digits, 16)
        except ValueError:
            raise self.fail("Invalid hex escape")
        self.pos += size
        return code

    def parse_number(self) -> float:
        start = self.pos
        if self.peek() in "+-":
            self.pos += 1
        if self.text.startswith("Infinity", self.pos):
            self.pos += len("Infinity")
            return float(self.text[start:self.pos].replace("Infinity", "inf"))
        while self.pos < len(self.text) and self.text[self.pos] in "0123456789.eE+-":
            # A sign only belongs to the number right after an exponent marker
            if self.text[self.pos] in "+-" and self.text[self.pos - 1] not in "eE":
                break
            self.pos += 1
        literal = self.text[start:self.pos]
        try:
            if any(c in literal for c in ".eE"):
                return float(literal)
            return int(literal)
        except ValueError:
            raise LiteralSyntaxError(f"Invalid number {literal!r}", start)

    def parse_date(self) -> datetime:
        self.skip_whitespace()
        if self.parse_identifier() != "Date":
            raise self.fail("Only 'new Date(...)' is allowed")
        self.expect("(")
        args: List[Any] = []
        while True:
            self.skip_whitespace()
            if self.peek() == ")":
                self.pos += 1
                break
            args.append(self.parse_value())
            self.skip_whitespace()
            if self.peek() == ",":
                self.pos += 1
            elif self.peek() != ")":
                raise self.fail("Expected ',' or ')'")
        return self.build_date(args)

    def build_date(self, args: List[Any]) -> datetime:
        if not args or not all(isinstance(a, (int, float)) and not isinstance(a, bool) for a in args):
            raise self.fail("Date arguments must be numbers")
        try:
            if len(args) == 1:
                return _EPOCH + timedelta(milliseconds=args[0])
            # JS months are zero based
            parts = [int(a) for a in args[:6]]
            year, month = parts[0], parts[1] + 1
            day, hours, minutes, seconds = (parts[2:] + [1, 0, 0, 0][len(parts) - 2:])[:4]
            return datetime(year, month, day, hours, minutes, seconds)
        except (OverflowError, ValueError):
            raise self.fail("Date out of range")


def parse_literal(text: str) -> Any:
    """Parses a single JS literal expression into Python values."""
    return _Parser(text).parse_document()
