"""
Codec for the remote's DWR (Direct Web Remoting) batched-call wire format.

Outbound calls are newline-delimited `key=value` payloads; inbound replies are
JavaScript snippets that hand an array literal to a callback. The session
client only depends on `encode(call) -> bytes` and `decode(text) -> rows`.
"""
import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote

from caixasim.caixa.jsliteral import LiteralSyntaxError, parse_literal
from caixasim.core.errors import DecodeError

SCRIPT_NAME = "SIOPIAjaxFrontController"
DIV_METHOD = "callActionForwardMethodDiv"
LIST_METHOD = "callActionForwardMethodLista"
ACTION_PATH = "/simulaOperacaoInternet"
DEFAULT_PAGE = "/siopiinternet-web/simulaOperacaoInternet.do?method=enquadrarProdutos"
CALLBACK_MARKER = 'dwr.engine.remote.handleCallback("'
FRAGMENT_LIMIT = 500

Row = Dict[str, Any]


@dataclass(frozen=True)
class DwrCall:
    """A single remote-procedure invocation with positional string parameters."""
    script_name: str
    method_name: str
    params: Tuple[str, ...] = field(default_factory=tuple)


def simulation_call(simulation_params: str) -> DwrCall:
    return DwrCall(
        script_name=SCRIPT_NAME,
        method_name=DIV_METHOD,
        params=(ACTION_PATH, "simularOperacaoImobiliariaInternet", simulation_params, "resultadoSimulacao"),
    )


def city_call(uf: str) -> DwrCall:
    return DwrCall(
        script_name=SCRIPT_NAME,
        method_name=LIST_METHOD,
        params=(ACTION_PATH, "listarCidades", f"uf={uf}"),
    )


def find_matching_bracket(text: str, open_index: int) -> int:
    """
    Returns the index of the `]` closing the `[` at open_index, or -1.
    Brackets inside quoted strings (including escaped quotes) are ignored.
    """
    depth = 0
    quote_char: Optional[str] = None
    escaped = False

    for index in range(open_index, len(text)):
        char = text[index]
        if quote_char:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote_char:
                quote_char = None
            continue

        if char in "\"'":
            quote_char = char
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
    return -1


class DwrCodec:
    """Encodes batched calls and decodes callback-wrapped array replies."""

    def __init__(self, page: str = DEFAULT_PAGE, batch_ids: Optional[Iterator[int]] = None):
        self.page = page
        self._batch_ids = batch_ids or itertools.count(int(time.time() * 1000) % 10000)

    def next_batch_id(self) -> int:
        return next(self._batch_ids)

    def encode(self, call: DwrCall) -> bytes:
        lines = [
            "callCount=1",
            f"page={quote(self.page, safe='')}",
            "httpSessionId=",
            "scriptSessionId=",
            "instanceId=0",
            f"c0-scriptName={call.script_name}",
            f"c0-methodName={call.method_name}",
            "c0-id=0",
        ]
        lines.extend(f"c0-param{index}=string:{value}" for index, value in enumerate(call.params))
        lines.append(f"batchId={self.next_batch_id()}")
        return "\n".join(lines).encode("utf-8")

    def extract_literal(self, text: str) -> Optional[str]:
        """
        Returns the array literal handed to the callback, or None when the callback result is null.
        """
        start = text.find(CALLBACK_MARKER)
        if start < 0:
            raise DecodeError(
                "Remote response did not contain the expected callback",
                reason="no_callback_marker",
                fragment=text[:FRAGMENT_LIMIT],
            )

        list_start = text.find("[", start)
        call_end = text.find(");", start)
        if call_end >= 0 and (list_start < 0 or call_end < list_start):
            if text[start:call_end].rpartition(",")[2].strip() == "null":
                return None
        if list_start < 0:
            raise DecodeError(
                "Remote response did not contain any data",
                reason="no_opening_bracket",
                fragment=text[start:start + FRAGMENT_LIMIT],
            )

        list_end = find_matching_bracket(text, list_start)
        if list_end < 0:
            raise DecodeError(
                "Remote response data was truncated",
                reason="unterminated_bracket",
                fragment=text[list_start:list_start + FRAGMENT_LIMIT],
            )
        return text[list_start:list_end + 1]

    def decode(self, body: Any) -> List[Row]:
        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        literal = self.extract_literal(text)
        if literal is None:
            return []

        try:
            parsed = parse_literal(literal)
        except LiteralSyntaxError as e:
            raise DecodeError(
                f"Remote response data is not a valid literal: {e}",
                reason="invalid_literal",
                fragment=literal[:FRAGMENT_LIMIT],
            ) from e

        rows: List[Row] = []
        for item in parsed:
            if not isinstance(item, dict):
                raise DecodeError(
                    "Remote response row is not an object",
                    reason="unexpected_row",
                    fragment=literal[:FRAGMENT_LIMIT],
                )
            rows.append(item)
        return rows
