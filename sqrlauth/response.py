"""
sqrlauth/response.py

The standard SQRL server response.

Text form (what the client parses and signs on its next round trip):

    ver=1\r\n
    nut=<nut>\r\n
    tif=<decimal bitmask>\r\n
    qry=<base uri>?nut=<nut>
    [\r\nurl=...][\r\nsuk=...][\r\nask=...][\r\n<extra>=...]

Key order is fixed. The client echoes this body back as its "server"
parameter, so any reordering breaks the next signature check.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .encoding import b64url_decode_text, b64url_encode_text
from .tif import TifSet, TransactionInformationFlag

LINE_SEPARATOR = "\r\n"
ASK_SEPARATOR = "~"


def build_ask(message: str, button1: str, button2: str) -> str:
    """
    Encode an interactive prompt: each part is base64url'd on its own,
    then joined with '~'.
    """
    return ASK_SEPARATOR.join(b64url_encode_text(s) for s in (message, button1, button2))


@dataclass(frozen=True)
class SqrlAuthResponse:
    ver: str
    nut: str
    qry: str
    tif: int = 0
    url: Optional[str] = None
    suk: Optional[str] = None
    ask: Optional[str] = None
    # any additional key/value pairs, emitted last in insertion order
    additional_data: Dict[str, str] = field(default_factory=dict)

    def fields(self) -> Iterator[Tuple[str, Optional[str]]]:
        yield "ver", self.ver
        yield "nut", self.nut
        yield "tif", str(self.tif)
        yield "qry", self.qry
        yield "url", self.url
        yield "suk", self.suk
        yield "ask", self.ask
        yield from self.additional_data.items()

    def to_text(self) -> str:
        return LINE_SEPARATOR.join(f"{k}={v}" for k, v in self.fields() if v is not None)

    def to_encoded_text(self) -> str:
        return b64url_encode_text(self.to_text())

    def with_ask(self, message: str, button1: str, button2: str) -> "SqrlAuthResponse":
        return replace(self, ask=build_ask(message, button1, button2))

    def has_flag(self, flag: TransactionInformationFlag) -> bool:
        return bool(self.tif & flag.hex_value)

    def __str__(self) -> str:
        return self.to_text()


def parse_response_text(text: str) -> Dict[str, str]:
    """Split a response body back into its ordered key/value pairs."""
    out: Dict[str, str] = {}
    for line in text.split(LINE_SEPARATOR):
        if not line:
            continue
        k, _, v = line.partition("=")
        out[k] = v
    return out


def decode_response(encoded: str) -> Dict[str, str]:
    return parse_response_text(b64url_decode_text(encoded))


class ResponseBuilder:
    def __init__(self, version: str, base_uri: str):
        self.version = version
        self.base_uri = base_uri

    def query_url(self, nut: str) -> str:
        return f"{self.base_uri}?nut={nut}"

    def build(
        self,
        nut: str,
        suk: Optional[str] = None,
        flags: Iterable[TransactionInformationFlag] = (),
    ) -> SqrlAuthResponse:
        """
        Assemble a response for `nut`.

        `suk` is included only when the caller passes one; whether the
        unlock key may be disclosed is the caller's decision.
        """
        tifs = flags if isinstance(flags, TifSet) else TifSet(flags)
        return SqrlAuthResponse(
            ver=self.version,
            nut=nut,
            tif=tifs.to_bitmask(),
            qry=self.query_url(nut),
            suk=suk,
        )


def flags_of(response: SqrlAuthResponse) -> List[TransactionInformationFlag]:
    return [f for f in TransactionInformationFlag if response.has_flag(f)]
