from enum import Enum
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from .encoding import b64url_decode_text
from .errors import MalformedRequest


class SqrlCommand(str, Enum):
    QUERY = "query"
    IDENT = "ident"
    DISABLE = "disable"
    ENABLE = "enable"
    REMOVE = "remove"

    @classmethod
    def from_value(cls, value: Optional[str]) -> Optional["SqrlCommand"]:
        """None for anything outside the closed command set."""
        try:
            return cls(value)
        except ValueError:
            return None


class SqrlOptionFlag(str, Enum):
    SQRL_ONLY = "sqrlonly"
    HARD_LOCK = "hardlock"
    CLIENT_PROVIDED_SESSION = "cps"
    SERVER_UNLOCK_KEY = "suk"
    NO_IP_TEST = "noiptest"


REQUIRED_PARAMS = ("client", "server", "ids")
REQUIRED_CLIENT_FIELDS = ("ver", "cmd", "idk")


def parse_name_value_block(text: str) -> Dict[str, str]:
    """
    Parse CRLF-separated key=value lines.

    Blank lines are skipped; a value may itself contain '='.
    """
    out: Dict[str, str] = {}
    for line in text.split("\r\n"):
        line = line.strip()
        if not line:
            continue
        if "=" not in line:
            raise MalformedRequest(f"bad line in parameter block: {line[:40]!r}")
        k, v = line.split("=", 1)
        out[k] = v
    return out


class SqrlClientRequest(BaseModel):
    """
    A client request as posted to the SQRL endpoint.

    `client` and `server` are kept exactly as received: the identity
    signature covers their concatenation, so they must never be rebuilt.
    """

    client: str
    server: str
    ids: str

    ver: str
    cmd: str
    idk: str
    pidk: Optional[str] = None
    suk: Optional[str] = None
    vuk: Optional[str] = None
    opt: List[str] = Field(default_factory=list)

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "SqrlClientRequest":
        """
        Build a request from the posted form parameters (client/server/ids).

        Raises MalformedRequest for missing parameters or an undecodable
        client block.
        """
        for k in REQUIRED_PARAMS:
            if not params.get(k):
                raise MalformedRequest(f"missing parameter: {k}")

        client = str(params["client"])
        try:
            fields = parse_name_value_block(b64url_decode_text(client))
        except MalformedRequest:
            raise
        except ValueError as e:
            raise MalformedRequest(f"client block is not base64url text: {e}") from e

        for k in REQUIRED_CLIENT_FIELDS:
            if not fields.get(k):
                raise MalformedRequest(f"missing client field: {k}")

        opt = [o for o in fields.get("opt", "").split("~") if o]

        return cls(
            client=client,
            server=str(params["server"]),
            ids=str(params["ids"]),
            ver=fields["ver"],
            cmd=fields["cmd"],
            idk=fields["idk"],
            pidk=fields.get("pidk") or None,
            suk=fields.get("suk") or None,
            vuk=fields.get("vuk") or None,
            opt=opt,
        )

    @property
    def command(self) -> Optional[SqrlCommand]:
        return SqrlCommand.from_value(self.cmd)

    @property
    def option_flags(self) -> List[SqrlOptionFlag]:
        flags = []
        for o in self.opt:
            try:
                flags.append(SqrlOptionFlag(o))
            except ValueError:
                continue
        return flags

    def signed_message(self) -> bytes:
        return (self.client + self.server).encode("utf-8")
