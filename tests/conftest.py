import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from sqrlauth.audit import AuditLog
from sqrlauth.config import Settings
from sqrlauth.encoding import b64url_encode, b64url_encode_text
from sqrlauth.models import SqrlClientRequest
from sqrlauth.nut import AesNutService
from sqrlauth.server import SqrlServer
from sqrlauth.storage import InMemoryAuthenticationService, InMemoryUserService

T0 = 1_700_000_000

# Real client vector captured against www.grc.com (query, opt=cps~suk).
GRC_CLIENT = (
    "dmVyPTENCmNtZD1xdWVyeQ0KaWRrPVRMcHlyb3dMaFdmOS1oZExMUFFPQS03LXhwbEk5TE94c2ZMWHN5VGNjVmMNCm9wdD1jcHN-c3VrDQo"
)
GRC_SERVER = (
    "c3FybDovL3d3dy5ncmMuY29tL3Nxcmw_bnV0PVpIUVNuYllXU0REVWo1NzBtc0l1VlEmc2ZuPVIxSkQmY2FuPWFIUjBjSE02THk5M2QzY3VaM0pqTG1OdmJTOXpjWEpzTDJScFlXY3VhSFJ0"
)
GRC_IDK = "TLpyrowLhWf9-hdLLPQOA-7-xplI9LOxsfLXsyTccVc"
GRC_IDS = "tCTr1DoEYANtxGE_kRNHgSsHa87aRG9C0vNqy7h6CaV8tH5TnBJmdW0gbDsja1JsRbSNA4ZeFVUIfOnzdEz8DA"


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def public_key_b64(priv: Ed25519PrivateKey) -> str:
    return b64url_encode(priv.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw))


def make_params(
    priv: Ed25519PrivateKey,
    cmd: str = "query",
    ver: str = "1",
    pidk: str = None,
    suk: str = None,
    vuk: str = None,
    opt: str = None,
    server: str = None,
) -> dict:
    lines = [f"ver={ver}", f"cmd={cmd}", f"idk={public_key_b64(priv)}"]
    if pidk:
        lines.append(f"pidk={pidk}")
    if suk:
        lines.append(f"suk={suk}")
    if vuk:
        lines.append(f"vuk={vuk}")
    if opt:
        lines.append(f"opt={opt}")
    client = b64url_encode_text("\r\n".join(lines) + "\r\n")
    server = server or b64url_encode_text("qrl://127.0.0.1:8080/sqrl?nut=placeholder")
    ids = b64url_encode(priv.sign((client + server).encode("utf-8")))
    return {"client": client, "server": server, "ids": ids}


def make_request(priv: Ed25519PrivateKey, **kwargs) -> SqrlClientRequest:
    return SqrlClientRequest.from_params(make_params(priv, **kwargs))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return Settings(
        SQRL_VERSION="1",
        NUT_EXPIRATION_SECONDS=600,
        SQRL_BASE_URI="/sqrl",
        ORIGIN="http://127.0.0.1:8080",
        AUDIT_ENABLED=True,
        AUDIT_DIR=str(tmp_path / "audit"),
    )


@pytest.fixture
def user_service():
    return InMemoryUserService()


@pytest.fixture
def auth_service(clock):
    return InMemoryAuthenticationService(clock=clock)


@pytest.fixture
def nut_service(clock):
    return AesNutService(clock=clock)


@pytest.fixture
def audit(config):
    return AuditLog(config.AUDIT_DIR)


@pytest.fixture
def server(user_service, auth_service, config, nut_service, audit, clock):
    return SqrlServer(
        user_service=user_service,
        auth_service=auth_service,
        config=config,
        nut_service=nut_service,
        audit=audit,
        clock=clock,
    )


@pytest.fixture
def identity():
    return Ed25519PrivateKey.generate()
