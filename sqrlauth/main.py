# sqrlauth/main.py
#
# -----------------------------------------------------------------------------
# Architectural notes (high level)
# -----------------------------------------------------------------------------
# This file is intentionally "thin" HTTP glue around SqrlServer:
#   - It MUST NOT implement protocol logic (that lives in server.py).
#   - It MUST NOT implement crypto (signature.py / nut.py).
#
# Endpoints:
#   POST /api/v1/nut                : browser asks for a fresh nut + sqrl:// link
#   POST <SQRL_BASE_URI>?nut=...    : SQRL client posts client/server/ids
#   GET  /api/v1/nut/{nut}/status   : browser polls for authentication
#
# SQRL clients always expect a response body, so client-side problems come
# back as HTTP 200 with the CLIENT_FAILURE flag set, never as an HTTP error.
#
# WARNING (DEPLOYMENT):
# - build_server() wires in-memory collaborators: accounts and sessions are
#   NOT shared across Uvicorn workers or nodes and are lost on restart.
# -----------------------------------------------------------------------------

import logging
from typing import Optional
from urllib.parse import parse_qsl, quote, urlparse

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

from .config import Settings, settings
from .errors import MalformedRequest
from .logging_config import configure_logging
from .models import SqrlClientRequest
from .server import SqrlServer, build_server

log = logging.getLogger(__name__)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "0.0.0.0"


def _route_path(base_uri: str) -> str:
    if "://" in base_uri:
        return urlparse(base_uri).path or "/"
    return base_uri


def create_app(server: Optional[SqrlServer] = None, config: Optional[Settings] = None) -> FastAPI:
    config = config or (server.config if server is not None else settings)
    server = server or build_server(config)

    app = FastAPI(title="SQRL Auth Server", version="0.1.0")
    app.state.sqrl_server = server

    @app.post("/api/v1/nut")
    def issue_nut(request: Request, qr: bool = True):
        nut = server.create_authentication_request(_client_ip(request), qr)
        return {
            "nut": nut,
            "sqrl_url": f"{config.sqrl_scheme_base}?nut={quote(nut, safe='')}",
            "expires_in": config.NUT_EXPIRATION_SECONDS,
        }

    @app.get("/api/v1/nut/{nut}/status")
    def nut_status(nut: str):
        identity_key = server.authenticated_identity(nut)
        if identity_key is None:
            return {"ok": True, "authenticated": False}
        return {"ok": True, "authenticated": True, "identity_key": identity_key}

    @app.post(_route_path(config.SQRL_BASE_URI), response_class=PlainTextResponse)
    async def sqrl(request: Request, nut: Optional[str] = None):
        if not nut:
            raise HTTPException(400, "missing nut")

        ip = _client_ip(request)
        body = (await request.body()).decode("utf-8", errors="replace")
        params = dict(parse_qsl(body, keep_blank_values=True))

        try:
            client_request = SqrlClientRequest.from_params(params)
        except MalformedRequest as e:
            log.info("Malformed SQRL request: %s", e)
            response = server.handle_malformed_request(nut, ip)
        else:
            response = server.handle_client_request(client_request, nut, ip)

        return PlainTextResponse(response.to_encoded_text())

    return app


configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
app = create_app()
