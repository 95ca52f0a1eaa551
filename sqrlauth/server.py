# sqrlauth/server.py
#
# -----------------------------------------------------------------------------
# Architectural notes
# -----------------------------------------------------------------------------
# SqrlServer is the protocol engine. It owns no state of its own: every call
# works on its inputs and on the collaborators it was built with
#   - nut_service   : mint / encode / decode nuts
#   - user_service  : account lookup and mutation
#   - auth_service  : transaction linkage + out-of-band authentication state
#   - audit         : optional tamper-evident record of each decision
#
# Protocol failures never raise. They are reported to the client through TIF
# flags on a well-formed response. Exceptions raised by a collaborator
# (storage down, etc.) are infrastructure faults and propagate unchanged.
# -----------------------------------------------------------------------------

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .audit import AuditLog, build_common
from .config import Settings
from .errors import InvalidNut
from .models import SqrlClientRequest, SqrlCommand
from .nut import AesNutService, Nut, NutService, load_nut_key_from_b64
from .response import ResponseBuilder, SqrlAuthResponse
from .signature import verify_sqrl_signature
from .storage import (
    InMemoryAuthenticationService,
    InMemoryUserService,
    SqrlAuthenticationService,
    SqrlUser,
    SqrlUserService,
)
from .tif import TifSet, TransactionInformationFlag as Tif

log = logging.getLogger(__name__)


class SqrlServer:
    def __init__(
        self,
        user_service: SqrlUserService,
        auth_service: SqrlAuthenticationService,
        config: Settings,
        nut_service: NutService,
        audit: Optional[AuditLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.user_service = user_service
        self.auth_service = auth_service
        self.config = config
        self.nut_service = nut_service
        self.audit = audit
        self.responses = ResponseBuilder(config.SQRL_VERSION, config.SQRL_BASE_URI)
        # Keep time source centralized for easier testing/mocking.
        self._clock = clock

    # -------------------------------------------------------------------------
    # Challenge issue + polling
    # -------------------------------------------------------------------------
    def create_authentication_request(self, ip_address: str, qr: bool = False) -> str:
        nut = self.nut_service.create_nut(ip_address, qr)
        nut_string = self.nut_service.encode_nut(nut)
        self.auth_service.create_authentication_request(nut_string, ip_address)
        log.debug("Creating nut %s", nut_string)
        self._audit("issued", "nut_issued", nut=nut_string, request_ip=ip_address, qr=bool(qr))
        return nut_string

    def authenticated_identity(self, nut: str) -> Optional[str]:
        return self.auth_service.get_authenticated_identity(nut)

    # -------------------------------------------------------------------------
    # Client request handling
    # -------------------------------------------------------------------------
    def handle_client_request(
        self,
        request: SqrlClientRequest,
        nut: str,
        ip_address: str,
    ) -> SqrlAuthResponse:
        log.debug("Handling client request for nut %s", nut)

        # Build the new nut for this response, retain the QR flag
        try:
            request_nut = self.nut_service.decode_nut(nut)
        except InvalidNut as e:
            log.info("Rejecting request with undecodable nut: %s", e)
            response_nut_string = self._mint_response_nut(ip_address, qr=False)
            self._audit_denied("invalid_nut", request, nut, response_nut_string, ip_address)
            return self._create_response(response_nut_string, None, TifSet([Tif.CLIENT_FAILURE]))

        response_nut = self.nut_service.create_nut(ip_address, request_nut.qr)
        response_nut_string = self.nut_service.encode_nut(response_nut)

        # Protocol version first
        if request.ver != self.config.SQRL_VERSION:
            log.info(
                "Client version mismatch (got %r, expected %r)",
                request.ver,
                self.config.SQRL_VERSION,
            )
            self._audit_denied("version_mismatch", request, nut, response_nut_string, ip_address)
            return self._create_response(response_nut_string, None, TifSet([Tif.CLIENT_FAILURE]))

        check = verify_sqrl_signature(request.signed_message(), request.idk, request.ids)
        if not check:
            log.info("Invalid identity signature: %s", check.reason)
            self._audit_denied(
                "invalid_signature", request, nut, response_nut_string, ip_address, detail=check.reason
            )
            return self._create_response(response_nut_string, None, TifSet([Tif.CLIENT_FAILURE]))

        tifs, reason = self._process(request, nut, request_nut, response_nut, response_nut_string)

        # The unlock key stays withheld even when the client asks for it with
        # opt=suk: some clients rebuild the next query incorrectly once suk is
        # present in the response.
        response = self._create_response(response_nut_string, None, tifs)

        log.debug(
            "Response: %s",
            response.to_text().replace("\r\n", " "),
            extra={"extra_fields": {"tif": response.tif, "cmd": request.cmd[:32]}},
        )
        self._audit(
            "transient" if Tif.TRANSIENT_ERROR in tifs else "processed",
            reason,
            **build_common(
                nut=nut,
                response_nut=response_nut_string,
                request_ip=ip_address,
                identity_key=request.idk,
                command=request.cmd,
                message_bytes=request.signed_message(),
                signature=request.ids,
            ),
            tif=response.tif,
        )
        return response

    def handle_malformed_request(self, nut: Optional[str], ip_address: str) -> SqrlAuthResponse:
        """
        Response for a request whose parameters could not be parsed at all.
        """
        qr = False
        if nut:
            try:
                qr = self.nut_service.decode_nut(nut).qr
            except InvalidNut:
                pass
        response_nut_string = self._mint_response_nut(ip_address, qr)
        self._audit(
            "denied",
            "malformed_request",
            **build_common(nut=nut, response_nut=response_nut_string, request_ip=ip_address),
        )
        return self._create_response(response_nut_string, None, TifSet([Tif.CLIENT_FAILURE]))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------
    def _process(
        self,
        request: SqrlClientRequest,
        nut: str,
        request_nut: Nut,
        response_nut: Nut,
        response_nut_string: str,
    ) -> Tuple[TifSet, str]:
        tifs = TifSet()

        # nut.created has whole-second resolution
        nut_age = request_nut.age(int(self._clock()))
        if nut_age > self.config.NUT_EXPIRATION_SECONDS:
            log.info("Nut expired (age %ds)", nut_age)
            tifs.add(Tif.TRANSIENT_ERROR)
            return tifs, "nut_expired"

        if not self.auth_service.consume_nut(nut):
            log.info("Nut already used")
            tifs.add(Tif.TRANSIENT_ERROR)
            return tifs, "nut_reused"

        # Correlate the requesting nut with the new one
        self.auth_service.link_nut(nut, response_nut_string)

        if request_nut.check_ip_match(response_nut):
            tifs.add(Tif.IP_MATCHED)

        identity_key = request.idk
        previous_identity_key = request.pidk

        user = self.user_service.get_user_by_sqrl_key(identity_key)
        if user is not None:
            tifs.add(Tif.ID_MATCH)
        elif previous_identity_key is not None:
            user = self.user_service.get_user_by_sqrl_key(previous_identity_key)
            if user is not None:
                self.user_service.update_identity_key(previous_identity_key, identity_key)
                log.info("Rotated identity key for account")
                tifs.add(Tif.PREVIOUS_ID_MATCH)

        self._dispatch(request, user, response_nut_string, tifs)

        if user is not None and not user.sqrl_enabled():
            tifs.add(Tif.SQRL_DISABLED)

        return tifs, "signature_valid"

    def _dispatch(
        self,
        request: SqrlClientRequest,
        user: Optional[SqrlUser],
        response_nut_string: str,
        tifs: TifSet,
    ) -> None:
        command = request.command
        identity_key = request.idk

        if command is SqrlCommand.QUERY:
            # No mutation: the flags already tell the client what we know.
            pass
        elif command is SqrlCommand.IDENT:
            if user is None:
                self.user_service.register_sqrl_user(identity_key, request.suk, request.vuk)
                log.info("Registered new SQRL account")
            self.auth_service.authenticate_nut(response_nut_string, identity_key)
            tifs.add(Tif.ID_MATCH)
        elif command is SqrlCommand.DISABLE:
            self.user_service.disable_sqrl_user(identity_key)
        elif command is SqrlCommand.REMOVE:
            self.user_service.remove_sqrl_user(identity_key)
        elif command is SqrlCommand.ENABLE:
            self.user_service.enable_sqrl_user(identity_key)
        else:
            log.info("Unsupported command %r", request.cmd[:32])
            tifs.add(Tif.FUNCTION_NOT_SUPPORTED)

    def _mint_response_nut(self, ip_address: str, qr: bool) -> str:
        return self.nut_service.encode_nut(self.nut_service.create_nut(ip_address, qr))

    def _create_response(self, nut: str, suk: Optional[str], tifs: TifSet) -> SqrlAuthResponse:
        return self.responses.build(nut, suk, tifs)

    def _audit(self, result: str, reason: str, **fields: Any) -> None:
        if self.audit is None:
            return
        event: Dict[str, Any] = {"ts": int(time.time())}
        event.update(fields)
        event["result"] = result
        event["reason"] = reason
        event["v"] = self.config.SQRL_VERSION
        self.audit.append_event(event)

    def _audit_denied(
        self,
        reason: str,
        request: SqrlClientRequest,
        nut: str,
        response_nut: str,
        ip_address: str,
        detail: Optional[str] = None,
    ) -> None:
        fields = build_common(
            nut=nut,
            response_nut=response_nut,
            request_ip=ip_address,
            identity_key=request.idk,
            command=request.cmd,
            message_bytes=request.signed_message(),
            signature=request.ids,
        )
        if detail:
            fields["detail"] = detail[:200]
        self._audit("denied", reason, client_ver=request.ver[:16], **fields)


def build_server(config: Settings, clock: Callable[[], float] = time.time) -> SqrlServer:
    """Wire a server with the in-memory collaborators and settings."""
    key = load_nut_key_from_b64(config.NUT_KEY_B64) if config.NUT_KEY_B64 else None
    if key is None:
        log.warning("NUT_KEY_B64 not set: nuts will not survive a restart")

    return SqrlServer(
        user_service=InMemoryUserService(),
        auth_service=InMemoryAuthenticationService(config.SESSION_TTL_SECONDS, clock=clock),
        config=config,
        nut_service=AesNutService(key, clock=clock),
        audit=AuditLog(config.AUDIT_DIR) if config.AUDIT_ENABLED else None,
        clock=clock,
    )
