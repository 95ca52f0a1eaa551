from typing import Optional
from urllib.parse import urlparse, urlunparse

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # protocol version clients must declare (exact match)
    SQRL_VERSION: str = "1"

    # maximum accepted age of a presented nut
    NUT_EXPIRATION_SECONDS: int = 600

    # path (or absolute URL) clients POST to; qry = SQRL_BASE_URI?nut=<nut>
    SQRL_BASE_URI: str = "/sqrl"

    # public origin used to build sqrl:// links handed out with a new nut
    ORIGIN: str = "http://127.0.0.1:8080"

    # raw AES key for nut encryption, standard Base64; empty = per-process key
    NUT_KEY_B64: Optional[str] = None

    # how long the in-memory session service keeps transactions around
    SESSION_TTL_SECONDS: int = 900

    AUDIT_ENABLED: bool = True
    AUDIT_DIR: str = "audit"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @field_validator("SQRL_VERSION")
    @classmethod
    def normalize_version(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("SQRL_VERSION cannot be empty")
        return v

    @field_validator("NUT_EXPIRATION_SECONDS", "SESSION_TTL_SECONDS")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("SQRL_BASE_URI")
    @classmethod
    def normalize_base_uri(cls, v: str) -> str:
        """
        Either an absolute path ("/sqrl") or a full URL. Query strings and
        trailing slashes are stripped; the handler appends ?nut=<nut>.
        """
        v = (v or "").strip()
        if not v:
            raise ValueError("SQRL_BASE_URI cannot be empty")
        v = v.split("?", 1)[0]
        if len(v) > 1:
            v = v.rstrip("/")
        if "://" not in v and not v.startswith("/"):
            v = "/" + v
        return v

    @field_validator("ORIGIN")
    @classmethod
    def normalize_origin(cls, v: str) -> str:
        """
        ORIGIN must be an absolute http(s) origin.

        Normalization:
          - strip whitespace and trailing slash
          - require http/https and a hostname
          - lowercase hostname, keep an explicit port
        """
        v = (v or "").strip().rstrip("/")
        p = urlparse(v)

        if p.scheme not in ("http", "https"):
            raise ValueError("ORIGIN must start with http:// or https://")
        if not p.hostname:
            raise ValueError("ORIGIN must include a hostname")

        netloc = p.hostname.lower()
        if p.port:
            netloc = f"{netloc}:{p.port}"

        return urlunparse((p.scheme, netloc, "", "", "", ""))

    @field_validator("NUT_KEY_B64")
    @classmethod
    def normalize_nut_key(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        v = (v or "INFO").strip().upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown LOG_LEVEL: {v}")
        return v

    @model_validator(mode="after")
    def ttl_covers_nut_window(self) -> "Settings":
        # used nuts are forgotten after SESSION_TTL_SECONDS
        if self.SESSION_TTL_SECONDS < self.NUT_EXPIRATION_SECONDS:
            raise ValueError("SESSION_TTL_SECONDS must be >= NUT_EXPIRATION_SECONDS")
        return self

    @property
    def sqrl_scheme_base(self) -> str:
        """
        sqrl:// (or qrl:// for plain http) form of ORIGIN + SQRL_BASE_URI,
        as embedded in links and QR codes.
        """
        p = urlparse(self.ORIGIN)
        scheme = "sqrl" if p.scheme == "https" else "qrl"
        path = self.SQRL_BASE_URI
        if "://" in path:
            path = urlparse(path).path or "/"
        return f"{scheme}://{p.netloc}{path}"


settings = Settings()
