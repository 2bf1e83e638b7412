"""Configuration models for reqchain.

All models use Pydantic v2.
"""

from __future__ import annotations

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from reqchain.errors import ProxyConfigError
from reqchain.redirects import DEFAULT_REDIRECT_LIMIT
from reqchain.transport import fixed_address_dialer, validate_proxy_url


class ClientConfig(BaseModel):
    """Defaults for a Request builder, typically loaded from YAML.

    Timeouts are seconds; omitted or 0 means no bound.
    """

    model_config = ConfigDict(extra="forbid")

    host: str | None = Field(default=None, description="Host header override")
    proxy: str | None = Field(default=None, description="Proxy URL, e.g. http://127.0.0.1:8081")
    proxy_from_env: bool = Field(
        default=False, description="Use HTTPS_PROXY/HTTP_PROXY/ALL_PROXY when proxy is unset"
    )
    insecure_skip_verify: bool = Field(default=False, description="Skip TLS certificate checks")
    redirect_limit: int = Field(
        default=DEFAULT_REDIRECT_LIMIT, ge=0, description="Requests sent before redirects stop"
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request (supports ${ENV_VAR} substitution)",
    )
    user_agent: str | None = Field(default=None, description="User-Agent header")
    referer: str | None = Field(default=None, description="Referer header")
    charset: str | None = Field(default=None, description="Accept-Charset header")
    timeout: float = Field(default=0.0, ge=0, description="Overall timeout")
    dial_timeout: float = Field(default=0.0, ge=0, description="TCP connect timeout")
    tls_timeout: float = Field(default=0.0, ge=0, description="TLS handshake timeout")
    response_header_timeout: float = Field(
        default=0.0, ge=0, description="Timeout waiting for response data"
    )
    dial_address: str | None = Field(
        default=None, description="Connect every request to this ip:port instead"
    )

    @field_validator("proxy")
    @classmethod
    def validate_proxy(cls, v: str | None) -> str | None:
        if v is not None:
            # pydantic only turns ValueError into a validation error
            try:
                validate_proxy_url(v)
            except ProxyConfigError as e:
                raise ValueError(str(e)) from e
        return v

    @field_validator("dial_address")
    @classmethod
    def validate_dial_address(cls, v: str | None) -> str | None:
        if v is not None:
            fixed_address_dialer(v)
        return v

    @model_validator(mode="after")
    def check_proxy_source(self) -> Self:
        if self.proxy is not None and self.proxy_from_env:
            raise ValueError("cannot specify both proxy and proxy_from_env")
        return self
