"""Response materialization - a fully buffered, decode-on-demand response.

The body is read into memory before the call that produced the response
returns; there is no streaming API. Decoders re-parse the buffered bytes on
every call and never cache, so the same response can be decoded as JSON, XML
and raw bytes independently.
"""

from __future__ import annotations

import html
import json
from typing import Any, TypeVar, overload

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from reqchain.errors import BodyReadError
from reqchain.xml_body import xml_to_dict

T = TypeVar("T")


class Response(BaseModel):
    """One HTTP response, captured after its body was drained.

    Header keys are lowercase. Header values are arrays for repeated headers.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    status: str = Field(description='Status line, e.g. "200 OK"')
    status_code: int = Field(description="HTTP status code")
    http_version: str = Field(default="HTTP/1.1", description="Protocol version")
    body: bytes = Field(default=b"", description="Entire response body")
    content_length: int = Field(
        default=-1, description="Content-Length header value, -1 when unknown"
    )
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, array values)"
    )
    request: httpx.Request | None = Field(
        default=None, exclude=True, repr=False, description="Originating request (diagnostics only)"
    )
    elapsed_ms: float = Field(default=0.0, description="Dispatch time in milliseconds")

    @classmethod
    def from_httpx(cls, response: httpx.Response, elapsed_ms: float = 0.0) -> Response:
        """Drain and close ``response`` and capture it.

        Raises:
            BodyReadError: If the body cannot be read or the stream closed.
        """
        try:
            try:
                body = response.read()
            finally:
                response.close()
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise BodyReadError(f"Failed to read response body: {e}") from e

        headers: dict[str, list[str]] = {}
        for key, value in response.headers.multi_items():
            headers.setdefault(key.lower(), []).append(value)

        return cls(
            status=f"{response.status_code} {response.reason_phrase}".rstrip(),
            status_code=response.status_code,
            http_version=response.http_version,
            body=body,
            content_length=_content_length(response.headers),
            headers=headers,
            request=response.request,
            elapsed_ms=elapsed_ms,
        )

    def get_header(self, key: str) -> str:
        """First value of header ``key`` (case-insensitive), or ""."""
        values = self.headers.get(key.lower())
        return values[0] if values else ""

    def content_type(self) -> str:
        return self.get_header("content-type")

    @property
    def charset(self) -> str | None:
        """Charset parameter of Content-Type, or None when the header has none."""
        for param in self.content_type().split(";")[1:]:
            name, _, value = param.strip().partition("=")
            if name.lower() == "charset" and value:
                return value.strip('"')
        return None

    @property
    def encoding(self) -> str:
        """Charset from Content-Type, defaulting to UTF-8."""
        return self.charset or "utf-8"

    @overload
    def parse_json(self) -> Any: ...

    @overload
    def parse_json(self, target: type[T]) -> T: ...

    def parse_json(self, target: Any = None) -> Any:
        """Decode the body as JSON.

        Args:
            target: Optional type (pydantic model, dataclass, TypedDict, ...)
                to validate the document into. Without it, plain Python
                values are returned.

        Raises:
            json.JSONDecodeError: Body is not JSON (no target given).
            pydantic.ValidationError: Body is not JSON or doesn't fit target.
        """
        if target is None:
            return json.loads(self.body)
        return TypeAdapter(target).validate_json(self.body)

    def parse_xml(self, target: Any = None, force_list: set[str] | None = None) -> Any:
        """Decode the body as XML into a dict (see xml_body.xml_to_dict).

        A charset in Content-Type overrides the document's XML declaration.

        Args:
            target: Optional type to validate the dict into.
            force_list: Tags to always decode as lists.

        Raises:
            xml.etree.ElementTree.ParseError: Body is not well-formed XML.
            pydantic.ValidationError: Document doesn't fit target.
        """
        data = xml_to_dict(self.body, force_list=force_list, encoding=self.charset)
        if target is None:
            return data
        return TypeAdapter(target).validate_python(data)

    def html(self) -> str:
        """Body text with HTML entities unescaped."""
        return html.unescape(self.text())

    def text(self) -> str:
        try:
            return self.body.decode(self.encoding, errors="replace")
        except LookupError:
            # unknown charset label
            return self.body.decode("utf-8", errors="replace")

    def raw(self) -> bytes:
        return self.body

    def __str__(self) -> str:
        return self.text()


def _content_length(headers: httpx.Headers) -> int:
    value = headers.get("content-length")
    if value is None:
        return -1
    try:
        return int(value)
    except ValueError:
        return -1
