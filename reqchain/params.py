"""Parameter encoding - turns a request parameter value into a body stream.

The encoded stream is used as the request body, or, for GET and HEAD, read
back as text and used as the URL query string.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Mapping
from typing import Any, BinaryIO
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)


def encode_params(value: Any) -> BinaryIO | None:
    """Encode a parameter value into a readable byte stream.

    Supported shapes, checked in order:

    - ``str``: the UTF-8 bytes of the string.
    - ``bytes``/``bytearray``/``memoryview``: passed through.
    - ``httpx.QueryParams``: encoded by its own rules.
    - ``Mapping[str, str | list[str]]``: form-encoded as ``k=v&k2=v2`` with
      keys sorted and values percent-escaped. A list value becomes repeated
      ``k=v1&k=v2`` pairs in list order. A mapping holding any other key or
      value type is unsupported.
    - ``list``/``tuple`` of ``str``: joined with ``&``. Items are NOT
      escaped; callers pass pre-escaped ``k=v`` pairs.
    - any object with a ``read`` method: returned as is.

    Any other value, ``None`` included, encodes to ``None`` (no body). This is
    not an error: an unsupported shape is silently sent without a body.

    Returns:
        A byte stream positioned at its start, the caller's stream, or None.
    """
    if value is None:
        return None

    if isinstance(value, str):
        return io.BytesIO(value.encode("utf-8"))

    if isinstance(value, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(value))

    # QueryParams is itself a Mapping, so it must be matched first
    if isinstance(value, httpx.QueryParams):
        return io.BytesIO(str(value).encode("ascii"))

    if isinstance(value, Mapping):
        pairs = _form_pairs(value)
        if pairs is None:
            logger.debug("Mapping has non-string keys or values; sending without a body")
            return None
        return io.BytesIO(urlencode(pairs).encode("ascii"))

    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return io.BytesIO("&".join(value).strip("&").encode("utf-8"))

    if callable(getattr(value, "read", None)):
        return value

    logger.debug("No body encoding for %s; sending without a body", type(value).__name__)
    return None


def _form_pairs(values: Mapping[Any, Any]) -> list[tuple[str, str]] | None:
    """Flatten a form mapping into pairs, keys sorted; None if a key or value is not text."""
    if not all(isinstance(key, str) for key in values):
        return None
    pairs: list[tuple[str, str]] = []
    for key in sorted(values):
        value = values[key]
        if isinstance(value, str):
            pairs.append((key, value))
        elif isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            pairs.extend((key, v) for v in value)
        else:
            return None
    return pairs
