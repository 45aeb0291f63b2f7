"""content negotiation between the client and a registry."""
import json
from enum import Enum
from typing import Any, Optional

import httpx

from ..domain.errors import (
    MalformedRegistryResponse,
    RegistryCommunicationError,
    UnexpectedContentType,
    UnsupportedContentVersion,
)

API_VERSION = "1"
DEFAULT_NAMESPACE = "swift"
PROBLEM_CONTENT_TYPE = "application/problem+json"


class MediaType(str, Enum):
    JSON = "json"
    SWIFT = "swift"
    ZIP = "zip"

    @property
    def content_type(self) -> str:
        """the Content-Type a registry answers this representation with."""
        return {
            MediaType.JSON: "application/json",
            MediaType.SWIFT: "text/x-swift",
            MediaType.ZIP: "application/zip",
        }[self]


def accept_header(media_type: MediaType, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"application/vnd.{namespace}.registry.v{API_VERSION}+{media_type.value}"


def content_type_of(response: httpx.Response) -> Optional[str]:
    value = response.headers.get("Content-Type")
    if not value:
        return None
    return value.split(";", 1)[0].strip().lower()


def validate_response(response: httpx.Response, media_type: MediaType):
    """
    check a successful response against the representation that was asked for.

    a missing or different Content-Type, or a Content-Version other than the
    one this client speaks, means client and registry disagree on the protocol.
    """
    actual = content_type_of(response)
    if actual != media_type.content_type:
        raise UnexpectedContentType(media_type.content_type, actual, status=response.status_code)

    version = response.headers.get("Content-Version")
    if version is not None and version.strip() != API_VERSION:
        raise UnsupportedContentVersion(version.strip(), status=response.status_code)


def decode_json(response: httpx.Response) -> Any:
    try:
        return json.loads(response.content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedRegistryResponse(f"invalid JSON body: {e}", status=response.status_code) from e


def problem_detail(response: httpx.Response) -> Optional[str]:
    """best-effort `detail` from an error body, for diagnostics only."""
    if content_type_of(response) not in (PROBLEM_CONTENT_TYPE, "application/json"):
        text = response.text.strip()
        return text[:200] or None
    try:
        payload = json.loads(response.content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(payload, dict):
        return payload.get("detail") or payload.get("title")
    return None


def communication_error(response: httpx.Response, action: str) -> RegistryCommunicationError:
    status = response.status_code
    detail = problem_detail(response)
    message = f"failed to {action}: registry returned {status}"
    if detail:
        message += f" ({detail})"
    return RegistryCommunicationError(message, status=status, detail=detail)
