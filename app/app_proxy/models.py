from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field


class ProxyMode(str, Enum):
    RESOURCE = "resource"
    PAGE = "page"


class ContentKind(str, Enum):
    HTML = "html"
    CSS = "css"
    SCRIPT = "script"
    BINARY = "binary"


class ProxyRequestBody(BaseModel):
    """JSON body accepted by POST /api/proxy."""

    url: Optional[str] = None
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)


@dataclass
class ProxyRequest:
    target_url: str
    method: str = "GET"
    extra_headers: Dict[str, str] = field(default_factory=dict)
    mode: ProxyMode = ProxyMode.RESOURCE


@dataclass
class UpstreamResponse:
    status_code: int
    content_type: str
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    final_url: Optional[str] = None


@dataclass(frozen=True)
class RewriteContext:
    """Everything a rewrite pass needs to know about the document it is rewriting."""

    base_url: str
    base_host: str
    mode: ProxyMode


@dataclass
class RoutedContent:
    kind: ContentKind
    body: bytes
    content_type: str
