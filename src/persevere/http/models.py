"""
Request model for the HTTP runner.

The runner rebuilds the outgoing request from this model on every attempt,
so a single HttpRequest can be sent any number of times.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class HttpRequest(BaseModel):
    """
    Description of one HTTP call.

    Only one of ``json_body`` and ``content`` should be given.
    """
    model_config = ConfigDict(frozen=True)

    method: str = Field(default="GET", description="HTTP method")
    url: str = Field(..., min_length=1, description="Absolute URL, or path relative to the client's base_url")
    headers: Dict[str, str] = Field(default_factory=dict, description="Request headers")
    params: Dict[str, Any] = Field(default_factory=dict, description="Query string parameters")
    json_body: Optional[Any] = Field(default=None, description="JSON-serializable request body")
    content: Optional[bytes] = Field(default=None, description="Raw request body")
    timeout: Optional[float] = Field(default=None, gt=0.0, description="Per-request timeout override in seconds")

    @field_validator("method")
    @classmethod
    def normalize_method(cls, value: str) -> str:
        method = value.strip().upper()
        if not method.isalpha():
            raise ValueError(f"Invalid HTTP method: {value!r}")
        return method

    @model_validator(mode="after")
    def check_single_body(self) -> "HttpRequest":
        if self.json_body is not None and self.content is not None:
            raise ValueError("json_body and content are mutually exclusive")
        return self
