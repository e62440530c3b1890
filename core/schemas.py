"""
core/schemas.py -- Pydantic models for the partner API's JSON payloads.

Two shapes cross the wire:

  TokenResponse  body of a successful POST /oauth/token
  DaxResponse    envelope wrapped around every resource response; the payload
                 lives in `data`, whose shape depends on the endpoint

Field names follow the partner's camelCase via aliases; attribute access in
Python is snake_case. Unknown fields are ignored so additive API changes do not
break parsing.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    """Password-grant token response. expires_in is in seconds."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    token_type: str = "Bearer"
    expires_in: int = Field(..., ge=0)


class Paging(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total_count: int = Field(0, alias="totalCount")
    offset: int = 0
    limit: int = 0


class DaxResponse(BaseModel):
    """Envelope returned by every DAX resource endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: Optional[str] = Field(None, alias="apiVersion")
    correlation_id: Optional[str] = Field(None, alias="correlationId")
    status_code: Optional[int] = Field(None, alias="statusCode")
    message: Optional[str] = None
    paging: Optional[Paging] = None
    data: Any = None
