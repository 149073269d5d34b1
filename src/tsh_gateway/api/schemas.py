"""Request and response bodies of the control API."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ConnectRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    environment: str | None = Field(
        default=None,
        validation_alias=AliasChoices("environment", "env"),
        description="Environment profile name, e.g. 'sit'",
    )


class ConnectResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    tunnel_port: int = Field(serialization_alias="tunnelPort")
    message: str
    data: str = Field(default="", description="Output of tsh status")


class ExecuteSqlRequest(BaseModel):
    query: str | None = None
    db_config: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("dbConfig", "db_config")
    )


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
