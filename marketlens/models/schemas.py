from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Requests ---


class ExecuteConfig(BaseModel):
    environment: str
    model: str


class ExecuteAsyncRequest(BaseModel):
    type: str = "conversation"
    interaction: str
    data: dict[str, Any]
    config: ExecuteConfig
    interactive: bool = True
    max_iterations: int = 100


# --- Responses ---


class AuthResponse(BaseModel):
    """Credential exchange reply. The token field name varies by deployment."""

    model_config = ConfigDict(extra="ignore")

    token: str | None = None
    jwt: str | None = None
    access_token: str | None = None
    expires_in: float | None = None

    @property
    def bearer(self) -> str | None:
        return self.token or self.jwt or self.access_token


class ExecutionHandle(BaseModel):
    """Identifies one asynchronous remote execution."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    workflow_id: str = Field(alias="workflowId")
    run_id: str = Field(alias="runId")


class RunResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str | None = None
    message: str | None = None


class RunStatus(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str | None = None
    result: RunResult | None = None

    @field_validator("result", mode="before")
    @classmethod
    def _drop_non_object_result(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, RunResult)) else None

    @property
    def effective_status(self) -> str:
        raw = self.status or (self.result.status if self.result else None) or ""
        return raw.lower().strip()

    @property
    def message(self) -> str | None:
        if self.result and self.result.message:
            return self.result.message
        return None


class StreamEvent(BaseModel):
    """One decoded `data:` frame from the run stream."""

    model_config = ConfigDict(extra="allow")

    type: str = ""
    message: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("message", mode="before")
    @classmethod
    def _stringify_message(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)
