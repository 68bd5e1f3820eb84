"""Configuration contracts."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from buildrelay.contracts.operation import OperationKind, TransportKind


class BuildRelayConfig(BaseModel):
    executable: str = "electron-build-tools"
    ninja_status: str = "%p %f/%t "
    build_transport: TransportKind = TransportKind.SOCKET_RELAY
    sync_transport: TransportKind = TransportKind.PIPE
    cwd: Path | None = None
    env: dict[str, str] = Field(default_factory=dict)
    drain_timeout: float = Field(default=1.0, ge=0)
    terminate_timeout: float = Field(default=3.0, gt=0)
    newline: str = "\n"

    model_config = {"frozen": True}

    @field_validator("executable")
    @classmethod
    def validate_executable(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("executable must be non-empty")
        return value.strip()

    @field_validator("newline")
    @classmethod
    def validate_newline(cls, value: str) -> str:
        if not value:
            raise ValueError("newline must be non-empty")
        return value

    def transport_for(self, kind: OperationKind) -> TransportKind:
        if kind is OperationKind.BUILD:
            return self.build_transport
        return self.sync_transport
