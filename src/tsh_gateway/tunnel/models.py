"""Tunnel state models.

``TunnelSession`` is the single mutable slot owned by the lifecycle manager.
``StatusSnapshot`` is the immutable view of it handed to everybody else.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .process import TunnelProcess


class TunnelState(str, Enum):
    """Tunnel lifecycle state enumeration."""

    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    ALLOCATING = "allocating"
    LAUNCHING = "launching"
    CONNECTED = "connected"
    TEARING_DOWN = "tearing_down"


class StatusSnapshot(BaseModel):
    """Point-in-time view of tunnel connectivity."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    connected: bool = Field(description="True only once the tunnel is confirmed")
    state: TunnelState = Field(default=TunnelState.DISCONNECTED)
    environment: str | None = Field(default=None)
    process_id: int | None = Field(default=None, alias="processId")
    local_port: int | None = Field(default=None, alias="localPort")

    def to_payload(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used on the wire."""
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class TunnelSession:
    """Mutable tunnel slot.

    ``environment`` and ``local_port`` are assigned and cleared together;
    ``process`` is only present while launching or connected.
    """

    state: TunnelState = TunnelState.DISCONNECTED
    environment: str | None = None
    local_port: int | None = None
    process: "TunnelProcess | None" = None

    def bind(self, environment: str, local_port: int) -> None:
        self.environment = environment
        self.local_port = local_port

    def reset(self) -> None:
        self.state = TunnelState.DISCONNECTED
        self.environment = None
        self.local_port = None
        self.process = None

    def snapshot(self) -> StatusSnapshot:
        """Build an immutable snapshot of the current slot."""
        return StatusSnapshot(
            connected=self.state == TunnelState.CONNECTED,
            state=self.state,
            environment=self.environment,
            process_id=self.process.pid if self.process is not None else None,
            local_port=self.local_port,
        )
