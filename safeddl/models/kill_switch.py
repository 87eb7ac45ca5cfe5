"""
Kill Switch Models
"""

from typing import Optional

from pydantic import BaseModel, Field, StrictBool


class KillSwitchState(BaseModel):
    """
    Kill switch answer for one connection.

    Strict booleans: a payload carrying "false" or 0 is malformed, not "off".
    """

    global_active: StrictBool = Field(..., description="Global switch engaged")
    connection_active: StrictBool = Field(..., description="Connection switch engaged")
    reason: Optional[str] = Field(None, description="Operator supplied reason")

    @property
    def blocked(self) -> bool:
        return self.global_active or self.connection_active


class KillSwitchToggle(BaseModel):
    """Body of POST /api/kill-switch/toggle. No connection_id means global."""

    connection_id: Optional[str] = Field(None, description="Connection to toggle")
    enabled: bool = Field(..., description="Engage (true) or release (false)")
    reason: Optional[str] = Field(None, description="Why")
