from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

AlertDirectionLiteral = Literal["LOW", "HIGH"]


class AlertPayload(BaseModel):
    """Alert notification published on the alerts topic (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    alert_id: int | None = Field(default=None, alias="alertId")
    device_id: int = Field(..., alias="deviceId")
    device_name: str | None = Field(default=None, alias="deviceName")
    alert_type: AlertDirectionLiteral = Field(..., alias="alertType")
    alert_message: str = Field(..., alias="alertMessage")
    param_name: str = Field(..., alias="paramName")
    param_value: float = Field(..., alias="paramValue")
    alert_level: int = Field(..., ge=0, le=1, alias="alertLevel")
    alert_time: str = Field(..., alias="alertTime")
    pasture_id: int | None = Field(default=None, alias="pastureId")
    batch_id: int | None = Field(default=None, alias="batchId")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class DeviceControlRequest(BaseModel):
    """Body of ``POST /deviceOperation/control``."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"deviceId": 12, "action": "on", "index": 0}},
    )

    device_id: int = Field(..., alias="deviceId")
    action: str = Field(..., description="'on' or 'off'")
    index: int = Field(default=0, description="Command group: 0 single frame, 1 pulsed pair")

    @field_validator("action")
    @classmethod
    def _normalize_action(cls, value: str) -> str:
        return value.strip().lower()


class ReadingPushRequest(BaseModel):
    """Body of ``POST /deviceOperation/readings`` for sensors that push instead of being polled."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: int = Field(..., alias="deviceId")
    values: dict[str, Any] = Field(..., min_length=1)
    timestamp: str | None = None
