from __future__ import annotations

from typing import Literal, TypedDict

ComponentStatus = Literal["ok", "degraded", "fail"]


class HealthReport(TypedDict):
    status: ComponentStatus
    components: dict[str, ComponentStatus]
