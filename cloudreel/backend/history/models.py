"""Watch-progress records and the persisted watch-history document."""

from __future__ import annotations

import json
import math
from typing import Any, Dict, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from cloudreel.backend.common.errors import MalformedDocument


def clamp_progress(position: float, duration: float) -> tuple[float, float]:
    """Clamp ``position`` into ``[0, duration]``; non-finite input collapses to zero."""

    duration = float(duration) if _finite(duration) else 0.0
    duration = max(0.0, duration)
    position = float(position) if _finite(position) else 0.0
    return min(max(0.0, position), duration), duration


def _finite(value: Any) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


class ProgressRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    position: float = Field(ge=0)
    duration: float = Field(ge=0)
    last_watched: int = Field(alias="lastWatched", ge=0, description="Epoch milliseconds")

    @model_validator(mode="before")
    @classmethod
    def _clamp(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "position" in data and "duration" in data:
            if _finite(data["position"]) and _finite(data["duration"]):
                position, duration = clamp_progress(data["position"], data["duration"])
                data = {**data, "position": position, "duration": duration}
        return data

    @property
    def completed(self) -> bool:
        return self.duration > 0 and self.position >= self.duration

    @property
    def fraction(self) -> float:
        return self.position / self.duration if self.duration > 0 else 0.0

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


WatchHistory = Dict[str, ProgressRecord]

_HISTORY_ADAPTER = TypeAdapter(Dict[str, ProgressRecord])


def encode_history(history: Mapping[str, ProgressRecord]) -> bytes:
    payload = {key: history[key].to_document() for key in sorted(history)}
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def decode_history(raw: Union[bytes, str], source: str) -> WatchHistory:
    """Parse a watch-history document; any defect makes the whole document unusable."""

    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedDocument(source, "not UTF-8") from exc
    if not raw.strip():
        raise MalformedDocument(source, "empty document")
    try:
        return dict(_HISTORY_ADAPTER.validate_json(raw))
    except ValidationError as exc:
        raise MalformedDocument(source, f"{exc.error_count()} invalid field(s)") from exc


__all__ = [
    "ProgressRecord",
    "WatchHistory",
    "clamp_progress",
    "decode_history",
    "encode_history",
]
