import json

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Tuple

from rs_capture.api.param_type import StreamType, StopReason


Coefficients = Tuple[float, float, float, float, float]


def _fmt(value: float) -> str:
    return format(value, "g")


class StreamRequest(BaseModel):
    stream: StreamType
    width: int
    height: int
    format: str
    fps: int

class IntrinsicsRecord(BaseModel):
    """Depth scale plus camera intrinsics of the depth channel, written beside every exported tick."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    scale: float
    fx: float
    fy: float
    ppx: float
    ppy: float
    model: str
    coeffs: Coefficients

    @classmethod
    def from_intrinsics(cls, intrinsics, scale: float) -> "IntrinsicsRecord":
        return cls(
            scale=scale,
            fx=intrinsics.fx,
            fy=intrinsics.fy,
            ppx=intrinsics.ppx,
            ppy=intrinsics.ppy,
            model=intrinsics.model,
            coeffs=tuple(intrinsics.coeffs),
        )

    def to_text(self) -> str:
        """
        Renders the record in its fixed on-disk layout:

            {
            "scale":..,"fx":..,"fy":..,"ppx":..,"ppy":..,
            "model":"..","coeffs": [c0,c1,c2,c3,c4]}

        The output is valid JSON and always ends with a single newline.
        """
        head = ",".join(
            f'"{name}":{_fmt(getattr(self, name))}'
            for name in ("scale", "fx", "fy", "ppx", "ppy")
        )
        coeffs = ",".join(_fmt(c) for c in self.coeffs)
        return "{\n" + head + ",\n" + f'"model":{json.dumps(self.model)},"coeffs": [{coeffs}]' + "}\n"

    @classmethod
    def from_text(cls, text: str) -> "IntrinsicsRecord":
        return cls.model_validate(json.loads(text))

class CaptureSessionRequest(BaseModel):
    target_rate: int = Field(..., description="Output frame rate, 1 to 30.")
    output_dir: str
    max_count: int = Field(1, ge=1, description="Number of ticks to export before the session ends.")
    warmup: Optional[int] = Field(None, ge=0, description="Frames discarded before the session starts.")

class CaptureSessionSummary(BaseModel):
    skip_interval: int
    ticks: int
    exported: int
    failed: int
    stop_reason: StopReason
    files: List[str]
