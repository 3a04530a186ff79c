from pydantic import BaseModel, Field
from typing import Annotated, List, Literal, Union

from .requirements import ConnectionMode, ReferenceStrength


class _Fix(BaseModel):
    id: str
    label: str
    optional: bool = Field(default=False, description="A suggestion rather than a fix for a warning")


class SetVideoDuration(_Fix):
    kind: Literal["set_video_duration"] = "set_video_duration"
    seconds: int


class SetResolution(_Fix):
    kind: Literal["set_resolution"] = "set_resolution"
    resolution: str


class SetAspectRatio(_Fix):
    kind: Literal["set_aspect_ratio"] = "set_aspect_ratio"
    aspect_ratio: str


class SwitchImageModel(_Fix):
    kind: Literal["switch_image_model"] = "switch_image_model"
    model: str


class SetConnectionMode(_Fix):
    kind: Literal["set_connection_mode"] = "set_connection_mode"
    mode: ConnectionMode


class ChoosePrimaryReference(_Fix):
    kind: Literal["choose_primary_reference"] = "choose_primary_reference"
    reference_id: str


class SetReferenceStrength(_Fix):
    kind: Literal["set_reference_strength"] = "set_reference_strength"
    strength: ReferenceStrength


AutoFix = Annotated[
    Union[
        SetVideoDuration,
        SetResolution,
        SetAspectRatio,
        SwitchImageModel,
        SetConnectionMode,
        ChoosePrimaryReference,
        SetReferenceStrength,
    ],
    Field(discriminator="kind"),
]


class ValidationResult(BaseModel):
    """Produced by the plan validator. Fixes patch Requirements, never plan steps."""
    ok: bool
    errors: List[str] = Field(default_factory=list, description="Blocking: the plan cannot be executed")
    warnings: List[str] = Field(default_factory=list)
    fixes: List[AutoFix] = Field(default_factory=list)

    def fix(self, fix_id: str):
        for f in self.fixes:
            if f.id == fix_id:
                return f
        return None
