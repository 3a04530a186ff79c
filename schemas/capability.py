from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Dict, List, Literal, Optional

ModelKind = Literal["image", "video", "music", "plugin"]


class CamelModel(BaseModel):
    """Base for contracts exchanged with the canvas: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TemporalSpec(CamelModel):
    supported_durations: Optional[List[int]] = Field(None, description="Clip lengths the model accepts; None means any length up to the maximum")
    max_output_seconds: int = Field(default=8, gt=0, description="Longest clip one generation may produce")


class ModelCapability(CamelModel):
    """One generator or plugin known to the canvas."""
    id: str
    name: str
    kind: ModelKind
    is_default: bool = False
    resolutions: List[str] = Field(default_factory=list)
    aspect_ratios: List[str] = Field(default_factory=list)
    image_to_image: bool = Field(default=False, description="Accepts reference images as input")
    first_last_frame: bool = Field(default=False, description="Video model can be conditioned on a first and a last frame")
    temporal: Optional[TemporalSpec] = None
    parameters: Dict[str, str] = Field(default_factory=dict, description="Plugin parameter schema: name -> description")
    description: str = ""
