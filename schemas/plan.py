from pydantic import Field, model_validator
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from .capability import CamelModel

FrameSource = Literal["GENERATED", "REFERENCE"]
GroupType = Literal["video-sequence", "story-board", "logical-group"]


class FrameConnection(CamelModel):
    """How a video step is conditioned on images (the engine's connectToFrames)."""
    connection_type: Literal["FIRST_FRAME_ONLY", "FIRST_LAST_FRAME"]
    first_frame_source: Optional[FrameSource] = None
    first_frame_step_id: Optional[str] = None
    first_frame_index: Optional[int] = None
    first_frame_id: Optional[str] = Field(None, description="Canvas image id when the source is REFERENCE")
    last_frame_source: Optional[FrameSource] = None
    last_frame_step_id: Optional[str] = None
    last_frame_index: Optional[int] = None


# ---------------------------------------------------------------------------
# Per-nodeType configuration
# ---------------------------------------------------------------------------

class ImageGeneratorConfig(CamelModel):
    model: str
    prompt: str
    aspect_ratio: str
    resolution: Optional[str] = None
    target_ids: List[str] = Field(default_factory=list, description="Reference images fed to an image-to-image model")


class ImageBatchConfig(CamelModel):
    prompt: str


class VideoGeneratorConfig(CamelModel):
    model: str
    prompt: str
    aspect_ratio: str
    resolution: str
    duration: int = Field(..., gt=0)
    connect_to_frames: Optional[FrameConnection] = None


class VideoBatchConfig(CamelModel):
    prompt: str
    duration: int = Field(..., gt=0)


class MusicGeneratorConfig(CamelModel):
    model: str
    prompt: str
    duration: int = Field(..., gt=0)


class TextNodeConfig(CamelModel):
    content: str
    model: str = "standard"


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

class _Step(CamelModel):
    id: str
    explanation: str = ""


class _CreateNodeStep(_Step):
    action: Literal["CREATE_NODE"] = "CREATE_NODE"
    count: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _batch_matches_count(self):
        batch = getattr(self, "batch_configs", None)
        if batch is not None and len(batch) != self.count:
            raise ValueError(
                f"step {self.id!r}: batchConfigs has {len(batch)} entries but count is {self.count}"
            )
        return self


class CreateImageNode(_CreateNodeStep):
    node_type: Literal["image-generator"] = "image-generator"
    config_template: ImageGeneratorConfig
    batch_configs: Optional[List[ImageBatchConfig]] = None


class CreateVideoNode(_CreateNodeStep):
    node_type: Literal["video-generator"] = "video-generator"
    config_template: VideoGeneratorConfig
    batch_configs: Optional[List[VideoBatchConfig]] = None


class CreateMusicNode(_CreateNodeStep):
    node_type: Literal["music-generator"] = "music-generator"
    config_template: MusicGeneratorConfig


class CreateTextNode(_CreateNodeStep):
    node_type: Literal["text"] = "text"
    config_template: TextNodeConfig


class ConnectSequentiallyStep(_Step):
    action: Literal["CONNECT_SEQUENTIALLY"] = "CONNECT_SEQUENTIALLY"
    step_ids: List[str] = Field(..., min_length=2, description="Steps whose outputs are chained in this order")


class GroupNodesStep(_Step):
    action: Literal["GROUP_NODES"] = "GROUP_NODES"
    step_ids: List[str]
    group_type: GroupType
    label: str


class ApplyPluginStep(_Step):
    action: Literal["APPLY_PLUGIN"] = "APPLY_PLUGIN"
    plugin_id: str
    target_ids: List[str] = Field(default_factory=list)
    target_step_id: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class DeleteNodeStep(_Step):
    action: Literal["DELETE_NODE"] = "DELETE_NODE"
    target_ids: List[str]


CreateNodeStep = Annotated[
    Union[CreateImageNode, CreateVideoNode, CreateMusicNode, CreateTextNode],
    Field(discriminator="node_type"),
]
PlanStep = Annotated[
    Union[CreateNodeStep, ConnectSequentiallyStep, GroupNodesStep, ApplyPluginStep, DeleteNodeStep],
    Field(discriminator="action"),
]


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

class SourceGoal(CamelModel):
    goal_type: str
    topic: Optional[str] = None
    duration_seconds: Optional[int] = None
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    model: Optional[str] = None
    needs: List[str] = Field(default_factory=list)
    explanation: str = ""


class PlanMetadata(CamelModel):
    source_goal: SourceGoal
    compiled_at: float


class TimelineClip(CamelModel):
    index: int
    start: int
    end: int
    prompt: str


class Timeline(CamelModel):
    clips: List[TimelineClip]
    marks: str = Field(..., description="Boundary marks, e.g. '0s | 8s | 16s'")


class CanvasInstructionPlan(CamelModel):
    """Produced by the plan synthesizer, consumed by the canvas execution engine."""
    id: str
    summary: str
    steps: List[PlanStep]
    metadata: PlanMetadata
    requires_confirmation: bool = True
    timeline: Optional[Timeline] = None

    def step(self, step_id: str):
        for s in self.steps:
            if s.id == step_id:
                return s
        return None

    def steps_of(self, node_type: str) -> list:
        return [s for s in self.steps if getattr(s, "node_type", None) == node_type]

    def to_engine_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
