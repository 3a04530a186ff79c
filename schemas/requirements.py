from pydantic import BaseModel, Field
from typing import List, Literal, Optional

TaskKind = Literal[
    "text_to_image",
    "image_to_image",
    "text_to_video",
    "image_to_video",
    "plugin_action",
    "delete_content",
    "explain",
    "unknown",
]
ConnectionMode = Literal["single", "first_frame", "first_last"]
ReferenceStrength = Literal["low", "medium", "high"]
RequirementKey = Literal[
    "topic",
    "duration",
    "platform",
    "aspect_ratio",
    "resolution",
    "reference_images",
    "transition_mode",
    "needs_script_confirmation",
]

VIDEO_TASKS = ("text_to_video", "image_to_video")
IMAGE_TASKS = ("text_to_image", "image_to_image")


class CanvasContext(BaseModel):
    """What the canvas tells us alongside a chat message."""
    selected_image_ids: List[str] = Field(default_factory=list)


class IntentResult(BaseModel):
    """Produced by the intent classifier, seeds the Requirements of a new request."""
    task: TaskKind = "unknown"
    goal: Optional[str] = None
    product: Optional[str] = None
    topic: Optional[str] = None
    prompt: Optional[str] = Field(None, description="The user's request text, used as the image prompt")
    duration_seconds: Optional[int] = None
    count: Optional[int] = None
    platform: Optional[str] = None
    style: Optional[str] = None
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    model: Optional[str] = None
    plugin_id: Optional[str] = None
    referenced_image_index: Optional[int] = Field(None, description="1-based ordinal of the selected image the user pointed at")
    needs_reference_image: bool = False
    needs_script: bool = False
    explanation: str = ""

    @property
    def is_video(self) -> bool:
        return self.task in VIDEO_TASKS


class Requirements(BaseModel):
    """Everything the plan synthesizer needs; a plan is always re-derivable from this plus the script."""
    task: TaskKind
    goal: Optional[str] = None
    topic: Optional[str] = None
    product: Optional[str] = None
    prompt: Optional[str] = None
    duration_seconds: Optional[int] = None
    platform: Optional[str] = None
    style: Optional[str] = None
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    model: Optional[str] = Field(None, description="Primary generator (video model for video tasks)")
    image_model: Optional[str] = Field(None, description="Image model for boundary frames of video plans")
    mode: Optional[ConnectionMode] = None
    reference_image_ids: List[str] = Field(default_factory=list, description="Ordered; the first id is the primary reference")
    reference_strength: ReferenceStrength = "medium"
    needs_script: bool = False
    count: Optional[int] = None
    plugin_id: Optional[str] = None

    @property
    def is_video(self) -> bool:
        return self.task in VIDEO_TASKS

    @property
    def primary_reference(self) -> Optional[str]:
        return self.reference_image_ids[0] if self.reference_image_ids else None


class QuestionOption(BaseModel):
    label: str
    value: str
    text: str


class RequirementQuestion(BaseModel):
    key: RequirementKey
    question: str
    options: List[QuestionOption] = Field(default_factory=list)

    def render(self) -> str:
        lines = [self.question]
        for opt in self.options:
            lines.append(f"{opt.label}) {opt.text}")
        return "\n".join(lines)
