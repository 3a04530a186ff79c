from .capability import CamelModel, ModelCapability, ModelKind, TemporalSpec
from .requirements import (
    CanvasContext, ConnectionMode, IntentResult, QuestionOption, ReferenceStrength,
    RequirementKey, RequirementQuestion, Requirements, TaskKind, IMAGE_TASKS, VIDEO_TASKS,
)
from .script import ScenePlan, ScriptPlan
from .plan import (
    ApplyPluginStep, CanvasInstructionPlan, ConnectSequentiallyStep, CreateImageNode,
    CreateMusicNode, CreateTextNode, CreateVideoNode, DeleteNodeStep, FrameConnection,
    GroupNodesStep, ImageBatchConfig, ImageGeneratorConfig, MusicGeneratorConfig,
    PlanMetadata, PlanStep, SourceGoal, TextNodeConfig, Timeline, TimelineClip,
    VideoBatchConfig, VideoGeneratorConfig,
)
from .validation import (
    AutoFix, ChoosePrimaryReference, SetAspectRatio, SetConnectionMode, SetReferenceStrength,
    SetResolution, SetVideoDuration, SwitchImageModel, ValidationResult,
)
from .decision import DecisionIntent, PlanChanges, PlanDecision
from .session import Phase, Session, TurnResult

__all__ = [
    "CamelModel", "ModelCapability", "ModelKind", "TemporalSpec",
    "CanvasContext", "ConnectionMode", "IntentResult", "QuestionOption", "ReferenceStrength",
    "RequirementKey", "RequirementQuestion", "Requirements", "TaskKind", "IMAGE_TASKS", "VIDEO_TASKS",
    "ScenePlan", "ScriptPlan",
    "ApplyPluginStep", "CanvasInstructionPlan", "ConnectSequentiallyStep", "CreateImageNode",
    "CreateMusicNode", "CreateTextNode", "CreateVideoNode", "DeleteNodeStep", "FrameConnection",
    "GroupNodesStep", "ImageBatchConfig", "ImageGeneratorConfig", "MusicGeneratorConfig",
    "PlanMetadata", "PlanStep", "SourceGoal", "TextNodeConfig", "Timeline", "TimelineClip",
    "VideoBatchConfig", "VideoGeneratorConfig",
    "AutoFix", "ChoosePrimaryReference", "SetAspectRatio", "SetConnectionMode", "SetReferenceStrength",
    "SetResolution", "SetVideoDuration", "SwitchImageModel", "ValidationResult",
    "DecisionIntent", "PlanChanges", "PlanDecision",
    "Phase", "Session", "TurnResult",
]
