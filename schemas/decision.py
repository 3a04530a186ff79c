from pydantic import BaseModel, Field
from typing import List, Literal, Optional

DecisionIntent = Literal["EXECUTE", "CANCEL", "EDIT_PLAN", "CLARIFY"]


class PlanChanges(BaseModel):
    model: Optional[str] = None
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    count: Optional[int] = None
    prompt: Optional[str] = None
    duration_seconds: Optional[int] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    def describe(self) -> List[str]:
        labels = {
            "model": "Model",
            "aspect_ratio": "Aspect ratio",
            "resolution": "Resolution",
            "count": "Count",
            "prompt": "Prompt",
            "duration_seconds": "Duration (s)",
        }
        return [f"{labels[k]}: {v}" for k, v in self.model_dump(exclude_none=True).items()]


class PlanDecision(BaseModel):
    """How the user responded to a plan preview."""
    intent: DecisionIntent
    changes: PlanChanges = Field(default_factory=PlanChanges)
    reply: str = ""
