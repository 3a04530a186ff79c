from pydantic import BaseModel, Field
from typing import List, Optional


class ScenePlan(BaseModel):
    scene: int = Field(..., ge=1, description="1-based position in the script")
    prompt: str
    duration_seconds: int = Field(..., gt=0)


class ScriptPlan(BaseModel):
    """Produced by the script planner, reviewed by the user, consumed by the plan synthesizer."""
    script: str = ""
    scenes: List[ScenePlan]
    style: Optional[str] = None

    @property
    def total_seconds(self) -> int:
        return sum(s.duration_seconds for s in self.scenes)
