import uuid
from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional

from .decision import PlanChanges
from .plan import CanvasInstructionPlan
from .requirements import CanvasContext, RequirementQuestion, Requirements
from .script import ScriptPlan
from .validation import ValidationResult


class Phase(str, Enum):
    IDLE = "IDLE"
    COLLECTING_REQUIREMENTS = "COLLECTING_REQUIREMENTS"
    SCRIPT_REVIEW = "SCRIPT_REVIEW"
    GRAPH_PREVIEW = "GRAPH_PREVIEW"
    EDIT_CONFIRMATION = "EDIT_CONFIRMATION"


class Session(BaseModel):
    """All conversation state for one chat; passed into and returned from every turn."""
    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
    phase: Phase = Phase.IDLE
    requirements: Optional[Requirements] = None
    pending_questions: List[RequirementQuestion] = Field(default_factory=list)
    current_question_index: int = 0
    script_plan: Optional[ScriptPlan] = None
    script_frozen: bool = Field(default=False, description="Scenes were supplied by the user; edits never rescale or regenerate them")
    graph_plan: Optional[CanvasInstructionPlan] = None
    validation: Optional[ValidationResult] = None
    pending_edit: Optional[PlanChanges] = None
    context: CanvasContext = Field(default_factory=CanvasContext)
    turn: int = Field(default=0, description="Incremented on every handled message; stale results are dropped")

    @property
    def current_question(self) -> Optional[RequirementQuestion]:
        if 0 <= self.current_question_index < len(self.pending_questions):
            return self.pending_questions[self.current_question_index]
        return None


class TurnResult(BaseModel):
    session: Session
    reply: str
    plan_to_execute: Optional[CanvasInstructionPlan] = Field(None, description="Set once, on the turn the user approves execution")
