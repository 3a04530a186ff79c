import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from schemas import CanvasInstructionPlan

class RunManager:
    def __init__(self, base_dir: str = "runs"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def create_run(self, run_id: Optional[str] = None) -> Path:
        if not run_id:
            run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        run_dir = self.base_dir / run_id
        run_dir.mkdir(exist_ok=True)
        return run_dir

    def save_json(self, run_dir: Path, filename: str, data: dict):
        with open(run_dir / filename, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

class PlanOutbox:
    """Hands approved plans to the canvas engine as runs/<run_id>/plan.json."""

    def __init__(self, base_dir: str = "runs"):
        self.runs = RunManager(base_dir)

    def write(self, plan: CanvasInstructionPlan, session_id: str = "") -> Path:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        run_id = f"{stamp}_{session_id}" if session_id else f"{stamp}_{plan.id[-8:]}"
        run_dir = self.runs.create_run(run_id)
        self.runs.save_json(run_dir, "plan.json", plan.to_engine_payload())
        return run_dir / "plan.json"
