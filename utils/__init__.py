from .hf_client import HFClient
from .run_utils import RunManager, PlanOutbox

__all__ = ["HFClient", "RunManager", "PlanOutbox"]
