from .core.errors import WorkflowError
from .workflow.graph import run, run_async
from .workflow.stages import Collaborators
from .workflow.state import RunResult, WorkflowOptions

__all__ = ["Collaborators", "RunResult", "WorkflowError", "WorkflowOptions", "run", "run_async"]
