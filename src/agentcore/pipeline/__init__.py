from .context import StepContext, StepFailure
from .executor import PipelineBuilder, StepPipeline, default_break_condition
from .steps import AgentStep, FunctionStep, MapStep, RetryStep, ToolCallingStep

__all__ = [
    "AgentStep",
    "FunctionStep",
    "MapStep",
    "PipelineBuilder",
    "RetryStep",
    "StepContext",
    "StepFailure",
    "StepPipeline",
    "ToolCallingStep",
    "default_break_condition",
]
