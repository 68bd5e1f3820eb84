from buildrelay.engine.arbiter import CompletionArbiter, Settlement
from buildrelay.engine.cancellation import CancellationToken
from buildrelay.engine.framer import LineFramer, frame_lines
from buildrelay.engine.invoker import OperationInvoker, build_environment, relay_pipeline
from buildrelay.engine.parser import BUILD_RULES, SYNC_RULES, ProgressParser, ProgressRule
from buildrelay.engine.registry import OperationRegistry, default_registry
from buildrelay.engine.runner import OperationRunner
from buildrelay.engine.termination import terminate_process_tree

__all__ = [
    "BUILD_RULES",
    "SYNC_RULES",
    "CancellationToken",
    "CompletionArbiter",
    "LineFramer",
    "OperationInvoker",
    "OperationRegistry",
    "OperationRunner",
    "ProgressParser",
    "ProgressRule",
    "Settlement",
    "build_environment",
    "default_registry",
    "frame_lines",
    "relay_pipeline",
    "terminate_process_tree",
]
