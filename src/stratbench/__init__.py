"""
stratbench - Resumable strategy benchmarking.

Run interchangeable strategies against a fixed scenario catalog, keep every
trial in a crash-safe ledger, pick up where you left off.
"""

from stratbench.engine import ExecutionEngine, TargetState
from stratbench.ledger import ResultLedger, load_completed_counts
from stratbench.plan import build_run_plan
from stratbench.summary import summarize

__version__ = "0.1.0"
__all__ = [
    "ExecutionEngine",
    "ResultLedger",
    "TargetState",
    "__version__",
    "build_run_plan",
    "load_completed_counts",
    "summarize",
]
