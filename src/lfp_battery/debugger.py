"""
Solver Debugger
===============

Records the steps taken by the request solver (power iterations,
current/SoC limit corrections, commits) for debugging and verification.

Tracing is off by default. Install a debugger to record steps:

    from src.lfp_battery.debugger import SolverDebugger, set_debugger

    debugger = SolverDebugger()
    set_debugger(debugger)
    battery.power_request(-100.0, 60.0)
    print(debugger.get_report())
    set_debugger(None)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class SolverStep:
    """A single solver step with its inputs and result."""
    category: str           # e.g., "Power", "CurrentLimit", "SocLimit", "Commit"
    description: str        # Human-readable description
    variables: Dict[str, Any]
    result: Any
    result_name: str
    result_unit: str = ""
    iteration: Optional[int] = None
    comment: str = ""


class SolverDebugger:
    """
    Collects SolverStep records grouped into sections (one per request).

    Usage:
        debugger = SolverDebugger()
        debugger.start(battery="2S1P")
        debugger.start_section("power_request(-6.4 W, 3600 s)")
        debugger.add_step(
            category="Power",
            description="Fixed-point power iteration",
            variables={"I": -2.0, "V": 3.2},
            result=-6.4,
            result_name="P",
            result_unit="W",
            iteration=0,
        )
        print(debugger.get_report())
    """

    def __init__(self, max_steps: Optional[int] = None):
        """
        Parameters:
        ----------
        max_steps : int, optional
            Stop recording after this many steps (long simulations can
            produce millions of iterations). None records everything.
        """
        self.max_steps = max_steps
        self.steps: List[SolverStep] = []
        self.sections: List[tuple] = []  # (index, section_name)
        self.dropped = 0
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.metadata: dict = {}

    def clear(self):
        """Clear all recorded steps."""
        self.steps = []
        self.sections = []
        self.dropped = 0
        self.start_time = None
        self.end_time = None
        self.metadata = {}

    def start(self, **metadata):
        """Start a new debugging session."""
        self.clear()
        self.start_time = datetime.now()
        self.metadata = metadata

    def finish(self):
        """Finish the debugging session."""
        self.end_time = datetime.now()

    def start_section(self, name: str):
        """Start a new section (typically one request)."""
        self.sections.append((len(self.steps), name))

    def add_step(
        self,
        category: str,
        description: str,
        variables: Dict[str, Any],
        result: Any,
        result_name: str,
        result_unit: str = "",
        iteration: Optional[int] = None,
        comment: str = ""
    ):
        """Add a solver step."""
        if self.max_steps is not None and len(self.steps) >= self.max_steps:
            self.dropped += 1
            return
        self.steps.append(SolverStep(
            category=category,
            description=description,
            variables=dict(variables),
            result=result,
            result_name=result_name,
            result_unit=result_unit,
            iteration=iteration,
            comment=comment,
        ))

    @staticmethod
    def _format_value(value: Any) -> str:
        if isinstance(value, float):
            return f"{value:.6g}"
        return str(value)

    def get_report(self, include_sections: bool = True) -> str:
        """
        Generate a formatted text report of all recorded steps.

        Parameters:
        ----------
        include_sections : bool
            Include section headers in the report

        Returns:
        -------
        str
            Formatted solver trace
        """
        lines = ["=" * 70, "SOLVER DEBUG REPORT", "=" * 70]

        if self.start_time:
            lines.append(f"Generated: {self.start_time.strftime('%Y-%m-%d %H:%M:%S')}")
        for key, value in self.metadata.items():
            lines.append(f"  {key}: {value}")
        lines.append("")

        section_indices = {idx: name for idx, name in self.sections}

        for i, step in enumerate(self.steps):
            if include_sections and i in section_indices:
                lines.append(f">>> {section_indices[i]}")

            prefix = f"[{step.category}"
            if step.iteration is not None:
                prefix += f" #{step.iteration}"
            prefix += "]"
            inputs = ", ".join(
                f"{name}={self._format_value(value)}" for name, value in step.variables.items()
            )
            result = f"{step.result_name} = {self._format_value(step.result)}"
            if step.result_unit:
                result += f" {step.result_unit}"

            lines.append(f"{prefix} {step.description}")
            if inputs:
                lines.append(f"    Inputs: {inputs}")
            lines.append(f"    => {result}")
            if step.comment:
                lines.append(f"    // {step.comment}")

        lines.append("=" * 70)
        lines.append(f"Total Steps: {len(self.steps)}")
        if self.dropped:
            lines.append(f"Dropped Steps: {self.dropped}")
        if self.start_time and self.end_time:
            elapsed = (self.end_time - self.start_time).total_seconds()
            lines.append(f"Elapsed Time: {elapsed:.3f} seconds")
        lines.append("=" * 70)

        return "\n".join(lines)

    def get_step_count(self) -> int:
        """Return the number of recorded steps."""
        return len(self.steps)

    def find_steps_by_category(self, category: str) -> List[SolverStep]:
        """Find all steps in a given category."""
        return [s for s in self.steps if s.category == category]

    def find_step_by_result(self, result_name: str) -> Optional[SolverStep]:
        """Find the most recent step that produced a specific result."""
        for step in reversed(self.steps):
            if step.result_name == result_name:
                return step
        return None


# Global debugger instance, None while tracing is disabled
_debugger: Optional[SolverDebugger] = None


def get_debugger() -> Optional[SolverDebugger]:
    """Get the installed debugger (None if tracing is disabled)."""
    return _debugger


def set_debugger(debugger: Optional[SolverDebugger]):
    """Install a debugger, or disable tracing with None."""
    global _debugger
    _debugger = debugger


def debug_section(name: str):
    """Start a section in the installed debugger (if any)."""
    if _debugger is not None:
        _debugger.start_section(name)


def debug_step(
    category: str,
    description: str,
    variables: Dict[str, Any],
    result: Any,
    result_name: str,
    result_unit: str = "",
    iteration: Optional[int] = None,
    comment: str = ""
):
    """Add a step to the installed debugger (if any)."""
    if _debugger is not None:
        _debugger.add_step(
            category=category,
            description=description,
            variables=variables,
            result=result,
            result_name=result_name,
            result_unit=result_unit,
            iteration=iteration,
            comment=comment,
        )
