"""Phase sequence and transition rules for generation jobs.

Phases advance strictly forward, one at a time:

  queued -> analyzing -> structuring -> writing -> optimizing -> finalizing -> completed

`error` is reachable from every non-terminal phase; `completed` and `error` are terminal.
A phase may be skipped only when the deployment lists it as skippable and the worker
has determined its work is a no-op for the request at hand.

The decision function `next_phase` is pure so retry and fallback policies can be tested
without a store or network.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from article_engine.jobs.models import JobPhase, JobStatus

PHASE_ORDER: tuple[JobPhase, ...] = ("queued", "analyzing", "structuring", "writing", "optimizing", "finalizing", "completed")
TERMINAL_PHASES: frozenset[str] = frozenset({"completed", "error"})

PHASE_FLOORS: dict[str, int] = {
  "queued": 0,
  "analyzing": 15,
  "structuring": 30,
  "writing": 60,
  "optimizing": 80,
  "finalizing": 95,
  "completed": 100,
}

PHASE_STEPS: dict[str, str] = {
  "queued": "Job queued for processing",
  "analyzing": "Analyzing topic and requirements",
  "structuring": "Building article structure",
  "writing": "Generating article content",
  "optimizing": "Optimizing content for search",
  "finalizing": "Creating article in database",
  "completed": "Generation completed successfully",
}


class IllegalPhaseTransitionError(Exception):
  """Raised when a transition would move a job backwards or out of a terminal phase."""

  def __init__(self, current: str, target: str) -> None:
    super().__init__(f"Illegal phase transition {current} -> {target}")
    self.current = current
    self.target = target


@dataclass(frozen=True)
class PhaseSucceeded:
  """The current phase finished its work."""


@dataclass(frozen=True)
class PhaseFailed:
  """The current phase failed and the job must stop."""

  reason: str
  message: str


@dataclass(frozen=True)
class PhaseCancelled:
  """A cancellation request was observed at a phase boundary."""


PhaseOutcome = PhaseSucceeded | PhaseFailed | PhaseCancelled


def is_terminal(phase: str) -> bool:
  return phase in TERMINAL_PHASES


def phase_index(phase: str) -> int:
  """Return the position of a phase in the forward sequence."""
  if phase == "error":
    raise ValueError("The error phase has no position in the forward sequence.")
  try:
    return PHASE_ORDER.index(phase)  # type: ignore[arg-type]
  except ValueError as exc:
    raise ValueError(f"Unknown phase: {phase}") from exc


def status_for_phase(phase: str) -> JobStatus:
  """Map a fine-grained phase onto the coarse lifecycle status."""
  if phase == "queued":
    return "pending"
  if phase == "completed":
    return "ready"
  if phase == "error":
    return "failed"
  return "generating"


def floor_percentage(phase: str) -> int:
  return PHASE_FLOORS.get(phase, 0)


def progress_for_phase(phase: str, current_percentage: int) -> int:
  """Return the percentage to persist when entering a phase; never lower than before."""
  if phase == "error":
    return current_percentage
  return min(max(current_percentage, floor_percentage(phase)), 100)


def following_phase(current: str, skip: Iterable[str] = ()) -> JobPhase:
  """Return the next phase after `current`, passing over skipped phases."""
  skipped = frozenset(skip)
  index = phase_index(current)
  for candidate in PHASE_ORDER[index + 1 :]:
    # Completion is never skippable.
    if candidate == "completed" or candidate not in skipped:
      return candidate
  raise IllegalPhaseTransitionError(current, "<end>")


def next_phase(current: str, outcome: PhaseOutcome, *, skip: Iterable[str] = ()) -> JobPhase:
  """Decide the phase a job moves to after `outcome` is observed in `current`."""
  if is_terminal(current):
    raise IllegalPhaseTransitionError(current, "<any>")

  if isinstance(outcome, (PhaseFailed, PhaseCancelled)):
    return "error"

  return following_phase(current, skip)


def validate_transition(current: str, target: str, *, skip: Iterable[str] = ()) -> None:
  """Raise when moving from `current` to `target` breaks forward-only progression."""
  if is_terminal(current):
    raise IllegalPhaseTransitionError(current, target)

  if target == "error":
    return

  if target != following_phase(current, skip):
    raise IllegalPhaseTransitionError(current, target)
