"""
Persistence policies.

These policies decide whether a freshly computed valuation is handed to the
assessment writer during a saved (non dry-run) recalculation.
"""

from abc import ABC
from abc import abstractmethod
from typing import Optional

from assessing.domain.types import ComputedValuation
from assessing.domain.types import PolicyOutput


class PersistPolicy(ABC):
  """
  Base class for persistence policies.

  Subclasses implement decide() to return True when the valuation should be
  written.
  """

  @abstractmethod
  def decide(
      self,
      valuation: ComputedValuation,
      stored_total: Optional[float],
  ) -> PolicyOutput[bool]:
    """
    Decide whether to persist a valuation.

    Args:
      valuation: Freshly computed valuation
      stored_total: Total assessed value currently stored (None if never
        stored)

    Returns:
      PolicyOutput with the decision and diagnostics
    """


class ChangedOnly(PersistPolicy):
  """
  Persist only valuations whose total moved.

  A property with no stored total always counts as changed.
  """

  def __init__(self, tolerance: float = 0.0):
    """
    Initialize changed-only policy.

    Args:
      tolerance: Absolute dollar difference treated as unchanged
    """
    self.tolerance = tolerance

  def decide(self, valuation, stored_total):
    changed = valuation.differs_from(stored_total, self.tolerance)
    return PolicyOutput(
        value=changed,
        diag={
            'persist_method': 'changed_only',
            'stored_total': stored_total,
            'computed_total': valuation.total_value,
            'tolerance': self.tolerance,
        })


class AlwaysPersist(PersistPolicy):
  """Persist every computed valuation."""

  def decide(self, valuation, stored_total):
    return PolicyOutput(
        value=True,
        diag={
            'persist_method': 'always',
            'stored_total': stored_total,
            'computed_total': valuation.total_value,
        })
