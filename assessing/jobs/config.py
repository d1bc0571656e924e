"""
Recalculation job configuration.

RecalculationConfig is a serializable (JSON-friendly) configuration class
that specifies batch sizing, persistence behavior and auditing parameters
for recalculation runs.
"""

from dataclasses import asdict
from dataclasses import dataclass
import json
from typing import Any, Optional


@dataclass
class RecalculationConfig:
  """
  Configuration for a recalculation run.

  Policy fields are strings that map to factories in the registry, so the
  config can be stored alongside run summaries for reproducibility.

  Attributes:
    name: Human-readable configuration name
    batch_size: Properties per batch
    save: Persist valuations (False = dry run)
    persist_policy: Persistence policy name (e.g., 'changed_only', 'always')
    tolerance: Dollar difference treated as consistent when auditing
    error_sample_limit: Error entries kept in run summaries
    max_workers: Threads per batch (1 = sequential)
    sample_seed: Seed for audit sampling (None = random)
  """
  name: str = 'default'
  batch_size: int = 500
  save: bool = True
  persist_policy: str = 'changed_only'
  tolerance: float = 1.0
  error_sample_limit: int = 10
  max_workers: int = 1
  sample_seed: Optional[int] = None

  def __post_init__(self):
    if self.batch_size < 1:
      raise ValueError(f'batch_size must be positive, got {self.batch_size}')
    if self.max_workers < 1:
      raise ValueError(f'max_workers must be positive, got {self.max_workers}')
    if self.tolerance < 0:
      raise ValueError(f'tolerance must be non-negative, got {self.tolerance}')

  @classmethod
  def default(cls) -> 'RecalculationConfig':
    """
    Create default configuration.

    Uses:
      - 500 properties per batch
      - Persist only valuations whose total changed
      - $1 audit tolerance
      - Sequential processing
    """
    return cls(
        name='default',
        batch_size=500,
        save=True,
        persist_policy='changed_only',
        tolerance=1.0,
    )

  @classmethod
  def dry_run(cls) -> 'RecalculationConfig':
    """Compute and count without writing anything."""
    return cls(
        name='dry_run',
        batch_size=500,
        save=False,
        persist_policy='changed_only',
        tolerance=1.0,
    )

  @classmethod
  def force_persist(cls) -> 'RecalculationConfig':
    """Write every computed valuation, changed or not."""
    return cls(
        name='force_persist',
        batch_size=500,
        save=True,
        persist_policy='always',
        tolerance=1.0,
    )

  def to_dict(self) -> dict[str, Any]:
    """Convert to dictionary."""
    return asdict(self)

  def to_json(self) -> str:
    """Serialize to JSON string."""
    return json.dumps(self.to_dict(), indent=2)

  @classmethod
  def from_dict(cls, data: dict[str, Any]) -> 'RecalculationConfig':
    """Create from dictionary."""
    return cls(**data)

  @classmethod
  def from_json(cls, json_str: str) -> 'RecalculationConfig':
    """Create from JSON string."""
    return cls.from_dict(json.loads(json_str))
