"""
Legacy factor column migration.

Older reference exports carried a factor under up to three names:
'factor', 'value' and 'rate'. The canonical record has only 'factor'.
The resolved factor is the first non-null of factor, value, rate.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pandas as pd

from assessing.data_loader import read_table
from assessing.schemas import LEGACY_FACTOR_COLUMNS

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
  '''
  What migrate_legacy_factors changed.

  Attributes:
    rows: Rows examined
    filled: Rows whose factor came from a legacy column
    conflicts: Rows where legacy columns disagreed with the kept factor
    dropped_columns: Legacy columns removed from the table
  '''
  rows: int = 0
  filled: int = 0
  conflicts: List[Dict[str, Any]] = field(default_factory=list)
  dropped_columns: List[str] = field(default_factory=list)

  @property
  def changed(self) -> bool:
    return bool(self.dropped_columns)

  def to_dict(self) -> Dict[str, Any]:
    return {
        'rows': self.rows,
        'filled': self.filled,
        'conflicts': len(self.conflicts),
        'dropped_columns': list(self.dropped_columns),
    }


def migrate_legacy_factors(
    df: pd.DataFrame) -> Tuple[pd.DataFrame, MigrationReport]:
  """
  Collapse legacy 'value'/'rate' columns into 'factor'.

  Args:
    df: Versions table, possibly with legacy columns

  Returns:
    (migrated copy of df, report). The input is not modified.
  """
  report = MigrationReport(rows=len(df))
  legacy = [c for c in LEGACY_FACTOR_COLUMNS if c in df.columns]
  if not legacy:
    return df, report

  out = df.copy()
  if 'factor' not in out.columns:
    out['factor'] = float('nan')

  original = pd.to_numeric(out['factor'], errors='coerce')
  resolved = original
  for col in legacy:
    resolved = resolved.combine_first(pd.to_numeric(out[col],
                                                    errors='coerce'))
  report.filled = int((original.isna() & resolved.notna()).sum())

  ids = out['version_id'] if 'version_id' in out.columns else out.index
  ids = pd.Series(ids, index=out.index)
  for col in legacy:
    values = pd.to_numeric(out[col], errors='coerce')
    disagree = values.notna() & resolved.notna() & (values != resolved)
    for idx in out.index[disagree]:
      report.conflicts.append({
          'version_id': ids[idx],
          'column': col,
          'legacy_value': float(values[idx]),
          'factor': float(resolved[idx]),
      })

  if report.conflicts:
    logger.warning('%d legacy factor values disagree with the kept factor',
                   len(report.conflicts))
    for conflict in report.conflicts[:10]:
      logger.debug('Conflict: %s', conflict)

  out['factor'] = resolved.astype(float)
  out = out.drop(columns=legacy)
  report.dropped_columns = legacy

  logger.info('Migrated %d rows: %d factors filled from %s', report.rows,
              report.filled, legacy)
  return out, report


def migrate_file(src: Path, dst: Path) -> MigrationReport:
  """
  Migrate a versions table file (parquet or CSV) and write the result.

  Raises:
    FileNotFoundError: If src does not exist
    ValueError: Unsupported file extension
  """
  df = read_table(src)
  migrated, report = migrate_legacy_factors(df)

  dst.parent.mkdir(parents=True, exist_ok=True)
  if dst.suffix == '.parquet':
    migrated.to_parquet(dst, index=False)
  elif dst.suffix == '.csv':
    migrated.to_csv(dst, index=False)
  else:
    raise ValueError(f'Unsupported table format: {dst.suffix} ({dst})')

  logger.info('Wrote %s', dst)
  return report
