"""
Caching loader for reference data tables.

Reads configuration versions and ladder points from parquet or CSV files,
validates them against their schemas and builds a VersionArena.

Usage:
  loader = ReferenceDataLoader(
      versions_path=Path('reference/versions.parquet'),
      points_path=Path('reference/ladder_points.parquet'),
  )
  arena = loader.build_arena()
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from assessing.domain.types import CATEGORY_KINDS
from assessing.domain.types import ConfigurationCategory
from assessing.domain.types import LADDER_KINDS
from assessing.domain.types import LadderPoint
from assessing.domain.types import RateLadder
from assessing.domain.types import ScopeKey
from assessing.domain.types import VersionedRecord
from assessing.engine.versions import VersionArena
from assessing.errors import ValidationError
from assessing.schemas import ATTRIBUTE_COLUMNS
from assessing.schemas import DatasetSchema
from assessing.schemas import LADDER_POINTS_SCHEMA
from assessing.schemas import VERSIONS_SCHEMA
from assessing.schemas import validate_schema

logger = logging.getLogger(__name__)

# Identifier columns read as strings from CSV so '01' stays '01'
_ID_COLUMNS = ('version_id', 'municipality_id', 'kind', 'key')


def read_table(path: Path) -> pd.DataFrame:
  """
  Read a parquet or CSV table.

  Raises:
    FileNotFoundError: If path does not exist
    ValueError: Unsupported file extension
  """
  if not path.exists():
    raise FileNotFoundError(f'Reference table not found: {path}')

  if path.suffix == '.parquet':
    return pd.read_parquet(path)
  if path.suffix == '.csv':
    return pd.read_csv(path, dtype={c: str for c in _ID_COLUMNS})
  raise ValueError(f'Unsupported table format: {path.suffix} ({path})')


def _optional_float(value: Any) -> Optional[float]:
  return None if pd.isna(value) else float(value)


def _optional_str(value: Any) -> Optional[str]:
  if pd.isna(value) or value == '':
    return None
  return str(value)


class ReferenceDataLoader:
  """
  Cached loader for versioned reference data.

  Loads and caches:
  - Configuration versions (one row per version)
  - Ladder points (one row per breakpoint)

  This avoids repeated file I/O when one process runs several jobs.
  """

  def __init__(
      self,
      versions_path: Path = Path('reference/versions.parquet'),
      points_path: Path = Path('reference/ladder_points.parquet'),
  ):
    """
    Initialize data loader.

    Args:
      versions_path: Path to the configuration versions table
      points_path: Path to the ladder points table
    """
    self.versions_path = versions_path
    self.points_path = points_path

    self._versions: Optional[pd.DataFrame] = None
    self._points: Optional[pd.DataFrame] = None

  def load_versions(self) -> pd.DataFrame:
    """
    Load and cache the configuration versions table.

    Raises:
      FileNotFoundError: If the table does not exist
      ValidationError: Schema violation or legacy factor columns
    """
    if self._versions is not None:
      return self._versions

    versions = self._load(self.versions_path, VERSIONS_SCHEMA)
    unknown = set(versions['kind']) - set(LADDER_KINDS) - set(CATEGORY_KINDS)
    if unknown:
      raise ValidationError(f'Unknown reference kinds: {sorted(unknown)}')

    self._versions = versions
    return versions

  def load_points(self) -> pd.DataFrame:
    """
    Load and cache the ladder points table.

    Raises:
      FileNotFoundError: If the table does not exist
      ValidationError: Schema violation
    """
    if self._points is not None:
      return self._points

    self._points = self._load(self.points_path, LADDER_POINTS_SCHEMA)
    return self._points

  def clear_cache(self) -> None:
    """Clear all cached data."""
    self._versions = None
    self._points = None

  def build_records(self) -> List[VersionedRecord]:
    """Convert the loaded tables to version records."""
    versions = self.load_versions()
    points = self.load_points()

    points_by_version: Dict[str, List[Tuple[float, float]]] = {}
    for row in points.itertuples(index=False):
      points_by_version.setdefault(str(row.version_id), []).append(
          (float(row.x), float(row.y)))

    records: List[VersionedRecord] = []
    for row in versions.to_dict('records'):
      records.append(self._to_record(row, points_by_version))

    orphans = set(points_by_version) - set(versions['version_id'].astype(str))
    if orphans:
      logger.warning('Ignoring ladder points for %d unknown versions: %s',
                     len(orphans), sorted(orphans)[:5])
    return records

  def build_arena(self) -> VersionArena:
    """
    Build a VersionArena from the loaded tables.

    Broken version chains (more than one open version, overlapping
    intervals) are logged, not rejected: resolution only depends on
    effective years.

    Raises:
      ValidationError: Invalid ladder, duplicate version or bad row
    """
    records = self.build_records()
    arena = VersionArena(records)
    scopes = {record.scope for record in records}
    for scope in sorted(scopes, key=str):
      for issue in arena.chain_issues(scope):
        logger.warning('Version chain: %s', issue)

    logger.info('Loaded %d configuration versions across %d scopes',
                len(arena), len(scopes))
    return arena

  @staticmethod
  def _load(path: Path, schema: DatasetSchema) -> pd.DataFrame:
    df = read_table(path)
    validate_schema(df, schema)
    logger.debug('Loaded %s: %d rows from %s', schema.name, len(df), path)
    return df

  @staticmethod
  def _to_record(row: Dict[str, Any],
                 points_by_version: Dict[str, List[Tuple[float, float]]]
                ) -> VersionedRecord:
    version_id = str(row['version_id'])
    scope = ScopeKey(
        municipality_id=str(row['municipality_id']),
        kind=str(row['kind']),
        key=_optional_str(row['key']),
    )
    end = row['effective_year_end']
    common = {
        'version_id': version_id,
        'scope': scope,
        'effective_year': int(row['effective_year']),
        'effective_year_end': None if pd.isna(end) else int(end),
    }

    if scope.kind in LADDER_KINDS:
      pairs = points_by_version.get(version_id, [])
      return RateLadder(
          points=tuple(LadderPoint(x, y) for x, y in sorted(pairs)), **common)

    attributes = {
        name: float(row[name])
        for name in ATTRIBUTE_COLUMNS
        if name in row and not pd.isna(row[name])
    }
    return ConfigurationCategory(
        factor=_optional_float(row['factor']),
        min_rate=_optional_float(row['min_rate']),
        max_rate=_optional_float(row['max_rate']),
        base_value=_optional_float(row['base_value']),
        attributes=attributes,
        **common,
    )
