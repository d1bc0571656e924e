"""
Table schemas for reference data files.
"""
from dataclasses import dataclass
from typing import Optional

import pandas as pd

from assessing.errors import ValidationError


@dataclass
class ColumnSpec:
  """Column specification."""
  name: str
  dtype: str
  nullable: bool = True
  unique: bool = False
  description: str = ''


@dataclass
class DatasetSchema:
  """Schema for a dataset."""
  name: str
  columns: list[ColumnSpec]
  primary_key: Optional[list[str]] = None
  description: str = ''

  @property
  def column_names(self) -> list[str]:
    return [c.name for c in self.columns]


# Numeric settings carried in ConfigurationCategory.attributes
ATTRIBUTE_COLUMNS = (
    'minimum_acreage',
    'excess_land_cost_per_acre',
    'frontage_rate',
    'minimum_qualifying_acreage',
    'maximum_qualifying_acreage',
    'maximum_discount_percentage',
)

# Dual-field names replaced by 'factor'; see assessing.migration
LEGACY_FACTOR_COLUMNS = ('value', 'rate')

VERSIONS_SCHEMA = DatasetSchema(
    name='configuration_versions',
    columns=[
        ColumnSpec('version_id', 'str', nullable=False, unique=True),
        ColumnSpec('municipality_id', 'str', nullable=False),
        ColumnSpec('kind', 'str', nullable=False,
                   description='Reference table kind, e.g. zone, site'),
        ColumnSpec('key', 'str',
                   description='Owning sub-entity; empty = municipality-wide'),
        ColumnSpec('effective_year', 'int', nullable=False),
        ColumnSpec('effective_year_end', 'int'),
        ColumnSpec('factor', 'float', description='Percent, 100 = neutral'),
        ColumnSpec('min_rate', 'float'),
        ColumnSpec('max_rate', 'float'),
        ColumnSpec('base_value', 'float'),
    ],
    primary_key=['municipality_id', 'kind', 'key', 'effective_year'],
    description='One row per configuration version',
)

LADDER_POINTS_SCHEMA = DatasetSchema(
    name='ladder_points',
    columns=[
        ColumnSpec('version_id', 'str', nullable=False),
        ColumnSpec('x', 'float', nullable=False),
        ColumnSpec('y', 'float', nullable=False),
    ],
    primary_key=['version_id', 'x'],
    description='Breakpoints of ladder versions',
)


def validate_schema(df: pd.DataFrame, schema: DatasetSchema) -> None:
  """
  Validate DataFrame against schema.

  Raises:
    ValidationError: Missing or legacy columns, nulls in a non-nullable
      column, duplicate unique values or primary keys
  """
  legacy = [c for c in LEGACY_FACTOR_COLUMNS if c in df.columns]
  if legacy and 'factor' in schema.column_names:
    raise ValidationError(
        f'{schema.name}: legacy columns {legacy} present; run '
        '"python -m assessing.run migrate" first')

  missing = [c.name for c in schema.columns if c.name not in df.columns]
  if missing:
    raise ValidationError(f'{schema.name}: missing columns: {missing}')

  for col_spec in schema.columns:
    if not col_spec.nullable:
      null_count = int(df[col_spec.name].isna().sum())
      if null_count > 0:
        raise ValidationError(
            f'{schema.name}: column {col_spec.name} is not nullable but has '
            f'{null_count} null values')
    if col_spec.unique and df[col_spec.name].duplicated().any():
      raise ValidationError(
          f'{schema.name}: column {col_spec.name} has duplicate values')

  if not schema.primary_key:
    return

  duplicates = df.duplicated(subset=schema.primary_key, keep=False)
  if duplicates.any():
    n_dups = int(duplicates.sum())
    raise ValidationError(
        f'{schema.name}: duplicate primary key {schema.primary_key}: '
        f'{n_dups} rows')
