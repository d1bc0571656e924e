from pathlib import Path
from unittest import mock

import pandas as pd
import pytest

from assessing.data_loader import ReferenceDataLoader
from assessing.data_loader import read_table
from assessing.domain.types import ConfigurationCategory
from assessing.domain.types import RateLadder
from assessing.domain.types import ScopeKey
from assessing.engine.versions import ConfigurationVersionResolver
from assessing.errors import ValidationError

VERSION_COLUMNS = [
    'version_id', 'municipality_id', 'kind', 'key', 'effective_year',
    'effective_year_end', 'factor', 'min_rate', 'max_rate', 'base_value',
    'minimum_acreage', 'excess_land_cost_per_acre'
]


def _versions(rows):
  return pd.DataFrame(rows, columns=VERSION_COLUMNS)


def _write_tables(tmp_path, versions, points):
  versions_path = tmp_path / 'versions.csv'
  points_path = tmp_path / 'ladder_points.csv'
  versions.to_csv(versions_path, index=False)
  points.to_csv(points_path, index=False)
  return ReferenceDataLoader(versions_path=versions_path,
                             points_path=points_path)


@pytest.fixture
def versions_df():
  nan = float('nan')
  return _versions([
      ['lad-21', 'town', 'land_ladder', 'R1', 2021, 2024,
       nan, nan, nan, nan, nan, nan],
      ['lad-24', 'town', 'land_ladder', 'R1', 2024, nan,
       nan, nan, nan, nan, nan, nan],
      ['zone-r1', 'town', 'zone', 'R1', 2021, nan,
       nan, nan, nan, nan, 2.0, 5000.0],
      ['site-01', 'town', 'site', '01', 2021, nan,
       95.0, nan, nan, nan, nan, nan],
      ['cu-farm', 'town', 'current_use', 'FARM', 2024, nan,
       nan, 100.0, 500.0, nan, nan, nan],
  ])


@pytest.fixture
def points_df():
  return pd.DataFrame({
      'version_id': ['lad-21', 'lad-21', 'lad-24', 'lad-24', 'lad-24'],
      'x': [5.0, 1.0, 1.0, 2.0, 5.0],
      'y': [90000.0, 40000.0, 50000.0, 70000.0, 100000.0],
  })


class TestReadTable:
  """Tests for read_table."""

  def test_missing_file(self, tmp_path):
    with pytest.raises(FileNotFoundError, match='Reference table not found'):
      read_table(tmp_path / 'missing.parquet')

  def test_unsupported_format(self, tmp_path):
    path = tmp_path / 'versions.xlsx'
    path.write_text('')
    with pytest.raises(ValueError, match='Unsupported table format'):
      read_table(path)

  def test_csv_keeps_identifier_strings(self, tmp_path, versions_df):
    path = tmp_path / 'versions.csv'
    versions_df.to_csv(path, index=False)
    df = read_table(path)
    assert df.loc[df['version_id'] == 'site-01', 'key'].iloc[0] == '01'


class TestReferenceDataLoader:
  """Tests for ReferenceDataLoader."""

  def test_default_paths(self):
    loader = ReferenceDataLoader()
    assert loader.versions_path == Path('reference/versions.parquet')
    assert loader.points_path == Path('reference/ladder_points.parquet')

  def test_load_versions_caching(self, versions_df):
    """Versions table is cached after first load."""
    loader = ReferenceDataLoader()

    with mock.patch.object(Path, 'exists', return_value=True):
      with mock.patch('pandas.read_parquet',
                      return_value=versions_df) as mock_read:
        first = loader.load_versions()
        second = loader.load_versions()
        assert mock_read.call_count == 1
        pd.testing.assert_frame_equal(first, second)

        loader.clear_cache()
        loader.load_versions()
        assert mock_read.call_count == 2

  def test_build_arena(self, tmp_path, versions_df, points_df):
    loader = _write_tables(tmp_path, versions_df, points_df)
    arena = loader.build_arena()
    assert len(arena) == 5

    ladder = arena.get('lad-21')
    assert isinstance(ladder, RateLadder)
    assert ladder.effective_year_end == 2024
    assert [p.x for p in ladder.points] == [1.0, 5.0]

    zone = arena.get('zone-r1')
    assert isinstance(zone, ConfigurationCategory)
    assert zone.factor is None
    assert zone.attribute('minimum_acreage') == 2.0
    assert zone.attribute('excess_land_cost_per_acre') == 5000.0

    site = arena.get('site-01')
    assert site.scope == ScopeKey('town', 'site', '01')
    assert site.factor == 95.0

    cu = arena.get('cu-farm')
    assert (cu.min_rate, cu.max_rate) == (100.0, 500.0)

  def test_built_arena_resolves(self, tmp_path, versions_df, points_df):
    arena = _write_tables(tmp_path, versions_df, points_df).build_arena()
    resolver = ConfigurationVersionResolver(arena)
    scope = ScopeKey('town', 'land_ladder', 'R1')

    assert resolver.resolve(scope, 2022).version.version_id == 'lad-21'
    assert resolver.resolve(scope, 2026).version.version_id == 'lad-24'

  def test_parquet(self, tmp_path, versions_df, points_df):
    versions_path = tmp_path / 'versions.parquet'
    points_path = tmp_path / 'ladder_points.parquet'
    versions_df.to_parquet(versions_path, index=False)
    points_df.to_parquet(points_path, index=False)

    loader = ReferenceDataLoader(versions_path=versions_path,
                                 points_path=points_path)
    assert len(loader.build_arena()) == 5

  def test_unknown_kind(self, tmp_path, versions_df, points_df):
    versions_df.loc[0, 'kind'] = 'building'
    loader = _write_tables(tmp_path, versions_df, points_df)
    with pytest.raises(ValidationError, match='Unknown reference kinds'):
      loader.load_versions()

  def test_legacy_columns_rejected(self, tmp_path, versions_df, points_df):
    versions_df['value'] = 100.0
    loader = _write_tables(tmp_path, versions_df, points_df)
    with pytest.raises(ValidationError, match='legacy columns'):
      loader.load_versions()

  def test_duplicate_scope_year(self, tmp_path, versions_df, points_df):
    versions_df.loc[1, 'effective_year'] = 2021
    loader = _write_tables(tmp_path, versions_df, points_df)
    with pytest.raises(ValidationError, match='duplicate primary key'):
      loader.load_versions()

  def test_missing_column(self, tmp_path, versions_df, points_df):
    loader = _write_tables(tmp_path, versions_df.drop(columns=['min_rate']),
                           points_df)
    with pytest.raises(ValidationError, match='missing columns'):
      loader.load_versions()

  def test_broken_chain_is_logged(self, tmp_path, versions_df, points_df,
                                  caplog):
    versions_df.loc[0, 'effective_year_end'] = float('nan')
    loader = _write_tables(tmp_path, versions_df, points_df)

    with caplog.at_level('WARNING', logger='assessing.data_loader'):
      arena = loader.build_arena()

    assert len(arena) == 5
    assert '2 open versions' in caplog.text

  def test_ladder_without_points_is_invalid(self, tmp_path, versions_df,
                                            points_df):
    points = points_df[points_df['version_id'] != 'lad-24']
    loader = _write_tables(tmp_path, versions_df, points)
    with pytest.raises(ValidationError):
      loader.build_arena()
