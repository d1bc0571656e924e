import dataclasses

import pytest

from assessing.domain.types import ComputedValuation
from assessing.domain.types import ConfigurationCategory
from assessing.domain.types import ConsistencyReport
from assessing.domain.types import Discrepancy
from assessing.domain.types import FRONT_FEET
from assessing.domain.types import PropertyAttributes
from assessing.domain.types import RecalculationJob
from assessing.domain.types import RecalculationScope
from assessing.domain.types import ScopeKey
from assessing.domain.types import VersionedRecord
from assessing.errors import PropertyCalculationError
from assessing.errors import ValidationError

SCOPE = RecalculationScope('town', 2024)


class TestVersionedRecord:
  """Tests for VersionedRecord intervals."""

  def test_effective_interval(self):
    record = VersionedRecord('v', ScopeKey('town', 'site', 'S1'), 2021, 2024)
    assert not record.is_open
    assert not record.is_effective_in(2020)
    assert record.is_effective_in(2021)
    assert record.is_effective_in(2023)
    assert not record.is_effective_in(2024)

  def test_open_version(self):
    record = VersionedRecord('v', ScopeKey('town', 'site', 'S1'), 2021)
    assert record.is_open
    assert record.is_effective_in(2100)

  def test_end_must_follow_start(self):
    with pytest.raises(ValidationError, match='must be after'):
      VersionedRecord('v', ScopeKey('town', 'site', 'S1'), 2021, 2021)

  def test_min_rate_above_max_rate(self):
    with pytest.raises(ValidationError, match='exceeds'):
      ConfigurationCategory('cu', ScopeKey('town', 'current_use', 'FARM'),
                            2024, min_rate=500, max_rate=100)

  def test_scope_key_str(self):
    assert str(ScopeKey('town', 'zone', 'R1')) == 'town/zone/R1'
    assert str(ScopeKey('town', 'acreage_discount')) == 'town/acreage_discount'


class TestPropertyAttributes:
  """Tests for PropertyAttributes.from_dict."""

  def test_from_dict(self):
    prop = PropertyAttributes.from_dict({
        'property_id': 101,
        'municipality_id': 'town',
        'year': '2024',
        'zone_id': 'R1',
        'land_lines': [
            {'size': 2.0},
            {'size': 150.0, 'size_unit': FRONT_FEET, 'condition': 90},
        ],
        'waterfronts': [{'water_body_id': 'LAKE', 'frontage': 100.0}],
    })

    assert prop.property_id == '101'
    assert prop.year == 2024
    assert prop.card == 1
    assert len(prop.land_lines) == 2
    assert prop.land_lines[0].condition == 100.0
    assert prop.land_lines[1].size_unit == FRONT_FEET
    assert prop.waterfronts[0].water_body_id == 'LAKE'
    assert prop.stored_total is None

  def test_missing_required_field(self):
    with pytest.raises(KeyError):
      PropertyAttributes.from_dict({'property_id': 'P1', 'year': 2024})


class TestRecalculationScope:
  """Tests for RecalculationScope.contains."""

  def test_contains(self, make_property):
    assert SCOPE.contains(make_property())
    assert not SCOPE.contains(make_property(year=2023))
    other = dataclasses.replace(make_property(), municipality_id='city')
    assert not SCOPE.contains(other)

  def test_card_filter(self, make_property):
    scope = RecalculationScope('town', 2024, card=2)
    assert scope.contains(make_property(card=2))
    assert not scope.contains(make_property(card=1))


class TestComputedValuation:
  """Tests for ComputedValuation.differs_from."""

  @pytest.mark.parametrize('stored,tolerance,expected', [
      (None, 0.0, True),
      (1000.0, 0.0, False),
      (1000.5, 0.0, True),
      (1000.5, 1.0, False),
      (1002.0, 1.0, True),
  ])
  def test_differs_from(self, stored, tolerance, expected):
    valuation = ComputedValuation('P1', 2024, 1, {}, total_value=1000.0)
    assert valuation.differs_from(stored, tolerance) is expected


class TestRecalculationJob:
  """Tests for RecalculationJob counters and summaries."""

  def test_counters(self):
    job = RecalculationJob('job', SCOPE, 'all', batch_size=10)
    job.record_success(changed=True)
    job.record_success(changed=False)
    job.record_failure(PropertyCalculationError('P3', 'bad'))

    assert job.processed == 3
    assert job.recalculated == 2
    assert (job.changed, job.unchanged, job.failed) == (1, 1, 1)
    assert job.duration_seconds is None

    job.mark_completed()
    assert job.duration_seconds >= 0

  def test_to_dict_truncates_errors(self):
    job = RecalculationJob('job', SCOPE, 'affected', batch_size=10,
                           details={'change_type': 'site'})
    for i in range(15):
      job.record_failure(PropertyCalculationError(f'P{i}', 'bad',
                                                  ValueError('x')))

    summary = job.to_dict()
    assert summary['failed'] == 15
    assert len(summary['errors']) == 10
    assert summary['errors'][0] == {
        'property_id': 'P0',
        'error_type': 'ValueError',
        'message': 'bad',
    }
    assert summary['change_type'] == 'site'
    assert len(job.to_dict(error_limit=None)['errors']) == 15
    assert len(job.errors_frame()) == 15


class TestConsistencyReport:
  """Tests for ConsistencyReport."""

  def test_coverage_and_frame(self):
    report = ConsistencyReport(SCOPE, population=200, sampled=50)
    report.mismatches.append(Discrepancy('P1', 1000.0, 1100.0))
    report.mismatches.append(Discrepancy('P2', 1000.0, 500.0))

    assert report.coverage_percent == pytest.approx(25.0)
    frame = report.to_frame()
    assert frame['property_id'].tolist() == ['P2', 'P1']
    assert frame['delta'].tolist() == [-500.0, 100.0]

  def test_empty_population(self):
    report = ConsistencyReport(SCOPE, population=0)
    assert report.coverage_percent == 0.0
    assert report.to_frame().empty
