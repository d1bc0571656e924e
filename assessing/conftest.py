import pytest

from assessing.domain.types import ACREAGE_DISCOUNT
from assessing.domain.types import CURRENT_USE
from assessing.domain.types import ConfigurationCategory
from assessing.domain.types import LAND_LADDER
from assessing.domain.types import LadderPoint
from assessing.domain.types import LandLine
from assessing.domain.types import NEIGHBORHOOD
from assessing.domain.types import PropertyAttributes
from assessing.domain.types import RateLadder
from assessing.domain.types import ScopeKey
from assessing.domain.types import SITE
from assessing.domain.types import TOPOGRAPHY
from assessing.domain.types import WATER_BODY
from assessing.domain.types import WATER_BODY_LADDER
from assessing.domain.types import WATERFRONT_ATTRIBUTE
from assessing.domain.types import ZONE
from assessing.engine.calculator import ValuationCalculator
from assessing.engine.versions import ConfigurationVersionResolver
from assessing.engine.versions import VersionArena

MUNICIPALITY = 'town'
BASE_YEAR = 2024


def _ladder(version_id, kind, key, points, year=BASE_YEAR):
  return RateLadder(version_id, ScopeKey(MUNICIPALITY, kind, key), year,
                    points=tuple(LadderPoint(x, y) for x, y in points))


def _category(version_id, kind, key, year=BASE_YEAR, **kwargs):
  return ConfigurationCategory(version_id, ScopeKey(MUNICIPALITY, kind, key),
                               year, **kwargs)


def _make_reference_records() -> list:
  """Helper to create one year of reference data for the test town."""
  return [
      _category('zone-r1', ZONE, 'R1', attributes={
          'minimum_acreage': 2.0,
          'excess_land_cost_per_acre': 5000.0,
          'frontage_rate': 300.0,
      }),
      _ladder('ladder-r1', LAND_LADDER, 'R1',
              [(1, 50000), (2, 70000), (5, 100000)]),
      # Zone without a land ladder
      _category('zone-c', ZONE, 'C', attributes={'frontage_rate': 500.0}),
      _category('nbhd-n1', NEIGHBORHOOD, 'N1', factor=110.0),
      _category('site-s1', SITE, 'S1', factor=95.0),
      _category('topo-steep', TOPOGRAPHY, 'STEEP', factor=80.0),
      _category('cu-farm', CURRENT_USE, 'FARM', min_rate=100.0,
                max_rate=500.0),
      _category('acreage-discount', ACREAGE_DISCOUNT, None, attributes={
          'minimum_qualifying_acreage': 10.0,
          'maximum_qualifying_acreage': 100.0,
          'maximum_discount_percentage': 50.0,
      }),
      _category('lake', WATER_BODY, 'LAKE', base_value=200000.0),
      _ladder('lake-ladder', WATER_BODY_LADDER, 'LAKE',
              [(50, 80), (100, 100), (200, 120), (500, 150)]),
      # Water body without a ladder
      _category('pond', WATER_BODY, 'POND', base_value=50000.0),
      _category('wf-good', WATERFRONT_ATTRIBUTE, 'GOOD', factor=110.0),
  ]


@pytest.fixture
def reference_arena() -> VersionArena:
  """Version arena holding the test town's 2024 reference data."""
  return VersionArena(_make_reference_records())


@pytest.fixture
def resolver(reference_arena) -> ConfigurationVersionResolver:
  return ConfigurationVersionResolver(reference_arena)


@pytest.fixture
def calculator(resolver) -> ValuationCalculator:
  return ValuationCalculator(resolver)


@pytest.fixture
def make_property():
  """Factory for properties in the test town."""

  def _make(property_id='P1', year=BASE_YEAR, zone_id='R1', land_lines=None,
            **kwargs) -> PropertyAttributes:
    if land_lines is None:
      land_lines = (LandLine(size=2.0),)
    return PropertyAttributes(
        property_id=property_id,
        municipality_id=MUNICIPALITY,
        year=year,
        zone_id=zone_id,
        land_lines=tuple(land_lines),
        **kwargs,
    )

  return _make
