"""
Land and waterfront valuation for one property.

The calculator pulls every rate it needs from the version resolver for the
property's assessment year, so a property valued for 2025 with no 2025 rate
changes uses the carried-forward 2024 versions.
Ladders resolve in interval mode, so a closed ladder version does not
cover later years; every other table resolves latest-at-or-before.

Per land line:
  acreage, non-excess: base = land ladder curve at acreage (zone ladder)
  acreage, excess: base = zone excess cost per acre * acreage, less the
    municipality acreage discount
  frontage: base = zone frontage rate * front feet
  market = base * neighborhood * site * driveway * road * topography *
    condition, rounded half-up to the nearest $100
  current use: value = round(rate * acreage) where rate moves linearly from
    min_rate to max_rate with SPI; assessed = current-use value

Per waterfront:
  market = round(water body base value * frontage factor * access *
    topography * location * condition); assessed = 0 when current use
"""

import logging
import math
from collections.abc import Iterable
from numbers import Real
from typing import Any, Dict, List, Optional

from assessing.domain.types import ACREAGE_DISCOUNT
from assessing.domain.types import ACRES
from assessing.domain.types import CURRENT_USE
from assessing.domain.types import ComputedValuation
from assessing.domain.types import DRIVEWAY
from assessing.domain.types import FRONT_FEET
from assessing.domain.types import LADDER_KINDS
from assessing.domain.types import LAND_LADDER
from assessing.domain.types import LandLine
from assessing.domain.types import NEIGHBORHOOD
from assessing.domain.types import PropertyAttributes
from assessing.domain.types import ROAD
from assessing.domain.types import ResolvedVersion
from assessing.domain.types import SITE
from assessing.domain.types import SIZE_UNITS
from assessing.domain.types import ScopeKey
from assessing.domain.types import TOPOGRAPHY
from assessing.domain.types import WATER_BODY
from assessing.domain.types import WATER_BODY_LADDER
from assessing.domain.types import WATERFRONT_ATTRIBUTE
from assessing.domain.types import WaterfrontEntry
from assessing.domain.types import ZONE
from assessing.engine.interpolation import interpolate
from assessing.engine.versions import ConfigurationVersionResolver
from assessing.engine.versions import INTERVAL
from assessing.engine.versions import LATEST_AT_OR_BEFORE
from assessing.errors import NotFoundError
from assessing.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SPI = 50.0


def round_half_up(value: float, step: float = 1.0) -> float:
  """Round to the nearest multiple of step, halves away from zero upward."""
  return math.floor(value / step + 0.5) * step


def modifier_factor(resolved: Optional[ResolvedVersion]) -> float:
  '''Multiplier for a resolved percent factor; absent factors are neutral.'''
  if resolved is None:
    return 1.0
  factor = getattr(resolved.version, 'factor', None)
  if factor is None:
    return 1.0
  return float(factor) / 100


def compute_component(
    attribute_value: float,
    resolved_ladder: Optional[ResolvedVersion],
    resolved_modifiers: Iterable[Optional[ResolvedVersion]] = (),
) -> float:
  """
  Ladder value at attribute_value times every modifier factor.

  Args:
    attribute_value: Acreage or frontage to look up on the ladder
    resolved_ladder: Primary ladder version (required)
    resolved_modifiers: Optional factor versions; None entries count as 1.0

  Returns:
    Unrounded component value

  Raises:
    NotFoundError: No ladder resolved
    ValidationError: Invalid ladder or attribute value
  """
  if resolved_ladder is None:
    raise NotFoundError('No ladder version resolved for component')

  value = interpolate(resolved_ladder.version.points, attribute_value)
  for resolved in resolved_modifiers:
    value *= modifier_factor(resolved)
  return value


def _check_number(value: Any, what: str, allow_negative: bool = False) -> float:
  if isinstance(value, bool) or not isinstance(value, Real):
    raise ValidationError(f'{what} {value!r} is not numeric')
  number = float(value)
  if not math.isfinite(number):
    raise ValidationError(f'{what} {value!r} is not finite')
  if number < 0 and not allow_negative:
    raise ValidationError(f'{what} {value!r} is negative')
  return number


class ValuationCalculator:
  '''
  Compute land and waterfront valuation components for properties.

  Stateless between calls apart from the resolver it reads from, so one
  instance can value many properties (and from several threads).
  '''

  def __init__(self, resolver: ConfigurationVersionResolver):
    self.resolver = resolver

  def calculate(self, prop: PropertyAttributes) -> ComputedValuation:
    """
    Value one property card for its assessment year.

    Args:
      prop: Property attributes

    Returns:
      ComputedValuation whose total_value is the total assessed value

    Raises:
      ValidationError: Malformed property data
      NotFoundError: A required rate version does not exist for the year
    """
    used: List[str] = []
    municipality = prop.municipality_id
    year = prop.year

    def lookup(kind: str, key: Optional[str],
               municipality_wide: bool = False) -> Optional[ResolvedVersion]:
      if key is None and not municipality_wide:
        return None
      mode = INTERVAL if kind in LADDER_KINDS else LATEST_AT_OR_BEFORE
      resolved = self.resolver.resolve_optional(
          ScopeKey(municipality, kind, key), year, mode)
      if resolved is not None and resolved.version.version_id not in used:
        used.append(resolved.version.version_id)
      return resolved

    def require(kind: str, key: Optional[str]) -> ResolvedVersion:
      resolved = lookup(kind, key)
      if resolved is None:
        raise NotFoundError(
            f'No {kind} version for {municipality}/{key} in {year}')
      return resolved

    property_modifiers = [
        lookup(NEIGHBORHOOD, prop.neighborhood_code),
        lookup(SITE, prop.site_code),
        lookup(DRIVEWAY, prop.driveway_code),
        lookup(ROAD, prop.road_code),
    ]

    line_details: List[Dict[str, Any]] = []
    for index, line in enumerate(prop.land_lines):
      line_details.append(
          self._value_land_line(index, line, prop, property_modifiers, lookup,
                                require))

    waterfront_details = [
        self._value_waterfront(index, wf, lookup, require)
        for index, wf in enumerate(prop.waterfronts)
    ]

    components = self._totals(line_details, waterfront_details)
    logger.debug('Valued %s (%d): assessed=%s', prop.property_id, year,
                 components['total_assessed_value'])

    return ComputedValuation(
        property_id=prop.property_id,
        year=year,
        card=prop.card,
        component_values=components,
        total_value=components['total_assessed_value'],
        source_version_ids=tuple(used),
        line_details=line_details + waterfront_details,
    )

  def _value_land_line(self, index, line: LandLine, prop: PropertyAttributes,
                       property_modifiers, lookup, require) -> Dict[str, Any]:
    if line.size_unit not in SIZE_UNITS:
      raise ValidationError(
          f'Land line {index}: unknown size unit {line.size_unit!r}')
    size = _check_number(line.size, f'Land line {index} size')
    condition = (1.0 if line.condition is None else
                 _check_number(line.condition, f'Land line {index} condition')
                 / 100)

    detail: Dict[str, Any] = {
        'kind': 'land',
        'index': index,
        'size': size,
        'size_unit': line.size_unit,
        'land_use_type': line.land_use_type,
        'is_excess_acreage': line.is_excess_acreage,
        'acreage_discount_percent': 0.0,
    }
    acreage = size if line.size_unit == ACRES else 0.0
    frontage = size if line.size_unit == FRONT_FEET else 0.0

    if acreage > 0 or frontage > 0:
      if prop.zone_id is None:
        raise ValidationError(f'Land line {index}: property has no zone')

    if acreage > 0 and line.is_excess_acreage:
      zone = require(ZONE, prop.zone_id).version
      base_rate = zone.attribute('excess_land_cost_per_acre')
      base_value = base_rate * acreage
      discount = lookup(ACREAGE_DISCOUNT, None, municipality_wide=True)
      if discount is not None and base_value:
        percent = self.acreage_discount_percent(discount, acreage)
        detail['acreage_discount_percent'] = percent
        base_value = round_half_up(base_value - base_value * percent / 100)
    elif acreage > 0:
      ladder = require(LAND_LADDER, prop.zone_id)
      base_value = compute_component(acreage, ladder)
      base_rate = base_value / acreage
    elif frontage > 0:
      zone = require(ZONE, prop.zone_id).version
      base_rate = zone.attribute('frontage_rate')
      base_value = base_rate * frontage
    else:
      base_rate = 0.0
      base_value = 0.0

    detail['base_rate'] = base_rate
    detail['base_value'] = base_value

    if base_value == 0:
      detail.update(market_value=0.0, current_use_value=0.0,
                    current_use_credit=0.0, assessed_value=0.0, factors={})
      return detail

    neighborhood, site, driveway, road = (
        modifier_factor(m) for m in property_modifiers)
    factors = {
        'neighborhood': neighborhood,
        'site': site,
        'driveway': driveway,
        'road': road,
        'topography': modifier_factor(lookup(TOPOGRAPHY, line.topography)),
        'condition': condition,
    }
    raw_market = base_value
    for factor in factors.values():
      raw_market *= factor
    market = round_half_up(raw_market, 100)

    detail['factors'] = factors
    detail['raw_market_value'] = raw_market
    detail['market_value'] = market

    category = lookup(CURRENT_USE, line.land_use_type)
    if category is not None:
      cu_value = self.current_use_value(category, acreage, line.spi, index)
      detail['current_use_value'] = cu_value
      detail['current_use_credit'] = market - cu_value
      detail['assessed_value'] = cu_value
    else:
      detail['current_use_value'] = 0.0
      detail['current_use_credit'] = 0.0
      detail['assessed_value'] = market
    return detail

  def _value_waterfront(self, index, wf: WaterfrontEntry, lookup,
                        require) -> Dict[str, Any]:
    frontage = _check_number(wf.frontage, f'Waterfront {index} frontage')
    condition = (1.0 if wf.condition is None else _check_number(
        wf.condition, f'Waterfront {index} condition') / 100)

    body = require(WATER_BODY, wf.water_body_id).version
    if body.base_value is None:
      raise ValidationError(
          f'Water body {wf.water_body_id} ({body.version_id}) has no '
          'base value')
    ladder = lookup(WATER_BODY_LADDER, wf.water_body_id)
    if ladder is None:
      raise NotFoundError(
          f'No water body ladder for {wf.water_body_id} (waterfront {index})')

    # Ladder y values are percents
    frontage_factor = compute_component(frontage, ladder) / 100
    attribute_factor = 1.0
    for code in wf.attribute_codes:
      attribute_factor *= modifier_factor(lookup(WATERFRONT_ATTRIBUTE, code))

    market = round_half_up(
        float(body.base_value) * frontage_factor * attribute_factor * condition)
    return {
        'kind': 'waterfront',
        'index': index,
        'water_body_id': wf.water_body_id,
        'frontage': frontage,
        'base_value': float(body.base_value),
        'frontage_factor': frontage_factor,
        'attribute_factor': attribute_factor,
        'condition': condition,
        'market_value': market,
        'assessed_value': 0.0 if wf.current_use else market,
    }

  @staticmethod
  def acreage_discount_percent(resolved: ResolvedVersion,
                               acreage: float) -> float:
    '''
    Discount percent for excess acreage.

    Zero below the minimum qualifying acreage, the maximum discount at or
    above the maximum qualifying acreage, linear in between (rounded to two
    decimals).
    '''
    settings = resolved.version
    minimum = settings.attribute('minimum_qualifying_acreage')
    maximum = settings.attribute('maximum_qualifying_acreage')
    max_percent = settings.attribute('maximum_discount_percentage')

    if acreage < minimum:
      return 0.0
    if acreage >= maximum:
      return max_percent
    ratio = (acreage - minimum) / (maximum - minimum)
    return round_half_up(ratio * max_percent * 100) / 100

  @staticmethod
  def current_use_value(resolved: ResolvedVersion, acreage: float,
                        spi: Optional[float], index: int = 0) -> float:
    category = resolved.version
    if category.min_rate is None or category.max_rate is None:
      raise ValidationError(
          f'Current use category {category.version_id} needs min_rate and '
          'max_rate')
    spi = DEFAULT_SPI if spi is None else _check_number(
        spi, f'Land line {index} spi', allow_negative=True)
    ratio = min(max(spi / 100, 0.0), 1.0)
    rate = category.min_rate + (category.max_rate - category.min_rate) * ratio
    return round_half_up(rate * acreage)

  @staticmethod
  def _totals(lines: List[Dict[str, Any]],
              waterfronts: List[Dict[str, Any]]) -> Dict[str, float]:
    acreage = sum(d['size'] for d in lines if d['size_unit'] == ACRES)
    frontage = sum(d['size'] for d in lines if d['size_unit'] == FRONT_FEET)
    land_market = sum(d['market_value'] for d in lines)
    cu_value = sum(d['current_use_value'] for d in lines)
    cu_credit = sum(d['current_use_credit'] for d in lines)
    land_assessed = land_market - cu_credit
    wf_market = sum(w['market_value'] for w in waterfronts)
    wf_assessed = sum(w['assessed_value'] for w in waterfronts)

    return {
        'total_acreage': round(acreage, 3),
        'total_frontage': round(frontage, 2),
        'land_market_value': round_half_up(land_market),
        'land_current_use_value': round_half_up(cu_value),
        'land_current_use_credit': round_half_up(cu_credit),
        'land_assessed_value': round_half_up(land_assessed),
        'waterfront_market_value': round_half_up(wf_market),
        'waterfront_assessed_value': round_half_up(wf_assessed),
        'total_market_value': round_half_up(land_market + wf_market),
        'total_assessed_value': round_half_up(land_assessed + wf_assessed),
    }
