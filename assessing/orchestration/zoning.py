"""
Zone minimum acreage adjustment.

Non-excess acreage lines larger than the zone's minimum acreage are cut
back to the minimum; the acreage removed moves to the property's excess
acreage line, which is created from the first contributing line when the
property has none. Applying the adjustment twice changes nothing.
"""

import dataclasses
from dataclasses import dataclass, field
import logging
import math
from numbers import Real
from typing import Any, Dict, List, Optional

from assessing.domain.types import ACRES
from assessing.domain.types import ConfigurationCategory
from assessing.domain.types import LandLine
from assessing.domain.types import PropertyAttributes
from assessing.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ZoneAdjustment:
  '''
  Result of applying the zone minimum to one property.

  Attributes:
    prop: Property with adjusted land lines (the input when unadjusted)
    adjusted: Any land line changed
    excess_acreage_created: A new excess acreage line was added
    acreage_moved: Acres moved to the excess line
    changes: One entry per changed land line
  '''
  prop: PropertyAttributes
  adjusted: bool = False
  excess_acreage_created: bool = False
  acreage_moved: float = 0.0
  changes: List[Dict[str, Any]] = field(default_factory=list)


def apply_zone_minimum(
    prop: PropertyAttributes,
    zone: Optional[ConfigurationCategory],
) -> ZoneAdjustment:
  """
  Move acreage above the zone minimum to an excess acreage line.

  Args:
    prop: Property to adjust
    zone: Zone version for the property year (None = no adjustment)

  Returns:
    ZoneAdjustment; prop is a new PropertyAttributes when adjusted

  Raises:
    ValidationError: An acreage line size is not a finite number
  """
  minimum = zone.attribute('minimum_acreage') if zone is not None else 0.0
  if minimum <= 0:
    return ZoneAdjustment(prop=prop)

  lines = list(prop.land_lines)
  moved = 0.0
  first_contributor: Optional[LandLine] = None
  changes: List[Dict[str, Any]] = []

  for index, line in enumerate(lines):
    if line.is_excess_acreage or line.size_unit != ACRES:
      continue
    if (isinstance(line.size, bool) or not isinstance(line.size, Real) or
        not math.isfinite(line.size)):
      raise ValidationError(
          f'Land line {index}: size {line.size!r} is not a number')
    if line.size <= minimum:
      continue
    excess = line.size - minimum
    moved += excess
    if first_contributor is None:
      first_contributor = line
    lines[index] = dataclasses.replace(line, size=minimum)
    changes.append({
        'index': index,
        'type': 'reduced_to_minimum',
        'original_size': line.size,
        'adjusted_size': minimum,
        'excess_redistributed': excess,
    })

  if moved <= 0:
    return ZoneAdjustment(prop=prop)

  created = False
  excess_index = next(
      (i for i, line in enumerate(lines)
       if line.is_excess_acreage and line.size_unit == ACRES), None)
  if excess_index is not None:
    excess_line = lines[excess_index]
    lines[excess_index] = dataclasses.replace(excess_line,
                                              size=excess_line.size + moved)
    changes.append({
        'index': excess_index,
        'type': 'excess_acreage_updated',
        'original_size': excess_line.size,
        'adjusted_size': excess_line.size + moved,
    })
  else:
    lines.append(
        LandLine(
            size=moved,
            size_unit=ACRES,
            land_use_type=first_contributor.land_use_type,
            topography=first_contributor.topography,
            condition=100.0,
            spi=first_contributor.spi,
            is_excess_acreage=True,
        ))
    created = True
    changes.append({
        'index': len(lines) - 1,
        'type': 'excess_acreage_created',
        'adjusted_size': moved,
    })

  logger.debug('%s: moved %.3f AC above zone minimum %.3f', prop.property_id,
               moved, minimum)
  return ZoneAdjustment(
      prop=dataclasses.replace(prop, land_lines=tuple(lines)),
      adjusted=True,
      excess_acreage_created=created,
      acreage_moved=moved,
      changes=changes,
  )
