'''
Read and persistence collaborators for recalculation runs.

The property store and the assessment store live outside this package. The
orchestrator talks to them only through PropertySource and AssessmentWriter;
in-memory implementations back the CLI and the tests.

DependencySelector names which properties depend on a changed reference
record, so change-scoped runs touch the minimal affected subset.
'''

from abc import ABC
from abc import abstractmethod
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
import dataclasses
import logging
import random
from typing import Dict, List, Optional

from assessing.domain.types import ACREAGE_DISCOUNT
from assessing.domain.types import ACRES
from assessing.domain.types import ComputedValuation
from assessing.domain.types import CURRENT_USE
from assessing.domain.types import DRIVEWAY
from assessing.domain.types import LAND_LADDER
from assessing.domain.types import NEIGHBORHOOD
from assessing.domain.types import PropertyAttributes
from assessing.domain.types import ROAD
from assessing.domain.types import RecalculationScope
from assessing.domain.types import SITE
from assessing.domain.types import TOPOGRAPHY
from assessing.domain.types import WATER_BODY
from assessing.domain.types import WATER_BODY_LADDER
from assessing.domain.types import WATERFRONT_ATTRIBUTE
from assessing.domain.types import ZONE
from assessing.errors import NotFoundError

logger = logging.getLogger(__name__)

# Change types a change-scoped recalculation understands
CHANGE_TYPES = (
    ZONE,
    LAND_LADDER,
    NEIGHBORHOOD,
    SITE,
    DRIVEWAY,
    ROAD,
    TOPOGRAPHY,
    CURRENT_USE,
    WATER_BODY,
    WATER_BODY_LADDER,
    WATERFRONT_ATTRIBUTE,
    ACREAGE_DISCOUNT,
)

_PROPERTY_CODE_FIELDS = {
    NEIGHBORHOOD: 'neighborhood_code',
    SITE: 'site_code',
    DRIVEWAY: 'driveway_code',
    ROAD: 'road_code',
}


@dataclass(frozen=True)
class DependencySelector:
  '''
  Selects the properties that depend on one reference record.

  Attributes:
    change_type: Kind of the changed record (e.g. 'zone', 'site')
    key: Scope key of the changed record (zone id, code, water body id);
      None for municipality-wide records
  '''
  change_type: str
  key: Optional[str] = None

  def __post_init__(self):
    if self.change_type not in CHANGE_TYPES:
      raise ValueError(f"Unknown change type: '{self.change_type}'. "
                       f'Available: {list(CHANGE_TYPES)}')

  def matches(self, prop: PropertyAttributes) -> bool:
    kind = self.change_type
    if kind in (ZONE, LAND_LADDER):
      return prop.zone_id == self.key
    if kind in _PROPERTY_CODE_FIELDS:
      return getattr(prop, _PROPERTY_CODE_FIELDS[kind]) == self.key
    if kind == TOPOGRAPHY:
      return any(line.topography == self.key for line in prop.land_lines)
    if kind == CURRENT_USE:
      return any(line.land_use_type == self.key for line in prop.land_lines)
    if kind in (WATER_BODY, WATER_BODY_LADDER):
      return any(wf.water_body_id == self.key for wf in prop.waterfronts)
    if kind == WATERFRONT_ATTRIBUTE:
      return any(self.key in wf.attribute_codes for wf in prop.waterfronts)
    # ACREAGE_DISCOUNT
    return any(line.is_excess_acreage and line.size_unit == ACRES
               for line in prop.land_lines)


class PropertySource(ABC):
  """
  Read access to the property population.

  Implementations raise whatever their backend raises; the orchestrator
  wraps those errors into InfrastructureError.
  """

  @abstractmethod
  def count(self,
            scope: RecalculationScope,
            selector: Optional[DependencySelector] = None) -> int:
    """Number of properties in scope (matching selector when given)."""

  @abstractmethod
  def iter_batches(
      self,
      scope: RecalculationScope,
      batch_size: int,
      selector: Optional[DependencySelector] = None,
  ) -> Iterator[List[PropertyAttributes]]:
    """
    Yield properties in scope in batches of at most batch_size.

    Iteration order must be stable between calls over unchanged data.
    """

  @abstractmethod
  def get(self, scope: RecalculationScope,
          property_id: str) -> PropertyAttributes:
    """
    Fetch one property.

    Raises:
      NotFoundError: Property not in scope
    """

  @abstractmethod
  def sample(self,
             scope: RecalculationScope,
             size: int,
             seed: Optional[int] = None) -> List[PropertyAttributes]:
    """Up to size properties drawn at random from scope."""


class AssessmentWriter(ABC):
  """Persistence of computed valuations."""

  @abstractmethod
  def write_batch(
      self,
      scope: RecalculationScope,
      valuations: Sequence[ComputedValuation],
      properties: Optional[Sequence[PropertyAttributes]] = None,
  ) -> int:
    """
    Persist one batch of valuations in a single round-trip.

    Args:
      scope: Population the batch belongs to
      valuations: Valuations to store
      properties: Property attributes to store alongside (same order as
        valuations); set when a run changed the attributes themselves

    Returns:
      Number of valuations written
    """


class InMemoryPropertySource(PropertySource):
  """PropertySource over a list of PropertyAttributes, in insertion order."""

  def __init__(self, properties: Iterable[PropertyAttributes] = ()):
    self._properties: Dict[tuple, PropertyAttributes] = {}
    for prop in properties:
      self.put(prop)

  def __len__(self) -> int:
    return len(self._properties)

  def put(self, prop: PropertyAttributes) -> None:
    '''Insert or replace a property card.'''
    self._properties[(prop.property_id, prop.card)] = prop

  def all(self) -> List[PropertyAttributes]:
    return list(self._properties.values())

  def find(self, property_id: str, card: int = 1) -> PropertyAttributes:
    try:
      return self._properties[(property_id, card)]
    except KeyError as e:
      raise NotFoundError(
          f'Property {property_id} card {card} not found') from e

  def _select(self, scope, selector=None) -> List[PropertyAttributes]:
    return [
        p for p in self._properties.values()
        if scope.contains(p) and (selector is None or selector.matches(p))
    ]

  def count(self, scope, selector=None):
    return len(self._select(scope, selector))

  def iter_batches(self, scope, batch_size, selector=None):
    selected = self._select(scope, selector)
    for start in range(0, len(selected), batch_size):
      yield selected[start:start + batch_size]

  def get(self, scope, property_id):
    for prop in self._select(scope):
      if prop.property_id == property_id:
        return prop
    raise NotFoundError(f'Property {property_id} not found in '
                        f'{scope.municipality_id}/{scope.year}')

  def sample(self, scope, size, seed=None):
    selected = self._select(scope)
    if size >= len(selected):
      return selected
    return random.Random(seed).sample(selected, size)


class InMemoryAssessmentWriter(AssessmentWriter):
  '''
  AssessmentWriter that keeps valuations in a dict.

  When given a source, writes are reflected back into it (stored_total and,
  when passed, the property attributes), so a later run sees them the way a
  database-backed source would.
  '''

  def __init__(self, source: Optional[InMemoryPropertySource] = None):
    self.source = source
    self.written: Dict[tuple, ComputedValuation] = {}
    self.write_calls = 0

  def write_batch(self, scope, valuations, properties=None):
    self.write_calls += 1
    if properties is not None and len(properties) != len(valuations):
      raise ValueError('properties must align with valuations')

    for i, valuation in enumerate(valuations):
      self.written[(valuation.property_id, valuation.card)] = valuation
      if self.source is None:
        continue
      if properties is not None:
        prop = properties[i]
      else:
        prop = self.source.find(valuation.property_id, valuation.card)
      self.source.put(
          dataclasses.replace(prop, stored_total=valuation.total_value))

    logger.debug('Wrote %d valuations for %s/%d', len(valuations),
                 scope.municipality_id, scope.year)
    return len(valuations)
