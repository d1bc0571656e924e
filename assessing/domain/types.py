'''
Domain types for the assessing engine.

These dataclasses provide typed interfaces between the engine components,
so the calculator and orchestrator never depend on raw database documents
or DataFrame columns.
'''

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar

import pandas as pd

from assessing.errors import PropertyCalculationError
from assessing.errors import ValidationError

T = TypeVar('T')

ACRES = 'AC'
FRONT_FEET = 'FF'
SIZE_UNITS = (ACRES, FRONT_FEET)

# Reference table kinds
LAND_LADDER = 'land_ladder'
WATER_BODY_LADDER = 'water_body_ladder'
ZONE = 'zone'
NEIGHBORHOOD = 'neighborhood'
SITE = 'site'
DRIVEWAY = 'driveway'
ROAD = 'road'
TOPOGRAPHY = 'topography'
CURRENT_USE = 'current_use'
WATER_BODY = 'water_body'
WATERFRONT_ATTRIBUTE = 'waterfront_attribute'
ACREAGE_DISCOUNT = 'acreage_discount'

LADDER_KINDS = (LAND_LADDER, WATER_BODY_LADDER)
CATEGORY_KINDS = (
    ZONE,
    NEIGHBORHOOD,
    SITE,
    DRIVEWAY,
    ROAD,
    TOPOGRAPHY,
    CURRENT_USE,
    WATER_BODY,
    WATERFRONT_ATTRIBUTE,
    ACREAGE_DISCOUNT,
)


def _utc_now() -> datetime:
  return datetime.now(timezone.utc)


@dataclass
class PolicyOutput(Generic[T]):
  '''
  Standard output from any policy.

  Attributes:
    value: The decision or computed value
    diag: Dictionary of diagnostic information
  '''
  value: T
  diag: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LadderPoint:
  '''
  One breakpoint of a rate ladder.

  Attributes:
    x: Independent variable (acreage, frontage)
    y: Dependent value (total land value, frontage factor)
  '''
  x: float
  y: float


@dataclass(frozen=True)
class ScopeKey:
  '''
  Identifies the lineage a configuration version belongs to.

  Attributes:
    municipality_id: Owning municipality
    kind: Reference table kind (e.g. 'land_ladder', 'zone', 'site')
    key: Owning sub-entity (zone id, water body id, attribute code) or None
      for municipality-wide records
  '''
  municipality_id: str
  kind: str
  key: Optional[str] = None

  def __str__(self) -> str:
    if self.key is None:
      return f'{self.municipality_id}/{self.kind}'
    return f'{self.municipality_id}/{self.kind}/{self.key}'


@dataclass(frozen=True)
class VersionedRecord:
  '''
  A temporally-versioned configuration record.

  Attributes:
    version_id: Unique id of this version
    scope: Lineage the version belongs to
    effective_year: First assessment year the version applies to
    effective_year_end: First year the version no longer applies to
      (None = open/current version)
  '''
  version_id: str
  scope: ScopeKey
  effective_year: int
  effective_year_end: Optional[int] = None

  def __post_init__(self):
    end = self.effective_year_end
    if end is not None and end <= self.effective_year:
      raise ValidationError(
          f'Version {self.version_id}: effective_year_end {end} must be '
          f'after effective_year {self.effective_year}')

  @property
  def is_open(self) -> bool:
    return self.effective_year_end is None

  def is_effective_in(self, year: int) -> bool:
    '''True if the version's [start, end) interval covers year.'''
    if self.effective_year > year:
      return False
    return self.effective_year_end is None or self.effective_year_end > year


@dataclass(frozen=True)
class RateLadder(VersionedRecord):
  '''
  Breakpoint/value pairs for one version of a ladder.

  Land ladders map acreage to total land value; water body ladders map
  frontage to a frontage factor in percent.
  '''
  points: Tuple[LadderPoint, ...] = ()

  @property
  def sorted_points(self) -> Tuple[LadderPoint, ...]:
    return tuple(sorted(self.points, key=lambda p: p.x))


@dataclass(frozen=True)
class ConfigurationCategory(VersionedRecord):
  '''
  A scoped rate/category record (zone, site attribute, current-use code...).

  Attributes:
    factor: Multiplier in percent (100 = neutral)
    min_rate: Lower bound of a rate range (current-use categories)
    max_rate: Upper bound of a rate range (current-use categories)
    base_value: Base dollar value (water bodies)
    attributes: Other numeric settings, e.g. 'minimum_acreage',
      'excess_land_cost_per_acre', 'frontage_rate'
  '''
  factor: Optional[float] = None
  min_rate: Optional[float] = None
  max_rate: Optional[float] = None
  base_value: Optional[float] = None
  attributes: Mapping[str, float] = field(default_factory=dict)

  def __post_init__(self):
    super().__post_init__()
    if (self.min_rate is not None and self.max_rate is not None and
        self.min_rate > self.max_rate):
      raise ValidationError(
          f'Version {self.version_id}: min_rate {self.min_rate} exceeds '
          f'max_rate {self.max_rate}')

  def attribute(self, name: str, default: float = 0.0) -> float:
    value = self.attributes.get(name)
    return default if value is None else float(value)


@dataclass(frozen=True)
class ResolvedVersion:
  '''
  Result of resolving a scope for a requested year.

  Attributes:
    version: The applicable version
    effective_year: Year the version was authored for
    requested_year: Year that was asked for
  '''
  version: VersionedRecord
  effective_year: int
  requested_year: int

  @property
  def is_inherited(self) -> bool:
    '''Version was authored for an earlier year and carried forward.'''
    return self.effective_year < self.requested_year

  @property
  def is_year_locked(self) -> bool:
    '''Editors must create a new version instead of editing this one.'''
    return self.is_inherited


@dataclass(frozen=True)
class LandLine:
  '''
  One land line of a property's land assessment.

  Attributes:
    size: Acres (size_unit 'AC') or front feet (size_unit 'FF')
    size_unit: 'AC' or 'FF'
    land_use_type: Land use code, may name a current-use category
    topography: Topography attribute code
    condition: Condition in percent (100 = neutral)
    spi: Soil productivity index in percent (current-use land)
    is_excess_acreage: Valued at the zone's excess rate, not the ladder
  '''
  size: float
  size_unit: str = ACRES
  land_use_type: Optional[str] = None
  topography: Optional[str] = None
  condition: float = 100.0
  spi: Optional[float] = None
  is_excess_acreage: bool = False

  @classmethod
  def from_dict(cls, data: Mapping[str, Any]) -> 'LandLine':
    return cls(
        size=data['size'],
        size_unit=data.get('size_unit', ACRES),
        land_use_type=data.get('land_use_type'),
        topography=data.get('topography'),
        condition=data.get('condition', 100.0),
        spi=data.get('spi'),
        is_excess_acreage=bool(data.get('is_excess_acreage', False)),
    )


@dataclass(frozen=True)
class WaterfrontEntry:
  '''
  One waterfront attached to a property.

  Attributes:
    water_body_id: Water body whose ladder and base value apply
    frontage: Front feet on the water body
    access_code: Waterfront access attribute code
    topography_code: Waterfront topography attribute code
    location_code: Waterfront location attribute code
    condition: Condition in percent
    current_use: Assessed value is zero when set
  '''
  water_body_id: str
  frontage: float
  access_code: Optional[str] = None
  topography_code: Optional[str] = None
  location_code: Optional[str] = None
  condition: float = 100.0
  current_use: bool = False

  @property
  def attribute_codes(self) -> Tuple[Optional[str], ...]:
    return (self.access_code, self.topography_code, self.location_code)

  @classmethod
  def from_dict(cls, data: Mapping[str, Any]) -> 'WaterfrontEntry':
    return cls(
        water_body_id=str(data['water_body_id']),
        frontage=data['frontage'],
        access_code=data.get('access_code'),
        topography_code=data.get('topography_code'),
        location_code=data.get('location_code'),
        condition=data.get('condition', 100.0),
        current_use=bool(data.get('current_use', False)),
    )


@dataclass(frozen=True)
class PropertyAttributes:
  '''
  Physical attributes of one property card for one assessment year.

  Attributes:
    property_id: Property identifier
    municipality_id: Owning municipality
    year: Assessment year
    card: Card number on the property
    zone_id: Zone the property belongs to
    neighborhood_code: Neighborhood code
    site_code: Site attribute code
    driveway_code: Driveway attribute code
    road_code: Road attribute code
    land_lines: Land lines in entry order
    waterfronts: Waterfront entries
    stored_total: Total assessed value currently stored, if any
  '''
  property_id: str
  municipality_id: str
  year: int
  card: int = 1
  zone_id: Optional[str] = None
  neighborhood_code: Optional[str] = None
  site_code: Optional[str] = None
  driveway_code: Optional[str] = None
  road_code: Optional[str] = None
  land_lines: Tuple[LandLine, ...] = ()
  waterfronts: Tuple[WaterfrontEntry, ...] = ()
  stored_total: Optional[float] = None

  @classmethod
  def from_dict(cls, data: Mapping[str, Any]) -> 'PropertyAttributes':
    '''Create from a plain dictionary (e.g. one JSON record).'''
    return cls(
        property_id=str(data['property_id']),
        municipality_id=str(data['municipality_id']),
        year=int(data['year']),
        card=int(data.get('card', 1)),
        zone_id=data.get('zone_id'),
        neighborhood_code=data.get('neighborhood_code'),
        site_code=data.get('site_code'),
        driveway_code=data.get('driveway_code'),
        road_code=data.get('road_code'),
        land_lines=tuple(
            LandLine.from_dict(line) for line in data.get('land_lines', [])),
        waterfronts=tuple(
            WaterfrontEntry.from_dict(wf)
            for wf in data.get('waterfronts', [])),
        stored_total=data.get('stored_total'),
    )

  def to_dict(self) -> Dict[str, Any]:
    '''Convert to dictionary.'''
    return asdict(self)


@dataclass(frozen=True)
class RecalculationScope:
  '''
  The population a recalculation run covers.

  Attributes:
    municipality_id: Municipality whose properties are recalculated
    year: Assessment year
    card: Restrict to one card number (None = all cards)
  '''
  municipality_id: str
  year: int
  card: Optional[int] = None

  def contains(self, prop: PropertyAttributes) -> bool:
    if prop.municipality_id != self.municipality_id or prop.year != self.year:
      return False
    return self.card is None or prop.card == self.card


@dataclass
class ComputedValuation:
  '''
  Valuation produced for one property by a single calculation call.

  Attributes:
    property_id: Property identifier
    year: Assessment year
    card: Card number
    component_values: Named totals (land, waterfront, market, assessed...)
    total_value: Total assessed value
    source_version_ids: Ids of every configuration version used
    line_details: Per land line base value, factors and values
    calculated_at: When the calculation ran
  '''
  property_id: str
  year: int
  card: int
  component_values: Dict[str, float]
  total_value: float
  source_version_ids: Tuple[str, ...] = ()
  line_details: List[Dict[str, Any]] = field(default_factory=list)
  calculated_at: datetime = field(default_factory=_utc_now)

  def differs_from(self,
                   stored: Optional[float],
                   tolerance: float = 0.0) -> bool:
    '''True if stored total is missing or further than tolerance away.'''
    if stored is None:
      return True
    return abs(self.total_value - float(stored)) > tolerance


@dataclass
class RecalculationJob:
  '''
  Transient descriptor of one recalculation run.

  Created at invocation start, mutated while batches are processed and
  returned to the caller as the run summary.

  Attributes:
    job_id: Run identifier
    scope: Population covered
    mode: 'all', 'affected', 'zone_minimums'
    batch_size: Properties per batch
    save: Whether writes were enabled
    total: Properties selected for the run
    processed: Properties attempted
    recalculated: Properties computed successfully
    changed: Computed total differs from the stored total
    unchanged: Computed total matches the stored total
    persisted: Valuations handed to the writer
    failed: Properties whose calculation failed
    errors: Per-property failures
    details: Mode-specific extra counters
  '''
  job_id: str
  scope: RecalculationScope
  mode: str
  batch_size: int
  save: bool = True
  total: int = 0
  processed: int = 0
  recalculated: int = 0
  changed: int = 0
  unchanged: int = 0
  persisted: int = 0
  failed: int = 0
  errors: List[PropertyCalculationError] = field(default_factory=list)
  details: Dict[str, Any] = field(default_factory=dict)
  started_at: datetime = field(default_factory=_utc_now)
  completed_at: Optional[datetime] = None

  def record_success(self, changed: bool) -> None:
    self.processed += 1
    self.recalculated += 1
    if changed:
      self.changed += 1
    else:
      self.unchanged += 1

  def record_failure(self, error: PropertyCalculationError) -> None:
    self.processed += 1
    self.failed += 1
    self.errors.append(error)

  def mark_completed(self) -> None:
    self.completed_at = _utc_now()

  @property
  def duration_seconds(self) -> Optional[float]:
    if self.completed_at is None:
      return None
    return (self.completed_at - self.started_at).total_seconds()

  def to_dict(self, error_limit: Optional[int] = 10) -> Dict[str, Any]:
    '''
    Convert to summary dictionary.

    Args:
      error_limit: Maximum number of error entries to include
        (None = all of them)
    '''
    errors = self.errors if error_limit is None else self.errors[:error_limit]
    result = {
        'job_id': self.job_id,
        'municipality_id': self.scope.municipality_id,
        'year': self.scope.year,
        'mode': self.mode,
        'batch_size': self.batch_size,
        'save': self.save,
        'total': self.total,
        'processed': self.processed,
        'recalculated': self.recalculated,
        'changed': self.changed,
        'unchanged': self.unchanged,
        'persisted': self.persisted,
        'failed': self.failed,
        'errors': [e.to_dict() for e in errors],
        'started_at': self.started_at.isoformat(),
        'completed_at':
            self.completed_at.isoformat() if self.completed_at else None,
        'duration_seconds': self.duration_seconds,
    }
    result.update(self.details)
    return result

  def errors_frame(self) -> pd.DataFrame:
    '''All recorded errors as a DataFrame.'''
    return pd.DataFrame(
        [e.to_dict() for e in self.errors],
        columns=['property_id', 'error_type', 'message'],
    )


@dataclass(frozen=True)
class Discrepancy:
  '''Stored total that no longer matches a fresh recomputation.'''
  property_id: str
  stored: float
  recomputed: float

  @property
  def delta(self) -> float:
    return self.recomputed - self.stored

  def to_dict(self) -> Dict[str, Any]:
    return {
        'property_id': self.property_id,
        'stored': self.stored,
        'recomputed': self.recomputed,
        'delta': self.delta,
    }


@dataclass
class ConsistencyReport:
  '''
  Result of a read-only consistency audit.

  Attributes:
    scope: Population audited
    population: Number of properties in scope
    sampled: Number of properties recomputed
    mismatches: Properties whose stored total differs from recomputation
    errors: Sampled properties that could not be recomputed
  '''
  scope: RecalculationScope
  population: int
  sampled: int = 0
  mismatches: List[Discrepancy] = field(default_factory=list)
  errors: List[PropertyCalculationError] = field(default_factory=list)

  @property
  def coverage_percent(self) -> float:
    if self.population <= 0:
      return 0.0
    return self.sampled / self.population * 100

  def to_dict(self) -> Dict[str, Any]:
    return {
        'municipality_id': self.scope.municipality_id,
        'year': self.scope.year,
        'population': self.population,
        'sampled': self.sampled,
        'coverage_percent': self.coverage_percent,
        'mismatches': [m.to_dict() for m in self.mismatches],
        'errors': [e.to_dict() for e in self.errors],
    }

  def to_frame(self) -> pd.DataFrame:
    '''Mismatches as a DataFrame, largest absolute delta first.'''
    df = pd.DataFrame(
        [m.to_dict() for m in self.mismatches],
        columns=['property_id', 'stored', 'recomputed', 'delta'],
    )
    if df.empty:
      return df
    order = df['delta'].abs().sort_values(ascending=False).index
    return df.loc[order].reset_index(drop=True)
