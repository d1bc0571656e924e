'''
Batched recalculation of property valuations.

The orchestrator streams properties from a PropertySource in fixed-size
batches, values each one with the ValuationCalculator and hands the
valuations the persistence policy selects to an AssessmentWriter, one
write per batch.

Failure containment:
  - A property that can not be valued (bad data, missing rate version) is
    recorded on the job as a PropertyCalculationError and the run continues.
  - A collaborator failure (source or writer) is raised as
    InfrastructureError and aborts the remaining batches. Batches written
    before the failure stay written.

Usage:
  orchestrator = RecalculationOrchestrator(calculator, source, writer)
  job = orchestrator.recalculate_affected(scope, 'site', 'site-s1-2025')
  print(job.to_dict())
'''

from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
import dataclasses
import logging
import math
import traceback
from typing import List, Optional, Tuple
import uuid

from assessing.domain.types import ComputedValuation
from assessing.domain.types import ConsistencyReport
from assessing.domain.types import Discrepancy
from assessing.domain.types import PropertyAttributes
from assessing.domain.types import RecalculationJob
from assessing.domain.types import RecalculationScope
from assessing.domain.types import ScopeKey
from assessing.domain.types import ZONE
from assessing.engine.calculator import ValuationCalculator
from assessing.errors import InfrastructureError
from assessing.errors import NotFoundError
from assessing.errors import PropertyCalculationError
from assessing.errors import ValidationError
from assessing.jobs.config import RecalculationConfig
from assessing.jobs.registry import create_persist_policy
from assessing.orchestration.collaborators import AssessmentWriter
from assessing.orchestration.collaborators import CHANGE_TYPES
from assessing.orchestration.collaborators import DependencySelector
from assessing.orchestration.collaborators import PropertySource
from assessing.orchestration.zoning import apply_zone_minimum

logger = logging.getLogger(__name__)

MODE_ALL = 'all'
MODE_AFFECTED = 'affected'
MODE_ZONE_MINIMUMS = 'zone_minimums'

DEFAULT_SAMPLE_SIZE = 100

# (property, valuation, error); exactly one of valuation/error is set
Outcome = Tuple[PropertyAttributes, Optional[ComputedValuation],
                Optional[PropertyCalculationError]]


def with_stored_total(prop: PropertyAttributes) -> PropertyAttributes:
  '''
  Property with stored_total as a float (or None when nothing is stored).

  Raises:
    ValidationError: stored_total is not a finite number
  '''
  stored = prop.stored_total
  if stored is None or (isinstance(stored, float) and math.isfinite(stored)):
    return prop
  try:
    value = float(stored)
  except (TypeError, ValueError) as e:
    raise ValidationError(f'stored_total {stored!r} is not a number') from e
  if isinstance(stored, bool) or not math.isfinite(value):
    raise ValidationError(f'stored_total {stored!r} is not a number')
  return dataclasses.replace(prop, stored_total=value)


class RecalculationOrchestrator:
  '''
  Drive full, change-scoped and zone-minimum recalculation runs.

  Attributes:
    calculator: Values single properties
    source: Property population
    writer: Assessment persistence (None = dry runs only)
    config: Batch, persistence and audit settings
    progress: Optional callback invoked with the job after every batch
  '''

  def __init__(
      self,
      calculator: ValuationCalculator,
      source: PropertySource,
      writer: Optional[AssessmentWriter] = None,
      config: Optional[RecalculationConfig] = None,
      progress: Optional[Callable[[RecalculationJob], None]] = None,
  ):
    self.calculator = calculator
    self.source = source
    self.writer = writer
    self.config = config or RecalculationConfig.default()
    self.progress = progress
    self.persist_policy = create_persist_policy(self.config)

  # Public operations

  def recalculate_all(
      self,
      scope: RecalculationScope,
      batch_size: Optional[int] = None,
      save: Optional[bool] = None,
  ) -> RecalculationJob:
    """
    Recalculate every property in scope.

    Args:
      scope: Population to recalculate
      batch_size: Override config.batch_size
      save: Override config.save (False = dry run)

    Returns:
      Completed RecalculationJob

    Raises:
      InfrastructureError: Source or writer failed; remaining batches are
        not processed
    """
    job = self._new_job(scope, MODE_ALL, batch_size, save)
    logger.info('Recalculating all properties for %s/%d (save=%s)',
                scope.municipality_id, scope.year, job.save)
    return self._run(job, selector=None)

  def recalculate_affected(
      self,
      scope: RecalculationScope,
      change_type: str,
      change_id: str,
      batch_size: Optional[int] = None,
      save: Optional[bool] = None,
  ) -> RecalculationJob:
    """
    Recalculate only the properties that depend on a changed record.

    Args:
      scope: Population to draw from
      change_type: Kind of the changed record (e.g. 'zone', 'site')
      change_id: Version id of the changed record, or its scope key
        (zone id, attribute code, water body id)
      batch_size: Override config.batch_size
      save: Override config.save

    Returns:
      Completed RecalculationJob

    Raises:
      ValueError: Unknown change type, or version id of another kind
      InfrastructureError: Source or writer failed
    """
    if change_type not in CHANGE_TYPES:
      raise ValueError(f"Unknown change type: '{change_type}'. "
                       f'Available: {list(CHANGE_TYPES)}')

    key = self._change_key(change_type, change_id)
    selector = DependencySelector(change_type, key)

    job = self._new_job(scope, MODE_AFFECTED, batch_size, save)
    job.details.update(change_type=change_type, change_id=change_id,
                       change_key=key)
    logger.info('Recalculating properties affected by %s %s (key=%s)',
                change_type, change_id, key)
    return self._run(job, selector=selector)

  def recalculate_with_zone_minimums(
      self,
      scope: RecalculationScope,
      batch_size: Optional[int] = None,
      save: Optional[bool] = None,
  ) -> RecalculationJob:
    """
    Apply zone minimum acreage adjustments, then revalue adjusted properties.

    Adjusted properties are persisted together with their new land lines
    (regardless of the persistence policy) when saving. Properties that
    need no adjustment are counted as skipped.

    Returns:
      Completed RecalculationJob with 'adjusted', 'skipped',
      'excess_acreage_created' and 'acreage_moved' details
    """
    job = self._new_job(scope, MODE_ZONE_MINIMUMS, batch_size, save)
    job.details.update(adjusted=0, skipped=0, excess_acreage_created=0,
                       acreage_moved=0.0)
    logger.info('Applying zone minimum acreage for %s/%d (save=%s)',
                scope.municipality_id, scope.year, job.save)
    return self._run(job, selector=None, adjust_zone_minimums=True)

  def recalculate_property(
      self,
      scope: RecalculationScope,
      property_id: str,
      save: Optional[bool] = None,
  ) -> ComputedValuation:
    """
    Recalculate a single property.

    Errors are raised, not recorded: there is no batch to contain them in.

    Raises:
      NotFoundError: Property not in scope or a rate version missing
      ValidationError: Malformed property data
      InfrastructureError: Source or writer failed
    """
    save = self.config.save if save is None else save
    if save and self.writer is None:
      raise ValueError('save requested but no assessment writer configured')
    prop = self._call_source(self.source.get, scope, property_id)
    prop = with_stored_total(prop)
    valuation = self.calculator.calculate(prop)

    if save:
      decision = self.persist_policy.decide(valuation, prop.stored_total)
      if decision.value:
        self._write(scope, [valuation], None)
    return valuation

  def validate_consistency(
      self,
      scope: RecalculationScope,
      sample_size: int = DEFAULT_SAMPLE_SIZE,
  ) -> ConsistencyReport:
    """
    Compare stored totals with fresh recomputations on a random sample.

    Never writes. Properties with no stored total count as mismatches
    against a stored value of 0.

    Args:
      scope: Population to audit
      sample_size: Maximum number of properties to recompute

    Returns:
      ConsistencyReport
    """
    if sample_size < 0:
      raise ValueError(f'sample_size must be non-negative, got {sample_size}')

    population = self._call_source(self.source.count, scope, None)
    sample = self._call_source(self.source.sample, scope, sample_size,
                               self.config.sample_seed)
    report = ConsistencyReport(scope=scope, population=population,
                               sampled=len(sample))

    for prop, valuation, error in self._compute_batch(sample):
      if error is not None:
        report.errors.append(error)
        continue
      stored = 0.0 if prop.stored_total is None else float(prop.stored_total)
      if valuation.differs_from(stored, self.config.tolerance):
        report.mismatches.append(
            Discrepancy(property_id=prop.property_id, stored=stored,
                        recomputed=valuation.total_value))

    logger.info('Audit %s/%d: sampled %d of %d (%.1f%%), %d mismatches, '
                '%d errors', scope.municipality_id, scope.year,
                report.sampled, population, report.coverage_percent,
                len(report.mismatches), len(report.errors))
    return report

  # Internals

  def _new_job(self, scope, mode, batch_size, save) -> RecalculationJob:
    batch_size = batch_size or self.config.batch_size
    if batch_size < 1:
      raise ValueError(f'batch_size must be positive, got {batch_size}')
    save = self.config.save if save is None else save
    if save and self.writer is None:
      raise ValueError('save requested but no assessment writer configured')
    return RecalculationJob(job_id=uuid.uuid4().hex, scope=scope, mode=mode,
                            batch_size=batch_size, save=save)

  def _change_key(self, change_type: str, change_id: str) -> Optional[str]:
    '''Scope key named by change_id (a version id or the key itself).'''
    arena = self.calculator.resolver.arena
    if change_id not in arena:
      return change_id
    record = arena.get(change_id)
    if record.scope.kind != change_type:
      raise ValueError(
          f'Version {change_id} is a {record.scope.kind} version, '
          f'not {change_type}')
    return record.scope.key

  def _run(
      self,
      job: RecalculationJob,
      selector: Optional[DependencySelector],
      adjust_zone_minimums: bool = False,
  ) -> RecalculationJob:
    scope = job.scope
    job.total = self._call_source(self.source.count, scope, selector)

    for batch_number, batch in enumerate(self._batches(job, selector), 1):
      force = False
      if adjust_zone_minimums:
        batch = self._adjust_batch(job, batch)
        force = True

      to_write: List[ComputedValuation] = []
      written_props: List[PropertyAttributes] = []
      for prop, valuation, error in self._compute_batch(batch):
        if error is not None:
          job.record_failure(error)
          logger.warning('Failed to value %s: %s', prop.property_id,
                         error.message)
          continue

        changed = valuation.differs_from(prop.stored_total)
        job.record_success(changed)
        if job.save and (force or self.persist_policy.decide(
            valuation, prop.stored_total).value):
          to_write.append(valuation)
          written_props.append(prop)

      if to_write:
        job.persisted += self._write(scope, to_write,
                                     written_props if force else None)

      logger.info('Batch %d: %d/%d processed, %d changed, %d failed',
                  batch_number, job.processed, job.total, job.changed,
                  job.failed)
      if self.progress is not None:
        self.progress(job)

    job.mark_completed()
    logger.info('Job %s (%s) complete: %d recalculated, %d changed, '
                '%d persisted, %d failed in %.2fs', job.job_id, job.mode,
                job.recalculated, job.changed, job.persisted, job.failed,
                job.duration_seconds)
    return job

  def _adjust_batch(
      self,
      job: RecalculationJob,
      batch: List[PropertyAttributes],
  ) -> List[PropertyAttributes]:
    resolver = self.calculator.resolver
    adjusted: List[PropertyAttributes] = []
    for prop in batch:
      try:
        zone = None
        if prop.zone_id is not None:
          resolved = resolver.resolve_optional(
              ScopeKey(prop.municipality_id, ZONE, prop.zone_id), prop.year)
          zone = resolved.version if resolved is not None else None
        result = apply_zone_minimum(prop, zone)
      except InfrastructureError:
        raise
      except Exception as e:  # pylint: disable=broad-except
        error = PropertyCalculationError(prop.property_id, str(e), cause=e)
        job.record_failure(error)
        logger.warning('Failed to adjust %s: %s', prop.property_id,
                       error.message)
        continue
      if not result.adjusted:
        job.details['skipped'] += 1
        continue
      job.details['adjusted'] += 1
      job.details['acreage_moved'] += result.acreage_moved
      if result.excess_acreage_created:
        job.details['excess_acreage_created'] += 1
      adjusted.append(result.prop)
    return adjusted

  def _compute_one(self, prop: PropertyAttributes) -> Outcome:
    try:
      prop = with_stored_total(prop)
      return prop, self.calculator.calculate(prop), None
    except InfrastructureError:
      raise
    except Exception as e:  # pylint: disable=broad-except
      logger.debug('%s', traceback.format_exc())
      return prop, None, PropertyCalculationError(prop.property_id, str(e),
                                                  cause=e)

  def _compute_batch(self, batch: List[PropertyAttributes]) -> List[Outcome]:
    if self.config.max_workers > 1 and len(batch) > 1:
      with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
        return list(executor.map(self._compute_one, batch))
    return [self._compute_one(prop) for prop in batch]

  def _batches(self, job: RecalculationJob,
               selector) -> Iterator[List[PropertyAttributes]]:
    iterator = iter(
        self._call_source(self.source.iter_batches, job.scope,
                          job.batch_size, selector))
    while True:
      try:
        batch = next(iterator)
      except StopIteration:
        return
      except InfrastructureError:
        raise
      except Exception as e:
        raise InfrastructureError(f'Property source failed: {e}') from e
      yield list(batch)

  def _call_source(self, fn, *args):
    try:
      return fn(*args)
    except (InfrastructureError, NotFoundError):
      raise
    except Exception as e:
      raise InfrastructureError(f'Property source failed: {e}') from e

  def _write(self, scope, valuations, properties) -> int:
    try:
      written = self.writer.write_batch(scope, valuations, properties)
    except InfrastructureError:
      raise
    except Exception as e:
      raise InfrastructureError(f'Assessment writer failed: {e}') from e
    return len(valuations) if written is None else written
