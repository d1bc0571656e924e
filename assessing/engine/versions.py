'''
Temporal configuration versions and year resolution.

Every version of every reference table lives in a VersionArena keyed by
(scope, effective_year). Which version is "current" for a year is derived
by query (greatest effective_year at or before the year), never by walking
previous/next pointers, so a broken link can not corrupt resolution.

Usage:
  arena = VersionArena()
  arena.add(ConfigurationCategory('cu-2024', scope, 2024, min_rate=10,
                                  max_rate=50))
  resolver = ConfigurationVersionResolver(arena)
  resolved = resolver.resolve(scope, 2025)
  resolved.is_year_locked  # True: 2024 rates carried forward to 2025
'''

import dataclasses
import logging
from collections.abc import Iterable
from typing import Dict, List, Optional, Tuple

from assessing.domain.types import RateLadder
from assessing.domain.types import ResolvedVersion
from assessing.domain.types import ScopeKey
from assessing.domain.types import VersionedRecord
from assessing.engine.interpolation import validate_ladder
from assessing.errors import NotFoundError
from assessing.errors import ValidationError

logger = logging.getLogger(__name__)

LATEST_AT_OR_BEFORE = 'latest-at-or-before'
INTERVAL = 'interval'
RESOLVE_MODES = (LATEST_AT_OR_BEFORE, INTERVAL)


class VersionArena:
  '''
  In-memory store of configuration versions.

  Versions are immutable records; the arena replaces a record only when
  the mutation contract closes it (sets effective_year_end).
  '''

  def __init__(self, records: Optional[Iterable[VersionedRecord]] = None):
    self._by_scope: Dict[ScopeKey, Dict[int, VersionedRecord]] = {}
    self._by_id: Dict[str, VersionedRecord] = {}
    for record in records or ():
      self.add(record)

  def __len__(self) -> int:
    return len(self._by_id)

  def __contains__(self, version_id: object) -> bool:
    return version_id in self._by_id

  def add(self, record: VersionedRecord) -> None:
    '''
    Ingest an existing version as-is.

    Raises:
      ValidationError: Duplicate version id, duplicate (scope, year) or
        invalid ladder points
    '''
    if record.version_id in self._by_id:
      raise ValidationError(f'Duplicate version id {record.version_id}')

    by_year = self._by_scope.setdefault(record.scope, {})
    if record.effective_year in by_year:
      clash = by_year[record.effective_year]
      raise ValidationError(
          f'{record.scope} already has a version for '
          f'{record.effective_year}: {clash.version_id}')

    if isinstance(record, RateLadder):
      try:
        validate_ladder(record.points)
      except ValidationError as e:
        raise ValidationError(f'Ladder {record.version_id}: {e}') from e

    by_year[record.effective_year] = record
    self._by_id[record.version_id] = record

  def create_version(self, record: VersionedRecord) -> VersionedRecord:
    '''
    Add a new version the way an editor must: close, never overwrite.

    The version before the new one (if any) gets effective_year_end set to
    the new effective_year. The new version is closed at the next later
    version's year when one exists, otherwise it is the open version.

    Args:
      record: New version; its effective_year_end is ignored

    Returns:
      The stored record (with effective_year_end filled in)

    Raises:
      ValidationError: A version already exists for that scope and year
    '''
    existing = self._by_scope.get(record.scope, {})
    if record.effective_year in existing:
      raise ValidationError(
          f'{record.scope} already has a version for {record.effective_year}; '
          'historical versions are never edited in place')

    years = sorted(existing)
    earlier = [y for y in years if y < record.effective_year]
    later = [y for y in years if y > record.effective_year]

    new_end = later[0] if later else None
    stored = dataclasses.replace(record, effective_year_end=new_end)
    self.add(stored)

    if earlier:
      prior = existing[earlier[-1]]
      if prior.effective_year_end is None or (prior.effective_year_end >
                                              record.effective_year):
        closed = dataclasses.replace(prior,
                                     effective_year_end=record.effective_year)
        existing[prior.effective_year] = closed
        self._by_id[prior.version_id] = closed
        logger.debug('Closed %s at %d', prior.version_id,
                     record.effective_year)

    logger.info('Created version %s for %s effective %d', stored.version_id,
                record.scope, record.effective_year)
    return stored

  def get(self, version_id: str) -> VersionedRecord:
    try:
      return self._by_id[version_id]
    except KeyError as e:
      raise NotFoundError(f'Unknown version id {version_id}') from e

  def versions(self, scope: ScopeKey) -> List[VersionedRecord]:
    '''All versions of a scope ordered by effective_year.'''
    by_year = self._by_scope.get(scope, {})
    return [by_year[y] for y in sorted(by_year)]

  def scopes(self, municipality_id: str, kind: str) -> List[ScopeKey]:
    return sorted(
        (s for s in self._by_scope
         if s.municipality_id == municipality_id and s.kind == kind),
        key=lambda s: '' if s.key is None else s.key,
    )

  def open_version(self, scope: ScopeKey) -> Optional[VersionedRecord]:
    '''The version with no effective_year_end, if any.'''
    open_versions = [v for v in self.versions(scope) if v.is_open]
    return open_versions[-1] if open_versions else None

  def previous_version(
      self, record: VersionedRecord) -> Optional[VersionedRecord]:
    earlier = [
        v for v in self.versions(record.scope)
        if v.effective_year < record.effective_year
    ]
    return earlier[-1] if earlier else None

  def next_version(self, record: VersionedRecord) -> Optional[VersionedRecord]:
    later = [
        v for v in self.versions(record.scope)
        if v.effective_year > record.effective_year
    ]
    return later[0] if later else None

  def chain_issues(self, scope: ScopeKey) -> List[str]:
    '''
    Describe violations of the version chain invariants for a scope.

    Checks that exactly one version is open and that no version's interval
    runs past the start of the next version.
    '''
    versions = self.versions(scope)
    issues: List[str] = []
    if not versions:
      return issues

    open_count = sum(1 for v in versions if v.is_open)
    if open_count != 1:
      issues.append(f'{scope}: {open_count} open versions (expected 1)')

    for prev, cur in zip(versions, versions[1:]):
      if prev.effective_year_end is None or (prev.effective_year_end >
                                             cur.effective_year):
        issues.append(
            f'{scope}: {prev.version_id} overlaps {cur.version_id} '
            f'(end={prev.effective_year_end}, next start={cur.effective_year})')
    return issues


class ConfigurationVersionResolver:
  '''
  Resolve the applicable configuration version for an assessment year.

  Modes:
    latest-at-or-before: greatest effective_year <= requested year
    interval: as above, restricted to versions whose effective_year_end is
      unset or later than the requested year
  '''

  def __init__(self, arena: VersionArena):
    self.arena = arena

  def resolve(
      self,
      scope: ScopeKey,
      requested_year: int,
      mode: str = LATEST_AT_OR_BEFORE,
  ) -> ResolvedVersion:
    '''
    Resolve scope for requested_year.

    Args:
      scope: Lineage to resolve
      requested_year: Assessment year
      mode: 'latest-at-or-before' or 'interval'

    Returns:
      ResolvedVersion; is_inherited is True when the version was authored
      for an earlier year

    Raises:
      NotFoundError: No version applies
      ValueError: Unknown mode
    '''
    resolved = self.resolve_optional(scope, requested_year, mode)
    if resolved is None:
      raise NotFoundError(
          f'No {scope.kind} version for {scope} in {requested_year} '
          f'(mode={mode})')
    return resolved

  def resolve_optional(
      self,
      scope: ScopeKey,
      requested_year: int,
      mode: str = LATEST_AT_OR_BEFORE,
  ) -> Optional[ResolvedVersion]:
    '''Same as resolve() but returns None when nothing applies.'''
    if mode not in RESOLVE_MODES:
      raise ValueError(f"Unknown resolve mode: '{mode}'. "
                       f'Available: {list(RESOLVE_MODES)}')

    candidates = [
        v for v in self.arena.versions(scope)
        if v.effective_year <= requested_year
    ]
    if mode == INTERVAL:
      candidates = [v for v in candidates if v.is_effective_in(requested_year)]

    if not candidates:
      logger.debug('No version for %s in %d (%s)', scope, requested_year, mode)
      return None

    version = candidates[-1]
    return ResolvedVersion(version=version,
                           effective_year=version.effective_year,
                           requested_year=requested_year)

  def resolve_all(
      self,
      municipality_id: str,
      kind: str,
      requested_year: int,
      mode: str = LATEST_AT_OR_BEFORE,
  ) -> Dict[Optional[str], ResolvedVersion]:
    '''
    Resolve every scope of a kind for a year.

    Returns:
      Mapping of scope key to resolved version; scopes with no applicable
      version are left out
    '''
    result: Dict[Optional[str], ResolvedVersion] = {}
    for scope in self.arena.scopes(municipality_id, kind):
      resolved = self.resolve_optional(scope, requested_year, mode)
      if resolved is not None:
        result[scope.key] = resolved
    return result

  def is_year_locked(self, scope: ScopeKey, requested_year: int) -> bool:
    '''
    True if the data shown for requested_year was authored earlier.

    Raises:
      NotFoundError: No version applies
    '''
    return self.resolve(scope, requested_year).is_year_locked

  def available_years(self, scope: ScopeKey) -> Tuple[int, ...]:
    return tuple(v.effective_year for v in self.arena.versions(scope))
