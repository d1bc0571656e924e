'''
Recalculation and audit entrypoint.

Loads versioned reference tables and a JSON property file, then runs one
of the orchestrator operations:

  recalculate  Recalculate every property in a municipality/year
  affected     Recalculate properties that depend on one changed record
  audit        Recompute a random sample and compare with stored totals
  migrate      Rewrite a legacy versions table with a single factor column

Example:
  python -m assessing.run recalculate \\
      --versions reference/versions.parquet \\
      --points reference/ladder_points.parquet \\
      --properties properties.json \\
      --municipality town --year 2025 \\
      --output valuations.csv

  python -m assessing.run affected --change-type site --change-id site-s1 \\
      --municipality town --year 2025 --dry-run ...

  python -m assessing.run migrate --src legacy/versions.csv \\
      --dst reference/versions.parquet

Property files hold a JSON list of objects with property_id,
municipality_id, year, zone_id, land_lines and so on
(see PropertyAttributes.from_dict).
'''

import argparse
import dataclasses
import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional

import pandas as pd

from assessing.data_loader import ReferenceDataLoader
from assessing.domain.types import ComputedValuation
from assessing.domain.types import PropertyAttributes
from assessing.domain.types import RecalculationScope
from assessing.engine.calculator import ValuationCalculator
from assessing.engine.versions import ConfigurationVersionResolver
from assessing.jobs.config import RecalculationConfig
from assessing.migration import migrate_file
from assessing.orchestration.collaborators import CHANGE_TYPES
from assessing.orchestration.collaborators import InMemoryAssessmentWriter
from assessing.orchestration.collaborators import InMemoryPropertySource
from assessing.orchestration.recalculation import DEFAULT_SAMPLE_SIZE
from assessing.orchestration.recalculation import RecalculationOrchestrator

logger = logging.getLogger(__name__)

PRESETS = {
    'default': RecalculationConfig.default,
    'dry_run': RecalculationConfig.dry_run,
    'force_persist': RecalculationConfig.force_persist,
}


def load_properties(path: Path) -> List[PropertyAttributes]:
  '''Load properties from a JSON list.'''
  if not path.exists():
    raise FileNotFoundError(f'Property file not found: {path}')

  with open(path, encoding='utf-8') as f:
    data = json.load(f)
  if not isinstance(data, list):
    raise ValueError(f'{path}: expected a JSON list of properties')
  return [PropertyAttributes.from_dict(item) for item in data]


def save_properties(properties: Iterable[PropertyAttributes],
                    path: Path) -> None:
  '''Write properties (with updated stored totals) back as a JSON list.'''
  path.parent.mkdir(parents=True, exist_ok=True)
  with open(path, 'w', encoding='utf-8') as f:
    json.dump([p.to_dict() for p in properties], f, indent=2)


def valuations_frame(valuations: Iterable[ComputedValuation]) -> pd.DataFrame:
  '''One row per valuation: identifiers, component values, total.'''
  rows = []
  for v in valuations:
    row = {'property_id': v.property_id, 'year': v.year, 'card': v.card}
    row.update(v.component_values)
    row['total_value'] = v.total_value
    row['source_version_ids'] = ','.join(v.source_version_ids)
    rows.append(row)
  return pd.DataFrame(rows)


def write_frame(df: pd.DataFrame, path: Path) -> None:
  '''Write a DataFrame as CSV or parquet, by extension.'''
  path.parent.mkdir(parents=True, exist_ok=True)
  if path.suffix == '.parquet':
    df.to_parquet(path, index=False)
  elif path.suffix == '.csv':
    df.to_csv(path, index=False)
  else:
    raise ValueError(f'Unsupported output format: {path.suffix} ({path})')
  logger.info('Wrote %d rows to %s', len(df), path)


def load_config(args: argparse.Namespace) -> RecalculationConfig:
  '''Preset or JSON config, with command-line overrides applied.'''
  if args.config is not None:
    config = RecalculationConfig.from_json(args.config.read_text())
  else:
    config = PRESETS[args.preset]()

  overrides = {}
  if args.batch_size is not None:
    overrides['batch_size'] = args.batch_size
  if args.workers is not None:
    overrides['max_workers'] = args.workers
  if args.dry_run:
    overrides['save'] = False
  return dataclasses.replace(config, **overrides)


def _log_progress(job) -> None:
  logger.debug('Job %s: %d/%d processed', job.job_id[:8], job.processed,
               job.total)


def build_orchestrator(
    args: argparse.Namespace,
) -> tuple[RecalculationOrchestrator, InMemoryPropertySource,
           InMemoryAssessmentWriter]:
  '''Wire loader, resolver, calculator and in-memory collaborators.'''
  loader = ReferenceDataLoader(versions_path=args.versions,
                               points_path=args.points)
  arena = loader.build_arena()
  calculator = ValuationCalculator(ConfigurationVersionResolver(arena))

  source = InMemoryPropertySource(load_properties(args.properties))
  writer = InMemoryAssessmentWriter(source)
  orchestrator = RecalculationOrchestrator(
      calculator,
      source,
      writer,
      config=load_config(args),
      progress=_log_progress,
  )
  return orchestrator, source, writer


def _log_job(summary: dict) -> None:
  separator = '=' * 70
  logger.info(separator)
  logger.info('Recalculation %s/%s (%s)', summary['municipality_id'],
              summary['year'], summary['mode'])
  logger.info(separator)
  logger.info('  Total:        %d', summary['total'])
  logger.info('  Recalculated: %d', summary['recalculated'])
  logger.info('  Changed:      %d', summary['changed'])
  logger.info('  Persisted:    %d', summary['persisted'])
  logger.info('  Failed:       %d', summary['failed'])
  for error in summary['errors']:
    logger.info('    %s: %s (%s)', error['property_id'], error['message'],
                error['error_type'])
  if summary['duration_seconds'] is not None:
    logger.info('  Duration:     %.2fs', summary['duration_seconds'])


def run_recalculation(args: argparse.Namespace) -> dict:
  '''Run the recalculate or affected subcommand and return the summary.'''
  orchestrator, source, writer = build_orchestrator(args)
  scope = RecalculationScope(args.municipality, args.year, card=args.card)

  if args.command == 'affected':
    job = orchestrator.recalculate_affected(scope, args.change_type,
                                            args.change_id)
  elif args.zone_minimums:
    job = orchestrator.recalculate_with_zone_minimums(scope)
  else:
    job = orchestrator.recalculate_all(scope)

  summary = job.to_dict(error_limit=orchestrator.config.error_sample_limit)
  _log_job(summary)

  if args.output is not None:
    write_frame(valuations_frame(writer.written.values()), args.output)
  if args.errors_output is not None:
    write_frame(job.errors_frame(), args.errors_output)
  if args.properties_output is not None and job.save:
    save_properties(source.all(), args.properties_output)
  return summary


def run_audit(args: argparse.Namespace) -> dict:
  '''Run the audit subcommand and return the report dictionary.'''
  orchestrator, _, _ = build_orchestrator(args)
  scope = RecalculationScope(args.municipality, args.year, card=args.card)
  report = orchestrator.validate_consistency(scope, args.sample_size)

  logger.info('Audit %s/%d: %d of %d sampled (%.1f%%)',
              args.municipality, args.year, report.sampled,
              report.population, report.coverage_percent)
  logger.info('  Mismatches: %d', len(report.mismatches))
  logger.info('  Errors:     %d', len(report.errors))

  if args.output is not None:
    write_frame(report.to_frame(), args.output)
  return report.to_dict()


def run_migration(args: argparse.Namespace) -> dict:
  '''Run the migrate subcommand and return the migration report.'''
  report = migrate_file(args.src, args.dst)
  logger.info('Migrated %s -> %s: %d rows, %d filled, %d conflicts',
              args.src, args.dst, report.rows, report.filled,
              len(report.conflicts))
  return report.to_dict()


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
  parser.add_argument('--versions',
                      type=Path,
                      default=Path('reference/versions.parquet'),
                      help='Configuration versions table (parquet or csv)')
  parser.add_argument('--points',
                      type=Path,
                      default=Path('reference/ladder_points.parquet'),
                      help='Ladder points table (parquet or csv)')
  parser.add_argument('--properties',
                      type=Path,
                      required=True,
                      help='JSON list of properties')
  parser.add_argument('--municipality', type=str, required=True)
  parser.add_argument('--year', type=int, required=True)
  parser.add_argument('--card', type=int, default=None,
                      help='Restrict to one card number')
  parser.add_argument('--preset',
                      type=str,
                      default='default',
                      choices=sorted(PRESETS),
                      help='Configuration preset')
  parser.add_argument('--config',
                      type=Path,
                      default=None,
                      help='RecalculationConfig JSON file (overrides preset)')
  parser.add_argument('--batch-size', type=int, default=None)
  parser.add_argument('--workers', type=int, default=None,
                      help='Threads per batch')
  parser.add_argument('--dry-run',
                      action='store_true',
                      help='Compute without persisting')
  parser.add_argument('--output',
                      type=Path,
                      default=None,
                      help='Write results (csv or parquet)')
  parser.add_argument('-v',
                      '--verbose',
                      action='store_true',
                      help='Enable verbose logging')


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(
      description='Recalculate and audit property valuations',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog=__doc__,
  )
  subparsers = parser.add_subparsers(dest='command', required=True)

  recalc = subparsers.add_parser('recalculate',
                                 help='Recalculate every property')
  _add_common_arguments(recalc)
  recalc.add_argument('--zone-minimums',
                      action='store_true',
                      help='Split acreage above zone minimums first')

  affected = subparsers.add_parser(
      'affected', help='Recalculate properties depending on one change')
  _add_common_arguments(affected)
  affected.add_argument('--change-type',
                        type=str,
                        required=True,
                        choices=CHANGE_TYPES)
  affected.add_argument('--change-id',
                        type=str,
                        required=True,
                        help='Version id or scope key of the changed record')

  for sub in (recalc, affected):
    sub.add_argument('--errors-output',
                     type=Path,
                     default=None,
                     help='Write every property error (csv or parquet)')
    sub.add_argument('--properties-output',
                     type=Path,
                     default=None,
                     help='Write properties with updated stored totals')

  audit = subparsers.add_parser('audit', help='Sampled consistency audit')
  _add_common_arguments(audit)
  audit.add_argument('--sample-size', type=int, default=DEFAULT_SAMPLE_SIZE)

  migrate = subparsers.add_parser(
      'migrate', help='Collapse legacy value/rate columns into factor')
  migrate.add_argument('--src',
                       type=Path,
                       required=True,
                       help='Legacy versions table (parquet or csv)')
  migrate.add_argument('--dst',
                       type=Path,
                       required=True,
                       help='Migrated versions table (parquet or csv)')
  migrate.add_argument('-v',
                       '--verbose',
                       action='store_true',
                       help='Enable verbose logging')
  return parser


def main(argv: Optional[List[str]] = None) -> dict:
  '''CLI entrypoint.'''
  args = build_parser().parse_args(argv)

  logging.basicConfig(
      level=logging.DEBUG if args.verbose else logging.INFO,
      format='%(asctime)s [%(levelname)s] %(message)s',
      datefmt='%Y-%m-%d %H:%M:%S',
  )

  if args.command == 'migrate':
    return run_migration(args)
  if args.command == 'audit':
    return run_audit(args)
  return run_recalculation(args)


if __name__ == '__main__':
  main()
