'''
Temporal valuation configuration and recalculation engine.

This package resolves year-versioned rate tables (land and waterfront
ladders, zone and attribute factors, current-use categories), turns rate
ladders into continuous curves with monotone cubic interpolation, and
drives batched recalculation and auditing of property valuations.

Usage:
  from assessing.engine.versions import ConfigurationVersionResolver
  from assessing.engine.calculator import ValuationCalculator
  from assessing.jobs.config import RecalculationConfig
  from assessing.orchestration.recalculation import RecalculationOrchestrator

  resolver = ConfigurationVersionResolver(arena)
  orchestrator = RecalculationOrchestrator(
      calculator=ValuationCalculator(resolver),
      source=property_source,
      writer=assessment_writer,
      config=RecalculationConfig.default(),
  )
  job = orchestrator.recalculate_all(RecalculationScope('town-1', 2025))
'''
