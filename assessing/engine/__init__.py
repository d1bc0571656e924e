"""Pure valuation engine: interpolation, version resolution, calculator."""

from assessing.engine.calculator import ValuationCalculator
from assessing.engine.calculator import compute_component
from assessing.engine.calculator import modifier_factor
from assessing.engine.interpolation import interpolate
from assessing.engine.interpolation import is_valid_ladder
from assessing.engine.interpolation import validate_ladder
from assessing.engine.versions import ConfigurationVersionResolver
from assessing.engine.versions import VersionArena

__all__ = [
    'ConfigurationVersionResolver',
    'ValuationCalculator',
    'VersionArena',
    'compute_component',
    'interpolate',
    'is_valid_ladder',
    'modifier_factor',
    'validate_ladder',
]
