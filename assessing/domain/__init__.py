"""Domain types for the assessing engine."""

from assessing.domain.types import ComputedValuation
from assessing.domain.types import ConfigurationCategory
from assessing.domain.types import ConsistencyReport
from assessing.domain.types import Discrepancy
from assessing.domain.types import LadderPoint
from assessing.domain.types import LandLine
from assessing.domain.types import PolicyOutput
from assessing.domain.types import PropertyAttributes
from assessing.domain.types import RateLadder
from assessing.domain.types import RecalculationJob
from assessing.domain.types import RecalculationScope
from assessing.domain.types import ResolvedVersion
from assessing.domain.types import ScopeKey
from assessing.domain.types import VersionedRecord
from assessing.domain.types import WaterfrontEntry

__all__ = [
    'ComputedValuation',
    'ConfigurationCategory',
    'ConsistencyReport',
    'Discrepancy',
    'LadderPoint',
    'LandLine',
    'PolicyOutput',
    'PropertyAttributes',
    'RateLadder',
    'RecalculationJob',
    'RecalculationScope',
    'ResolvedVersion',
    'ScopeKey',
    'VersionedRecord',
    'WaterfrontEntry',
]
