"""
Recalculation policies.

Each policy makes one decision for the orchestrator and returns both the
decision and diagnostic information.

To add a new policy:
1. Create a new class inheriting from the appropriate base (e.g., PersistPolicy)
2. Implement the decide() method returning PolicyOutput
3. Register in jobs/registry.py
"""

from assessing.policies.persistence import AlwaysPersist
from assessing.policies.persistence import ChangedOnly
from assessing.policies.persistence import PersistPolicy

__all__ = [
  'PersistPolicy', 'ChangedOnly', 'AlwaysPersist',
]
