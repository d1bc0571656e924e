"""
Policy registry for mapping string names to policy factories.

This lets RecalculationConfig name its persistence policy as a plain string
(JSON friendly) while still instantiating the right policy class.

To add a new policy:
1. Implement the policy class in policies/persistence.py
2. Register a factory for it in PERSIST_POLICIES

Example:
  PERSIST_POLICIES['changed_over_100'] = lambda config: ChangedOnly(
      tolerance=100.0)
"""

from collections.abc import Callable

from assessing.jobs.config import RecalculationConfig
from assessing.policies.persistence import AlwaysPersist
from assessing.policies.persistence import ChangedOnly
from assessing.policies.persistence import PersistPolicy

PERSIST_POLICIES: dict[str, Callable[[RecalculationConfig], PersistPolicy]] = {
    'changed_only': lambda config: ChangedOnly(tolerance=0.0),
    'always': lambda config: AlwaysPersist(),
}


def create_persist_policy(config: RecalculationConfig) -> PersistPolicy:
  """
  Create the persistence policy named by a configuration.

  Args:
    config: RecalculationConfig with a persist_policy name

  Returns:
    PersistPolicy instance

  Raises:
    KeyError: If the policy name is not found in the registry
  """
  try:
    factory = PERSIST_POLICIES[config.persist_policy]
  except KeyError as e:
    raise KeyError(f"Unknown persist policy: '{config.persist_policy}'. "
                   f'Available: {list(PERSIST_POLICIES.keys())}') from e
  return factory(config)


def list_policies() -> dict[str, list[str]]:
  """
  List all available policies by category.

  Returns:
    Dictionary mapping category names to list of policy names
  """
  return {'persist': list(PERSIST_POLICIES.keys())}
