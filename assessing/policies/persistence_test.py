from assessing.domain.types import ComputedValuation
from assessing.domain.types import PolicyOutput
from assessing.policies.persistence import AlwaysPersist
from assessing.policies.persistence import ChangedOnly


def _valuation(total) -> ComputedValuation:
  return ComputedValuation(property_id='P1', year=2024, card=1,
                           component_values={'total_assessed_value': total},
                           total_value=total)


class TestChangedOnly:
  """Tests for ChangedOnly persistence policy."""

  def test_changed_total_persists(self):
    result = ChangedOnly().decide(_valuation(77000), 70000)

    assert isinstance(result, PolicyOutput)
    assert result.value is True
    assert result.diag['persist_method'] == 'changed_only'
    assert result.diag['computed_total'] == 77000

  def test_unchanged_total_skipped(self):
    assert ChangedOnly().decide(_valuation(77000), 77000).value is False

  def test_missing_stored_total_persists(self):
    assert ChangedOnly().decide(_valuation(0), None).value is True

  def test_tolerance(self):
    policy = ChangedOnly(tolerance=1.0)
    assert policy.decide(_valuation(100.5), 100).value is False
    assert policy.decide(_valuation(102), 100).value is True


class TestAlwaysPersist:
  """Tests for AlwaysPersist persistence policy."""

  def test_always_true(self):
    policy = AlwaysPersist()
    assert policy.decide(_valuation(77000), 77000).value is True
    assert policy.decide(_valuation(77000), None).diag['persist_method'] == (
        'always')
