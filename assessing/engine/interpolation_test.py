import itertools
import math

import pytest

from assessing.domain.types import LadderPoint
from assessing.engine.interpolation import interpolate
from assessing.engine.interpolation import interpolate_frontage_factor
from assessing.engine.interpolation import interpolate_land_value
from assessing.engine.interpolation import is_valid_ladder
from assessing.engine.interpolation import monotone_tangents
from assessing.engine.interpolation import validate_ladder
from assessing.errors import ValidationError

FRONTAGE_LADDER = [(50, 80), (100, 100), (200, 120), (500, 150)]


class TestInterpolate:
  """Tests for interpolate function."""

  def test_frontage_ladder_scenario(self):
    """Clamps below and above the ladder, exact at breakpoints."""
    assert interpolate(FRONTAGE_LADDER, 25) == 80
    assert interpolate(FRONTAGE_LADDER, 50) == 80
    assert interpolate(FRONTAGE_LADDER, 100) == 100
    assert interpolate(FRONTAGE_LADDER, 1000) == 150

  def test_first_segment_midpoint(self):
    """Hermite value inside the first segment.

    Manual calculation:
    Secants: 0.4, 0.2, 0.1
    m0 = 0.4 (boundary), m1 = avg(0.4, 0.2) = 0.3
    t = 0.5: h00=0.5, h10=0.125, h01=0.5, h11=-0.125, dx=50
    y = 40 + 0.125*50*0.4 + 50 - 0.125*50*0.3 = 90.625
    """
    assert interpolate(FRONTAGE_LADDER, 75) == pytest.approx(90.625)

  def test_interior_segment_midpoint(self):
    """Hermite value inside an interior segment.

    Manual calculation:
    m1 = 0.3, m2 = avg(0.2, 0.1) = 0.15, dx=100
    y = 50 + 0.125*100*0.3 + 60 - 0.125*100*0.15 = 111.875
    """
    assert interpolate(FRONTAGE_LADDER, 150) == pytest.approx(111.875)

  def test_exact_at_every_breakpoint(self):
    """Curve passes through every input breakpoint."""
    ladder = [(0.5, 20000), (1, 35000), (2, 50000), (5, 80000), (10, 95000)]
    for x, y in ladder:
      assert interpolate(ladder, x) == pytest.approx(y, abs=1e-9)

  def test_order_independence(self):
    """Every permutation of the points gives the same curve."""
    targets = [10, 60, 99.5, 150, 333, 499]
    expected = [interpolate(FRONTAGE_LADDER, x) for x in targets]
    for perm in itertools.permutations(FRONTAGE_LADDER):
      assert [interpolate(list(perm), x) for x in targets] == expected

  def test_continuity_across_breakpoints(self):
    """No jumps when the target crosses a breakpoint."""
    eps = 1e-7
    for x, y in FRONTAGE_LADDER[1:-1]:
      left = interpolate(FRONTAGE_LADDER, x - eps)
      right = interpolate(FRONTAGE_LADDER, x + eps)
      assert left == pytest.approx(y, abs=1e-4)
      assert right == pytest.approx(y, abs=1e-4)

  def test_no_overshoot_on_monotone_ladder(self):
    """Increasing ladder stays within each segment's y range."""
    ladder = [(1, 10), (2, 100), (3, 101), (10, 102)]
    for (x0, y0), (x1, y1) in zip(ladder, ladder[1:]):
      steps = 50
      prev = y0
      for k in range(1, steps):
        value = interpolate(ladder, x0 + (x1 - x0) * k / steps)
        assert y0 - 1e-9 <= value <= y1 + 1e-9
        assert value >= prev - 1e-9
        prev = value

  def test_opposite_secants_flatten(self):
    """Peak breakpoint gets a zero tangent, so no overshoot past the peak."""
    ladder = [(0, 0), (1, 10), (2, 0)]
    assert monotone_tangents([0, 1, 2], [0, 10, 0])[1] == 0.0
    assert interpolate(ladder, 0.9) <= 10
    assert interpolate(ladder, 1.1) <= 10

  def test_two_points_is_linear(self):
    """Boundary tangents equal the only secant, giving a straight line."""
    ladder = [(0, 0), (10, 100)]
    assert interpolate(ladder, 2.5) == pytest.approx(25.0)
    assert interpolate(ladder, 7) == pytest.approx(70.0)

  def test_single_point_ladder(self):
    """One breakpoint means a constant curve."""
    assert interpolate([(5, 42)], 1) == 42
    assert interpolate([(5, 42)], 5) == 42
    assert interpolate([(5, 42)], 100) == 42

  def test_accepts_point_objects_and_mappings(self):
    """LadderPoint, mappings and tuples are interchangeable."""
    as_points = [LadderPoint(x, y) for x, y in FRONTAGE_LADDER]
    as_dicts = [{'x': x, 'y': y} for x, y in FRONTAGE_LADDER]
    assert interpolate(as_points, 75) == interpolate(FRONTAGE_LADDER, 75)
    assert interpolate(as_dicts, 75) == interpolate(FRONTAGE_LADDER, 75)

  def test_non_finite_target_raises(self):
    """NaN target is rejected rather than silently clamped."""
    with pytest.raises(ValidationError, match='not finite'):
      interpolate(FRONTAGE_LADDER, math.nan)

  def test_invalid_ladder_raises(self):
    """Malformed ladders raise ValidationError before interpolation."""
    with pytest.raises(ValidationError, match='empty'):
      interpolate([], 10)
    with pytest.raises(ValidationError, match='not finite'):
      interpolate([(1, 2), (2, math.inf)], 1.5)

  def test_wrappers(self):
    """Land and frontage wrappers use the same curve."""
    assert interpolate_land_value(FRONTAGE_LADDER, 75) == pytest.approx(90.625)
    assert interpolate_frontage_factor(FRONTAGE_LADDER, 100) == 100


class TestMonotoneTangents:
  """Tests for monotone_tangents function."""

  def test_boundaries_use_adjacent_secant_unclamped(self):
    """Steep first segment keeps its full secant at the first point."""
    tangents = monotone_tangents([0, 1, 2], [0, 100, 101])
    assert tangents[0] == pytest.approx(100.0)
    assert tangents[-1] == pytest.approx(1.0)

  def test_interior_clamped_to_three_times_smaller_secant(self):
    """Average 50.5 exceeds 3 * 1, so the tangent is clamped to 3."""
    tangents = monotone_tangents([0, 1, 2], [0, 100, 101])
    assert tangents[1] == pytest.approx(3.0)

  def test_decreasing_ladder_clamped_symmetrically(self):
    """Clamp keeps the sign of decreasing secants."""
    tangents = monotone_tangents([0, 1, 2], [101, 100, 0])
    assert tangents[1] == pytest.approx(-3.0)


class TestValidateLadder:
  """Tests for validate_ladder and is_valid_ladder."""

  def test_sorted_output(self):
    ladder = validate_ladder([(200, 120), (50, 80), (100, 100)])
    assert [p.x for p in ladder] == [50.0, 100.0, 200.0]

  def test_duplicate_x_rejected(self):
    with pytest.raises(ValidationError, match='Duplicate'):
      validate_ladder([(1, 10), (2, 20), (1, 30)])

  def test_is_valid_ladder(self):
    assert is_valid_ladder(FRONTAGE_LADDER)
    assert not is_valid_ladder([])
    assert not is_valid_ladder(None)
    assert not is_valid_ladder([(1, 'abc')])
    assert not is_valid_ladder([(1, math.nan)])
    assert not is_valid_ladder([{'x': 1}])
    assert not is_valid_ladder([(True, 1)])
    assert not is_valid_ladder([(1, 2), (1, 3)])
