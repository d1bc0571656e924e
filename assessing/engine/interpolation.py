"""
Pure ladder interpolation engine.

Turns a discrete rate ladder (breakpoint/value pairs) into a continuous
curve using monotone cubic Hermite interpolation. No pandas, no I/O, just
numeric computations.

Key functions:
  interpolate: Main entry point, value of the ladder curve at target_x
  is_valid_ladder: Non-raising validity check
  validate_ladder: Raising validity check, returns points sorted by x
  monotone_tangents: Tangent at every breakpoint
"""

from bisect import bisect_left
from collections.abc import Iterable, Mapping, Sequence
from math import isfinite
from numbers import Real
from typing import Any

from assessing.domain.types import LadderPoint
from assessing.errors import ValidationError


def _as_number(value: Any) -> float:
  if isinstance(value, bool) or not isinstance(value, Real):
    raise ValidationError(f'Ladder coordinate {value!r} is not numeric')
  number = float(value)
  if not isfinite(number):
    raise ValidationError(f'Ladder coordinate {value!r} is not finite')
  return number


def _coerce_point(item: Any) -> LadderPoint:
  """Accept LadderPoint, (x, y) pairs and {'x': .., 'y': ..} mappings."""
  if isinstance(item, LadderPoint):
    x, y = item.x, item.y
  elif isinstance(item, Mapping):
    if 'x' not in item or 'y' not in item:
      raise ValidationError(f'Ladder point {item!r} needs x and y')
    x, y = item['x'], item['y']
  elif isinstance(item, Sequence) and not isinstance(item, str):
    if len(item) != 2:
      raise ValidationError(f'Ladder point {item!r} is not an (x, y) pair')
    x, y = item
  else:
    raise ValidationError(f'Unsupported ladder point {item!r}')
  return LadderPoint(x=_as_number(x), y=_as_number(y))


def validate_ladder(points: Iterable[Any]) -> list[LadderPoint]:
  """
  Validate ladder points and return them sorted by x.

  Args:
    points: Ladder points in any order

  Returns:
    List of LadderPoint sorted by x

  Raises:
    ValidationError: Empty ladder, non-numeric or non-finite coordinate,
      or duplicate x value
  """
  if points is None:
    raise ValidationError('Ladder is empty')
  coerced = sorted((_coerce_point(p) for p in points), key=lambda p: p.x)
  if not coerced:
    raise ValidationError('Ladder is empty')

  for prev, cur in zip(coerced, coerced[1:]):
    if cur.x == prev.x:
      raise ValidationError(f'Duplicate ladder breakpoint x={cur.x}')
  return coerced


def is_valid_ladder(points: Iterable[Any]) -> bool:
  """True if validate_ladder() would accept the points. Never raises."""
  try:
    validate_ladder(points)
  except (ValidationError, TypeError):
    return False
  return True


def monotone_tangents(xs: Sequence[float], ys: Sequence[float]) -> list[float]:
  """
  Compute Hermite tangents for sorted, distinct breakpoints.

  Interior points average the adjacent secants when both have the same
  sign, clamped to 3x the smaller secant in magnitude; opposite signs (or a
  flat secant) give a zero tangent. The first and last points take their
  single adjacent secant unclamped.

  Args:
    xs: Strictly increasing x values (at least two)
    ys: Matching y values

  Returns:
    Tangent per breakpoint
  """
  secants = [(ys[k + 1] - ys[k]) / (xs[k + 1] - xs[k])
             for k in range(len(xs) - 1)]

  tangents = [0.0] * len(xs)
  tangents[0] = secants[0]
  tangents[-1] = secants[-1]

  for k in range(1, len(xs) - 1):
    s_prev = secants[k - 1]
    s_next = secants[k]
    if s_prev * s_next <= 0:
      continue
    m = (s_prev + s_next) / 2
    limit = 3 * min(abs(s_prev), abs(s_next))
    if abs(m) > limit:
      m = limit if m > 0 else -limit
    tangents[k] = m

  return tangents


def hermite(
    x0: float,
    x1: float,
    y0: float,
    y1: float,
    m0: float,
    m1: float,
    target_x: float,
) -> float:
  """Evaluate the cubic Hermite segment between (x0, y0) and (x1, y1)."""
  dx = x1 - x0
  t = (target_x - x0) / dx
  t2 = t * t
  t3 = t2 * t

  h00 = 2 * t3 - 3 * t2 + 1
  h10 = t3 - 2 * t2 + t
  h01 = -2 * t3 + 3 * t2
  h11 = t3 - t2

  return h00 * y0 + h10 * dx * m0 + h01 * y1 + h11 * dx * m1


def interpolate(points: Iterable[Any], target_x: float) -> float:
  """
  Value of the ladder curve at target_x.

  Targets at or below the first breakpoint return the first y; at or above
  the last breakpoint return the last y. Between breakpoints the curve is
  monotone cubic Hermite, so it passes exactly through every breakpoint and
  does not overshoot a monotone ladder.

  Args:
    points: Ladder points in any order
    target_x: Independent variable (acreage, frontage)

  Returns:
    Interpolated y value

  Raises:
    ValidationError: Invalid ladder or non-finite target
  """
  ladder = validate_ladder(points)
  if (isinstance(target_x, bool) or not isinstance(target_x, Real) or
      not isfinite(target_x)):
    raise ValidationError(f'Interpolation target {target_x!r} is not finite')
  x = float(target_x)

  xs = [p.x for p in ladder]
  ys = [p.y for p in ladder]

  if x <= xs[0]:
    return ys[0]
  if x >= xs[-1]:
    return ys[-1]

  # xs[i] < x <= xs[i + 1]
  i = bisect_left(xs, x) - 1
  tangents = monotone_tangents(xs, ys)
  return hermite(xs[i], xs[i + 1], ys[i], ys[i + 1], tangents[i],
                 tangents[i + 1], x)


def interpolate_land_value(points: Iterable[Any], acreage: float) -> float:
  """Total land value for acreage from a land ladder."""
  return interpolate(points, acreage)


def interpolate_frontage_factor(points: Iterable[Any],
                                frontage: float) -> float:
  """Frontage factor (percent) for frontage from a water body ladder."""
  return interpolate(points, frontage)
