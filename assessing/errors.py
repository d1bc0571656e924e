"""Error taxonomy for the assessing engine."""

from typing import Optional


class AssessingError(Exception):
  """Base class for all assessing engine errors."""


class ValidationError(AssessingError, ValueError):
  """Malformed ladder, property data or reference table."""


class NotFoundError(AssessingError, LookupError):
  """No configuration version resolvable for a scope and year."""


class PropertyCalculationError(AssessingError):
  """
  Failure while valuing a single property during batch work.

  Batch operations record these on the job instead of raising them.

  Attributes:
    property_id: Property whose calculation failed
    cause: Underlying exception, if any
  """

  def __init__(
      self,
      property_id: str,
      message: str,
      cause: Optional[BaseException] = None,
  ):
    super().__init__(f'{property_id}: {message}')
    self.property_id = property_id
    self.message = message
    self.cause = cause

  @property
  def error_type(self) -> str:
    """Name of the underlying exception type."""
    if self.cause is None:
      return type(self).__name__
    return type(self.cause).__name__

  def to_dict(self) -> dict[str, str]:
    """Convert to a plain error entry for job summaries."""
    return {
        'property_id': self.property_id,
        'error_type': self.error_type,
        'message': self.message,
    }


class InfrastructureError(AssessingError):
  """Read or persistence collaborator unreachable; aborts batch work."""
