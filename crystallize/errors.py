"""Exception hierarchy for the research and crystallization pipeline."""


class CrystallizeError(Exception):
    """Base class for every error raised by this package."""


class ServiceFailure(CrystallizeError):
    """The remote answer call could not complete."""


class ExtractionFailure(CrystallizeError):
    """The remote extraction call failed or returned a malformed payload."""


class PersistenceFailure(CrystallizeError):
    """A write to (or delete from) the durable record store failed."""


class ValidationRejection(CrystallizeError):
    """A request was refused before any remote call or state change."""
