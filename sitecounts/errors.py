class PipelineError(Exception):
    """Base class for everything the build can raise on purpose."""


class SourceUnreachableError(PipelineError):
    """A page or data file could not be loaded. The source is skipped."""


class MissingCredentialError(PipelineError):
    pass


class CatalogAPIError(PipelineError):
    pass


class DataIntegrityError(PipelineError):
    """A page exposed a count that is not a valid non-negative integer."""


class UnresolvedCountError(PipelineError):
    """A facet with no alternative source could not be resolved."""
