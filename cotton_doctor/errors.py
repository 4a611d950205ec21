class DiagnosisError(ValueError):
    """Base class for failures along the diagnosis path."""


class ImageReadError(DiagnosisError):
    def __init__(self, details: str = ""):
        self.details = details
        super().__init__(f"could not read image: {details}" if details else "could not read image")


class UpstreamCallError(DiagnosisError):
    """The text-generation call itself failed."""


class UpstreamEmptyResponse(DiagnosisError):
    """The call succeeded but produced no usable text."""


class AnalysisUnavailableError(DiagnosisError):
    """There is no text to normalize."""


class PersistenceWriteError(DiagnosisError):
    """A history record could not be written."""
