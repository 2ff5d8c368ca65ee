"""Exception types shared by the detection pipeline and the API layer."""


class PlantScanError(Exception):
    """Base class for every error raised by the detection service."""


class ImageDecodeError(PlantScanError):
    """The uploaded payload could not be decoded into pixels."""


class StorageUploadError(PlantScanError):
    """Object storage rejected the upload or is unreachable."""


class RecommendationFetchError(PlantScanError):
    """The text-generation endpoint failed or returned no usable text."""


class RecordPersistError(PlantScanError):
    """The detection record could not be written to the record store."""


class DetectionInProgressError(PlantScanError):
    """A detection is already running for this session."""


class DetectionCancelledError(PlantScanError):
    """The caller went away before the recommendation step."""


class GeminiNotConfiguredError(PlantScanError):
    """No usable Gemini API key is configured."""


class ChatRequestError(PlantScanError):
    """The agronomist chat request failed upstream."""
