# errors.py


class RecompressError(Exception):
    """Base class; the message is the human-readable detail reported to the caller."""


class InputFormatError(RecompressError):
    pass


class ProbeFailure(RecompressError):
    pass


class GuessFailure(RecompressError):
    pass


class ConversionFailure(RecompressError):
    pass


class EncodeFailure(RecompressError):
    pass


class TrialFailure(RecompressError):
    pass


class ThresholdOutOfRange(RecompressError):
    pass


class CleanupFailure(RecompressError):
    pass


class SearchExhausted(RecompressError):
    pass


class InvalidOption(RecompressError):
    pass
