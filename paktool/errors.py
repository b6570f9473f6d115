class PakError(Exception):
    """Base class for paktool errors."""

    exit_code = 1


# Archive structure
class FormatError(PakError):
    exit_code = 3


class TruncatedArchiveError(PakError):
    exit_code = 8


# Names
class InvalidNameError(PakError):
    exit_code = 4


class NameTooLongError(InvalidNameError):
    exit_code = 5


# 32-bit format limits
class FormatLimitError(PakError):
    exit_code = 6

    def __init__(self, region: str, message: str):
        super().__init__(message)
        self.region = region  # "table", "data" or "file"


# Destinations
class PathEscapeError(PakError):
    exit_code = 7


class DestinationExistsError(PakError):
    exit_code = 10


# Sources
class SourceChangedError(PakError):
    exit_code = 11


EXIT_OK = 0
EXIT_OS_ERROR = 9
