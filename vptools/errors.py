"""
Exceptions raised while reading, writing, extracting and comparing VP archives.

Every error derives from VPError so callers can catch the whole family,
and also from the closest built-in exception so generic handlers still work.
"""


class VPError(Exception):
    """Base class for all VP archive errors."""


class ArchiveNotFoundError(VPError, FileNotFoundError):
    """An archive, source tree or search directory does not exist."""


class NotAFileError(VPError):
    """A path or entry that should be a regular file is something else."""


class SourceNotDirectoryError(VPError, NotADirectoryError):
    """The tree to archive (or the search directory) is not a directory."""


class SourceNameError(VPError, ValueError):
    """The directory to archive is not named 'data'."""


class DestinationExistsError(VPError, FileExistsError):
    """The archive to create already exists."""


class FormatError(VPError, ValueError):
    """The container does not follow the VP layout."""


class BadMagicError(FormatError):
    pass


class BadVersionError(FormatError):
    pass


class MalformedArchiveError(FormatError):
    """The entry table or data region is internally inconsistent."""


class EncodingError(VPError, ValueError):
    """An entry name is too long, empty or not plain ASCII."""


class DuplicateNameError(VPError, ValueError):
    """Two paths in the source tree differ only by case."""


class LimitExceededError(VPError, ValueError):
    """Entry count or archive size does not fit in 32 bits."""


class OnDiskConflictError(VPError):
    """A file sits where a directory is expected, or the other way round."""
