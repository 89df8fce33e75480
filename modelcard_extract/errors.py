from __future__ import annotations


class ExtractError(Exception):
    """Base class for errors raised while extracting a model card."""


class RegistryError(ExtractError):
    pass


class ResolutionError(RegistryError):
    """The reference could not be turned into an image manifest."""


class FetchError(RegistryError):
    """A manifest or blob could not be retrieved after resolution."""


class DecompressionError(ExtractError):
    pass


class ArchiveParseError(ExtractError):
    pass


class WriteError(ExtractError):
    pass
