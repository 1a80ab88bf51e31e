"""Error taxonomy shared by the index, manifest and reading layers."""

from __future__ import annotations


class TarotRagError(RuntimeError):
    pass


class ConfigurationError(TarotRagError):
    """Missing corpus/manifest/index file, malformed JSON, unusable spread."""


class ValidationError(TarotRagError):
    """The caller sent a request that cannot be served."""


class UpstreamServiceError(TarotRagError):
    """The embedding or generation service failed or answered garbage."""


class DataIntegrityError(TarotRagError):
    """Built artifacts or corpus files contradict each other."""
