from __future__ import annotations


class ArtifactScopeError(Exception):
    """Base class for errors raised by the analysis core."""


class RootNotFoundError(ArtifactScopeError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Analysis root does not exist: {path}")
        self.path = path


class InvalidQueryError(ArtifactScopeError):
    pass


class CipherError(ArtifactScopeError):
    """A single cipher attempt could not run (short key, empty input, backend failure)."""


class AnalysisCancelled(ArtifactScopeError):
    """Raised inside a run when its cancellation flag is set; entry points turn it into a partial result."""
