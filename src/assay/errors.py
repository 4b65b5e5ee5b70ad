"""Exception taxonomy shared by the graph compiler, the Order loop and the probe."""

from __future__ import annotations


class AssayError(Exception):
    """Base class for every error raised by assay."""


class SetupError(AssayError):
    """An Order spec is incomplete or cannot be compiled."""


class UnresolvedInput(SetupError):
    """A filter input references a stream label no decoder registered."""


class BackendError(AssayError):
    """A media backend call failed; keeps the backend diagnostic."""

    def __init__(self, message: str, diagnostic: str | None = None) -> None:
        super().__init__(message if diagnostic is None else f"{message}: {diagnostic}")
        self.diagnostic = diagnostic


class FilterNotFound(BackendError):
    """The backend has no filter with the requested name."""


class GraphConfigError(BackendError):
    """Graph validation failed (unlinked pad or incompatible formats)."""


class UnknownLabel(AssayError):
    """No registered graph input or output carries this label."""


class ArityMismatch(AssayError):
    """Frame-set size does not match the registered graph inputs."""


class PairingConfigWarning(AssayError):
    """A pairing-dependent check was requested without a usable pairing list."""
