"""
Error taxonomy for the analysis pipeline.

Only NoSourcesError (and plain I/O errors) abort a run. Every other error is
scoped to a file, a program entity, a detector or a single finding, and the
pipeline records it and moves on.
"""

from typing import Optional


class SentinelError(Exception):
    """Base class for all scanner errors."""


class ParseError(SentinelError):
    """A source file could not be parsed at all."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class ModelError(SentinelError):
    """A recognizable construct could not be normalized into the model."""

    def __init__(self, scope: str, name: str, reason: str):
        self.scope = scope
        self.name = name
        self.reason = reason
        super().__init__(f"{scope} {name}: {reason}")


class DetectorFault(SentinelError):
    """A detector broke one of its own invariants while evaluating a model."""

    def __init__(self, detector_id: str, reason: str):
        self.detector_id = detector_id
        self.reason = reason
        super().__init__(f"{detector_id}: {reason}")


class UnsupportedVulnerability(SentinelError):
    """No POC template is registered for a detector."""

    def __init__(self, detector_id: str, fingerprint: Optional[str] = None):
        self.detector_id = detector_id
        self.fingerprint = fingerprint
        super().__init__(f"No POC template for {detector_id}")


class NoSourcesError(SentinelError):
    """No source files could be resolved for the requested root."""

    def __init__(self, root: str):
        self.root = root
        super().__init__(f"No Rust source files found under {root}")
