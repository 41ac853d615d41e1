"""Exploit proof-of-concept synthesis."""

from .synthesizer import PocArtifact, synthesize, synthesize_all, write_artifacts, supported
from .templates import TEMPLATES
from .keys import keypair_for, program_pubkey, constant_pda

__all__ = [
    "PocArtifact",
    "synthesize",
    "synthesize_all",
    "write_artifacts",
    "supported",
    "TEMPLATES",
    "keypair_for",
    "program_pubkey",
    "constant_pda",
]
