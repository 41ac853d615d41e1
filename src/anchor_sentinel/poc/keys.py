"""
Deterministic key material for generated POCs.

Every keypair and address in a script is derived from the finding's
fingerprint, so synthesizing the same finding twice yields the same bytes.
"""

import hashlib
import logging
import re
from typing import List, Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..analysis.models import Program, Seed, SeedKind

logger = logging.getLogger(__name__)

MAX_SEED_LEN = 32


def _digest(*parts: str) -> bytes:
    return hashlib.sha256(":".join(parts).encode("utf-8")).digest()


def keypair_for(fingerprint: str, role: str) -> Keypair:
    """Keypair for a named role (attacker, victim, ...) in one finding's POC."""
    return Keypair.from_seed(_digest(fingerprint, role))


def secret_bytes(keypair: Keypair) -> List[int]:
    return list(bytes(keypair))


def account_pubkey(fingerprint: str, name: str) -> Pubkey:
    """Placeholder address for an account the script does not create itself."""
    return keypair_for(fingerprint, f"account:{name}").pubkey()


def program_pubkey(program: Program) -> Pubkey:
    """The declared program id, or a stable stand-in derived from the program name."""
    if program.program_id:
        try:
            return Pubkey.from_string(program.program_id)
        except ValueError:
            logger.debug("Program id %r of %s is not a valid pubkey", program.program_id, program.name)
    return Pubkey(_digest("program", program.name))


def constant_seed_bytes(seeds: Sequence[Seed]) -> Optional[List[bytes]]:
    """Raw seed bytes when every seed is a string constant, else None."""
    if not seeds:
        return None
    raw = []
    for seed in seeds:
        if seed.kind != SeedKind.CONSTANT or re.match(r"^\[?\d", seed.value):
            return None
        data = seed.value.encode("utf-8")
        if len(data) > MAX_SEED_LEN:
            return None
        raw.append(data)
    return raw


def constant_pda(seeds: Sequence[Seed], program_id: Pubkey) -> Optional[Pubkey]:
    """Precompute a PDA whose seeds are all constants."""
    raw = constant_seed_bytes(seeds)
    if raw is None:
        return None
    address, _bump = Pubkey.find_program_address(raw, program_id)
    return address
