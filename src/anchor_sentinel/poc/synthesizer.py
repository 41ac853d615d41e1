"""
POC Synthesizer: turns findings into runnable Anchor exploit tests.

Each artifact is a self-contained mocha test for `anchor test`. Output is a
pure function of the finding and the model: keypairs and placeholder
addresses are derived from the fingerprint, and nothing time-dependent is
written into the script.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..analysis.models import ProgramModel
from ..errors import ModelError, UnsupportedVulnerability
from ..report.finding import Finding
from .keys import program_pubkey
from .templates import NEEDS_INSTRUCTION, TEMPLATES, PocScript, PocTarget, pascal

logger = logging.getLogger(__name__)

PARTICIPANTS = {
    "A": "Attacker",
    "U": "User",
    "P": "Program",
    "S": "System Program",
    "M": "Malicious Program",
}


@dataclass(frozen=True)
class PocArtifact:
    """A generated exploit script for one finding."""
    fingerprint: str
    detector_id: str
    program: str
    instruction: Optional[str]
    filename: str
    source: str
    preconditions: Tuple[str, ...]
    diagram: str

    def to_dict(self) -> Dict:
        return {
            "fingerprint": self.fingerprint,
            "detector": self.detector_id,
            "program": self.program,
            "instruction": self.instruction,
            "file": self.filename,
            "preconditions": list(self.preconditions),
        }


def supported(detector_id: str) -> bool:
    return detector_id in TEMPLATES


def _target(finding: Finding, model: ProgramModel) -> PocTarget:
    loc = finding.location
    program = model.program(loc.program)
    if program is None or model.resolve(loc) is None:
        raise ModelError("finding", finding.fingerprint, f"{loc.describe()} is not in the model")

    instruction = program.get_instruction(loc.instruction) if loc.instruction else None
    context = program.context(loc.context) if loc.context else None
    if context is None and instruction is not None:
        context = program.context_of(instruction)
    if instruction is None and context is not None:
        users = program.instructions_using(context.name)
        instruction = users[0] if users else None
    field = context.field(loc.field) if context is not None and loc.field else None

    return PocTarget(
        finding=finding,
        program=program,
        instruction=instruction,
        context=context,
        field=field,
        program_id=program_pubkey(program),
    )


def _diagram(script: PocScript) -> str:
    used = []
    for source, dest, _ in script.steps:
        for key in (source, dest):
            if key not in used:
                used.append(key)
    lines = ["sequenceDiagram"]
    for key in used:
        label = script.target.program.name if key == "P" else PARTICIPANTS[key]
        lines.append(f"    participant {key} as {label}")
    for source, dest, text in script.steps:
        arrow = "-->>" if dest == "A" else "->>"
        lines.append(f"    {source}{arrow}{dest}: {text}")
    return "\n".join(lines)


def _header(script: PocScript, filename: str) -> List[str]:
    finding = script.target.finding
    lines = [
        f"// Anchor-Sentinel POC: {finding.detector_id} {finding.name}",
        f"// {finding.title}",
        f"// Location: {finding.location.describe()}",
        f"// Fingerprint: {finding.fingerprint}",
        "//",
        "// Preconditions:",
    ]
    lines += [f"//   - {p}" for p in script.preconditions]
    lines += [
        "//",
        f"// Run with: anchor test --skip-local-validator tests/{filename}",
        "// For local testing only. Never run against mainnet.",
        "",
    ]
    return lines


def render(script: PocScript, filename: str) -> str:
    """Assemble the complete TypeScript file."""
    target = script.target
    program_name = target.program.name
    type_name = pascal(program_name)

    web3 = ["Keypair", "LAMPORTS_PER_SOL", "PublicKey", "SystemProgram"]
    text = "\n".join(script.setup + script.body)
    web3 += [name for name in ("SYSVAR_CLOCK_PUBKEY", "SYSVAR_RENT_PUBKEY") if name in text]

    lines = _header(script, filename)
    lines += [
        'import * as anchor from "@coral-xyz/anchor";',
        'import { BN, Program } from "@coral-xyz/anchor";',
        f'import {{ {", ".join(web3)} }} from "@solana/web3.js";',
    ]
    if script.token_ids:
        lines.append(f'import {{ {", ".join(sorted(script.token_ids))} }} from "@solana/spl-token";')
    lines += [
        'import { expect } from "chai";',
        f'import {{ {type_name} }} from "../target/types/{program_name}";',
        "",
    ]

    script.keypair("attacker")
    for name in sorted(script.keypairs):
        secret = ", ".join(str(b) for b in script.keypairs[name])
        lines.append(f"const {name} = Keypair.fromSecretKey(Uint8Array.from([{secret}]));")
    for name in sorted(script.constants):
        lines.append(f"const {name} = {script.constants[name]};")
    lines.append("")

    instruction = target.instruction.name if target.instruction else program_name
    lines += [
        f'describe("{target.finding.detector_id} {target.finding.name}: {instruction}", () => {{',
        "    const provider = anchor.AnchorProvider.env();",
        "    anchor.setProvider(provider);",
        f"    const program = anchor.workspace.{type_name} as Program<{type_name}>;",
        "",
    ]
    if script.snapshots:
        lines += [
            "    // Lamports and data of each account, for before/after comparison",
            "    const snapshot = async (keys: PublicKey[]) =>",
            "        Promise.all(keys.map(async (key) => {",
            "            const info = await provider.connection.getAccountInfo(key);",
            '            return info === null ? "missing" : `${info.lamports}:${info.data.toString("base64")}`;',
            "        }));",
            "",
        ]
    lines += [
        "    before(async () => {",
        "        const sig = await provider.connection.requestAirdrop(attacker.publicKey, 10 * LAMPORTS_PER_SOL);",
        "        await provider.connection.confirmTransaction(sig);",
        "    });",
        "",
        f'    it("{_escape(target.finding.title)}", async () => {{',
    ]
    for line in script.setup + ([""] if script.setup else []) + script.body:
        lines.append(f"        {line}" if line else "")
    lines += [
        "    });",
        "});",
        "",
    ]
    return "\n".join(lines)


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("`", "")


def synthesize(finding: Finding, model: ProgramModel) -> PocArtifact:
    """
    Generate the exploit POC for one finding.

    Args:
        finding: A finding produced from `model`
        model: The ProgramModel the finding came from

    Returns:
        PocArtifact whose content depends only on the finding and the model

    Raises:
        UnsupportedVulnerability: If no template exists for the detector, or
            the model slice lacks what the template needs
        ModelError: If the finding's location is not in the model
    """
    template = TEMPLATES.get(finding.detector_id)
    if template is None:
        raise UnsupportedVulnerability(finding.detector_id, finding.fingerprint)

    target = _target(finding, model)
    if finding.detector_id in NEEDS_INSTRUCTION and target.instruction is None:
        raise UnsupportedVulnerability(finding.detector_id, finding.fingerprint)
    if finding.detector_id in ("V001", "V002", "V005") and target.field is None:
        raise UnsupportedVulnerability(finding.detector_id, finding.fingerprint)

    script = PocScript(target=target)
    try:
        template(script)
    except LookupError as e:
        logger.debug("No POC for %s: %s", finding.fingerprint, e)
        raise UnsupportedVulnerability(finding.detector_id, finding.fingerprint) from e

    filename = f"poc_{finding.detector_id.lower()}_{finding.fingerprint[:16]}.ts"
    return PocArtifact(
        fingerprint=finding.fingerprint,
        detector_id=finding.detector_id,
        program=target.program.name,
        instruction=target.instruction.name if target.instruction else None,
        filename=filename,
        source=render(script, filename),
        preconditions=tuple(script.preconditions),
        diagram=_diagram(script),
    )


def synthesize_all(
    findings: Iterable[Finding],
    model: ProgramModel,
    max_workers: Optional[int] = None,
) -> Tuple[List[PocArtifact], List[UnsupportedVulnerability]]:
    """
    Synthesize POCs for every finding that has a template.

    Returns:
        Tuple of (artifacts in finding order, unsupported findings)
    """
    findings = list(findings)

    def attempt(finding: Finding) -> Union[PocArtifact, UnsupportedVulnerability]:
        try:
            return synthesize(finding, model)
        except UnsupportedVulnerability as e:
            return e

    if max_workers and max_workers > 1 and len(findings) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(attempt, findings))
    else:
        results = [attempt(f) for f in findings]

    artifacts = [r for r in results if isinstance(r, PocArtifact)]
    unsupported = [r for r in results if isinstance(r, UnsupportedVulnerability)]
    logger.debug("Synthesized %d POC(s); %d finding(s) without a template", len(artifacts), len(unsupported))
    return artifacts, unsupported


def write_artifacts(artifacts: Iterable[PocArtifact], output_dir: Union[str, Path]) -> List[Path]:
    """
    Write each POC script, an attack-path document and a poc_summary.json.

    Returns:
        Paths of the files written
    """
    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)
    artifacts = sorted(artifacts, key=lambda a: a.filename)
    written = []

    for artifact in artifacts:
        path = output / artifact.filename
        path.write_text(artifact.source, encoding="utf-8")
        written.append(path)

    if artifacts:
        sections = ["# Attack Paths", ""]
        for artifact in artifacts:
            sections += [
                f"## {artifact.detector_id}: {artifact.program}::{artifact.instruction or '-'}",
                "",
                f"Script: `{artifact.filename}`",
                "",
                "```mermaid",
                artifact.diagram,
                "```",
                "",
            ]
        path = output / "attack_paths.md"
        path.write_text("\n".join(sections), encoding="utf-8")
        written.append(path)

    summary = {
        "total_pocs": len(artifacts),
        "pocs": [a.to_dict() for a in artifacts],
    }
    path = output / "poc_summary.json"
    path.write_text(json.dumps(summary, indent=2) + "\n", encoding="utf-8")
    written.append(path)

    logger.debug("Wrote %d POC file(s) to %s", len(written), output)
    return written
