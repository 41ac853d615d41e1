"""
Source Loader: Resolves Rust sources for a scan root.
"""

import os
import re
import hashlib
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Dict, List

from ..errors import NoSourcesError

logger = logging.getLogger(__name__)

_PACKAGE_NAME_RE = re.compile(r'^name\s*=\s*"([^"]+)"')


@dataclass(frozen=True)
class SourceFile:
    """A Rust source file handed to the model builder."""
    path: str
    text: Optional[str]
    sha256: Optional[str] = None

    # Set when the file exists but could not be read
    error: Optional[str] = None

    # `[package] name` of the nearest Cargo.toml, in Rust identifier form
    package: Optional[str] = None

    @classmethod
    def from_text(cls, text: str, path: str, package: Optional[str] = None) -> "SourceFile":
        return cls(
            path=path,
            text=text,
            sha256=hashlib.sha256(text.encode("utf-8")).hexdigest(),
            package=package,
        )


def read_package_name(manifest: Path) -> Optional[str]:
    """
    Read `[package] name` from a Cargo.toml.

    Returns:
        The name with `-` mapped to `_` (as rustc does for the crate), or
        None for a workspace-only or unreadable manifest
    """
    try:
        lines = manifest.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Could not read %s: %s", manifest, e)
        return None

    section = None
    for line in lines:
        line = line.split("#", 1)[0].strip()
        if line.startswith("["):
            section = line.strip("[] ")
            continue
        if section == "package":
            match = _PACKAGE_NAME_RE.match(line)
            if match:
                return match.group(1).replace("-", "_")
    return None


class SourceLoader:
    """
    Loads Rust sources from a file or directory.

    Handles:
    - Recursive discovery of *.rs files in sorted order
    - Skipping build output, dependencies and hidden directories
    - Per-file read failures (kept as SourceFile.error, not raised)
    - Crate names from the nearest Cargo.toml (cached per directory)
    """

    SKIP_DIRS = {"target", "node_modules", ".git", ".anchor"}

    # How many directories above a source file to look for its Cargo.toml
    MANIFEST_DEPTH = 4

    def __init__(self):
        self._packages: Dict[Path, Optional[str]] = {}

    def load(self, root: str) -> List[SourceFile]:
        """
        Load all Rust sources under a root.

        Args:
            root: A .rs file or a directory

        Returns:
            SourceFile list, sorted by path

        Raises:
            FileNotFoundError: If the root does not exist
            NoSourcesError: If no .rs files were found
        """
        root_path = Path(root)
        if not root_path.exists():
            raise FileNotFoundError(f"Scan root not found: {root}")

        if root_path.is_file():
            paths = [root_path] if root_path.suffix == ".rs" else []
        else:
            paths = sorted(self._discover(root_path))

        if not paths:
            raise NoSourcesError(str(root))

        sources = [self._read(path) for path in paths]
        logger.debug("Loaded %d source file(s) from %s", len(sources), root)
        return sources

    def package_of(self, path: Path) -> Optional[str]:
        """Package name of the crate a source file belongs to, if a manifest names one."""
        directory = path.resolve().parent
        for _ in range(self.MANIFEST_DEPTH + 1):
            if directory not in self._packages:
                manifest = directory / "Cargo.toml"
                self._packages[directory] = read_package_name(manifest) if manifest.is_file() else None
            if self._packages[directory]:
                return self._packages[directory]
            if directory.parent == directory:
                break
            directory = directory.parent
        return None

    def _discover(self, root: Path) -> List[Path]:
        found = []
        for dirpath, dirnames, filenames in os.walk(root):
            # Prune in place so os.walk does not descend
            dirnames[:] = sorted(
                d for d in dirnames if d not in self.SKIP_DIRS and not d.startswith(".")
            )
            for filename in filenames:
                if filename.endswith(".rs"):
                    found.append(Path(dirpath) / filename)
        return found

    def _read(self, path: Path) -> SourceFile:
        key = str(path)
        package = self.package_of(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            return SourceFile(path=key, text=None, error=str(e), package=package)

        digest = hashlib.sha256(data).hexdigest()
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            return SourceFile(path=key, text=None, sha256=digest, package=package,
                              error=f"not valid UTF-8 ({e.reason} at byte {e.start})")
        return SourceFile(path=key, text=text, sha256=digest, package=package)
