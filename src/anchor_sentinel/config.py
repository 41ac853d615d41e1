"""
Scan configuration.

A ScanConfig is built once by the caller and passed explicitly into the
pipeline, so two scans running side by side (old and new trees in diff
mode) never share settings.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import FrozenSet, Iterable, Mapping, Optional, Union

from .report.finding import Severity

logger = logging.getLogger(__name__)

ENV_PREFIX = "SENTINEL_"
DEFAULT_POC_DIR = "pocs"


def load_env(start: Optional[Path] = None, depth: int = 5) -> Optional[Path]:
    """
    Load a .env file from the working directory or its parents.

    Variables already present in the environment are left untouched.

    Returns:
        Path of the file that was loaded, or None
    """
    current = (start or Path.cwd()).resolve()
    for _ in range(depth):
        env_file = current / ".env"
        if env_file.is_file():
            with open(env_file, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, value = line.split("=", 1)
                        os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))
            logger.debug("Loaded environment from %s", env_file)
            return env_file
        if current.parent == current:
            break
        current = current.parent
    return None


def parse_ids(value: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    """Parse `V001,v003 V006` style detector ID lists."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = value.replace(",", " ").split()
    return frozenset(v.strip().upper() for v in value if v.strip())


@dataclass(frozen=True)
class ScanConfig:
    """Settings for one scan."""
    selection: Union[str, FrozenSet[str]] = "all"
    exclude: FrozenSet[str] = field(default_factory=frozenset)
    severity_floor: Severity = Severity.LOW
    max_workers: Optional[int] = None
    generate_poc: bool = False
    output_dir: str = DEFAULT_POC_DIR

    def __post_init__(self):
        if isinstance(self.selection, str) and self.selection.strip().lower() == "all":
            object.__setattr__(self, "selection", "all")
        else:
            object.__setattr__(self, "selection", parse_ids(self.selection))
        object.__setattr__(self, "exclude", parse_ids(self.exclude))
        object.__setattr__(self, "severity_floor", Severity.parse(self.severity_floor))
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    def with_overrides(self, **changes) -> "ScanConfig":
        """Copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ScanConfig":
        """
        Build a config from SENTINEL_* environment variables.

        Recognized: SENTINEL_SEVERITY, SENTINEL_ONLY, SENTINEL_EXCLUDE,
        SENTINEL_WORKERS and SENTINEL_POC_DIR.

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        severity = env.get(f"{ENV_PREFIX}SEVERITY")
        if severity:
            kwargs["severity_floor"] = Severity.parse(severity)
        only = env.get(f"{ENV_PREFIX}ONLY")
        if only:
            kwargs["selection"] = "all" if only.strip().lower() == "all" else parse_ids(only)
        exclude = env.get(f"{ENV_PREFIX}EXCLUDE")
        if exclude:
            kwargs["exclude"] = parse_ids(exclude)
        workers = env.get(f"{ENV_PREFIX}WORKERS")
        if workers:
            try:
                kwargs["max_workers"] = int(workers)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}WORKERS must be an integer, got {workers!r}") from None
        poc_dir = env.get(f"{ENV_PREFIX}POC_DIR")
        if poc_dir:
            kwargs["output_dir"] = poc_dir
            kwargs["generate_poc"] = True

        return cls(**kwargs)
