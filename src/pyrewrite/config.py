"""Configuration management for pyrewrite."""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Config:
    """Central configuration with path properties and rewrite defaults."""

    base_dir: Path = field(default_factory=lambda: Path.home() / ".pyrewrite")

    # Rendering: passthrough keeps unsupported constructs when files are rewritten
    render_mode: str = "passthrough"
    encoding: str = "utf-8"

    # pkg_resources version modernization
    target_module: str = "importlib.metadata"
    target_function: str = "version"

    # Directory discovery
    exclude_dirs: tuple[str, ...] = (
        ".git",
        ".hg",
        ".tox",
        ".nox",
        ".venv",
        "venv",
        "__pycache__",
        "build",
        "dist",
        "node_modules",
    )

    @property
    def log_dir(self) -> Path:
        return self.base_dir / "logs"

    def ensure_dirs(self) -> None:
        """Create directory tree if it doesn't exist."""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)
