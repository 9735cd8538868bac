from pathlib import Path

from pydantic import Field
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_env_files() -> tuple[Path, ...]:
    """Return dotenv candidates for pydantic-settings (missing files are ignored).

    Precedence (later overrides earlier):
    1) repo-root `.env`, `.env.local` (where this package lives during dev)
    2) CWD `.env`, `.env.local` (user overrides)
    """

    def _repo_root() -> Path:
        here = Path(__file__).resolve()
        # Typical dev layout: <repo>/src/tbv/config.py
        for cand in [here.parent] + list(here.parents):
            if (cand / "pyproject.toml").exists() and (cand / "src").exists():
                return cand
        return here.parents[2] if len(here.parents) > 2 else here.parent

    repo_root = _repo_root()
    cwd = Path.cwd()
    return (
        repo_root / ".env",
        repo_root / ".env.local",
        cwd / ".env",
        cwd / ".env.local",
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TBV_",
        extra="ignore",
        env_file=_default_env_files(),
        env_file_encoding="utf-8",
    )

    registry_url: str = Field(
        default="https://registry.npmjs.com",
        validation_alias=AliasChoices("TBV_REGISTRY_URL", "NPM_CONFIG_REGISTRY"),
    )

    # External tools. Resolved through PATH unless absolute.
    git_bin: str = "git"
    npm_bin: str = "npm"
    node_bin: str = "node"

    # `npm ci` appeared in npm 5.7.0; older npm needs the standalone `cipm` binary.
    legacy_installer: str = "cipm"
    clean_install_min_npm: str = "5.7.0"

    # None = no internal timeout; callers impose their own deadline.
    http_timeout_sec: float | None = None

    # Parent directory for ephemeral workspaces (None = system temp dir).
    workspace_root: str | None = None

    user_agent: str = "tbv/0.4 (+tarball reproducibility check)"


settings = Settings()
