from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from tbv.errors import ProcessError

logger = logging.getLogger("tbv.process")


@dataclass(frozen=True)
class EnvPolicy:
    allowlist_keys: set[str]
    allowlist_prefixes: tuple[str, ...]
    defaults: dict[str, str]


DEFAULT_ENV_POLICY = EnvPolicy(
    allowlist_keys={
        "PATH",
        "HOME",
        "USER",
        "LOGNAME",
        "SHELL",
        "TMPDIR",
        "TMP",
        "TEMP",
        "HTTP_PROXY",
        "HTTPS_PROXY",
        "NO_PROXY",
        "http_proxy",
        "https_proxy",
        "no_proxy",
        "SSH_AUTH_SOCK",
        "NVM_DIR",
        "SystemRoot",
        "WINDIR",
        "ComSpec",
        "PATHEXT",
        "APPDATA",
    },
    # npm reads its configuration (registry, cache, auth) from npm_config_* variables.
    allowlist_prefixes=("npm_config_", "NPM_CONFIG_", "GIT_SSH"),
    defaults={
        "LANG": "C.UTF-8",
        "LC_ALL": "C.UTF-8",
        "TZ": "UTC",
        "NO_COLOR": "1",
        "GIT_TERMINAL_PROMPT": "0",
        "npm_config_fund": "false",
        "npm_config_audit": "false",
        "npm_config_update_notifier": "false",
    },
)


def build_env(extra_env: dict[str, str] | None = None, policy: EnvPolicy = DEFAULT_ENV_POLICY) -> dict[str, str]:
    env: dict[str, str] = {}
    for key, value in os.environ.items():
        if key in policy.allowlist_keys or key.startswith(policy.allowlist_prefixes):
            env[key] = value
    for key, value in policy.defaults.items():
        env.setdefault(key, value)
    if extra_env:
        env.update(extra_env)
    if not env.get("PATH"):
        env["PATH"] = os.defpath
    return env


class Runner(Protocol):
    async def run(self, command: Sequence[str], cwd: Path) -> str: ...


class ProcessRunner:
    """Run external commands with an explicit working directory.

    Never touches the process-wide CWD, so independent verifications may run concurrently.
    """

    def __init__(self, extra_env: dict[str, str] | None = None, policy: EnvPolicy = DEFAULT_ENV_POLICY) -> None:
        self._env = build_env(extra_env=extra_env, policy=policy)

    async def run(self, command: Sequence[str], cwd: Path) -> str:
        argv = [str(c) for c in command]
        logger.debug("exec %s (cwd=%s)", argv, cwd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=self._env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            binary = argv[0] if argv else "<empty>"
            raise ProcessError(argv, cwd, 127, stderr=f"ENOENT:{binary}") from None
        except OSError as exc:
            binary = argv[0] if argv else "<empty>"
            raise ProcessError(argv, cwd, 127, stderr=f"OSERROR:{binary}:{exc}") from None

        try:
            stdout_b, stderr_b = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        stdout = stdout_b.decode("utf-8", errors="replace")
        stderr = stderr_b.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            logger.debug("exit %s for %s: %s", proc.returncode, argv, stderr.strip())
            raise ProcessError(argv, cwd, proc.returncode or 1, stderr=stderr, stdout=stdout)
        return stdout
