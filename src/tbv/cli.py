import asyncio
import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.table import Table

from tbv.config import settings
from tbv.errors import DescriptorError
from tbv.models.progress import ProgressReport, StageStatus
from tbv.models.result import VerificationResult
from tbv.verifier import Verifier

app = typer.Typer(add_completion=False, help="Verify npm tarballs against their source repository.")
console = Console()

_STATUS_STYLE = {
    StageStatus.PENDING: "[dim]pending[/dim]",
    StageStatus.WORKING: "[cyan]working[/cyan]",
    StageStatus.PASS: "[green]pass[/green]",
    StageStatus.FAIL: "[red]fail[/red]",
    StageStatus.WARN: "[yellow]warn[/yellow]",
    StageStatus.SKIPPED: "[dim]skipped[/dim]",
}


def render_progress(progress: ProgressReport) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Message", overflow="fold")
    for stage in progress.stages.values():
        table.add_row(stage.title, _STATUS_STYLE[stage.status], stage.message or "")
    return table


def write_report(result: VerificationResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = result.as_dict()
    if path.suffix.lower() in {".yaml", ".yml"}:
        path.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")
    else:
        path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    return path


def _configure_logging(trace: bool) -> None:
    if not trace:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
        force=True,
    )
    # httpx/httpcore are noisy at DEBUG
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


@app.callback()
def main() -> None:
    """tbv: does the published tarball match what its source says should have been published?"""


@app.command()
def verify(
    descriptor: str = typer.Argument(..., help="[@scope/]name[@version]; version defaults to the `latest` dist-tag."),
    registry: str = typer.Option(settings.registry_url, help="Registry base URL."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON instead of a table."),
    report: Path | None = typer.Option(None, help="Write the result to this path (.json, .yaml or .yml)."),
    trace: bool = typer.Option(False, help="Log commands and the full manifest diff."),
) -> None:
    """Verify one published package against its source repository."""
    _configure_logging(trace)
    verifier = Verifier(registry_url=registry)
    progress = ProgressReport.create()

    try:
        if as_json:
            result = asyncio.run(verifier.verify(descriptor, progress=progress))
        else:
            with Live(render_progress(progress), console=console, transient=False) as live:
                progress.subscribe(lambda _stage: live.update(render_progress(progress)))
                result = asyncio.run(verifier.verify(descriptor, progress=progress))
    except DescriptorError as e:
        console.print(f"[red]ERROR[/red] {e}")
        raise typer.Exit(code=2)

    if as_json:
        typer.echo(json.dumps(result.as_dict(), ensure_ascii=False, indent=2))
    elif result.ok:
        console.print(f"[green]OK[/green] {result.descriptor} matches {result.metadata.repo_url if result.metadata else ''}")
    else:
        failed = progress.failed_stage
        reason = f"{failed.title}: {failed.message}" if failed else "verification failed"
        console.print(f"[red]FAIL[/red] {result.descriptor} ({reason})")

    if report is not None:
        out = write_report(result, report)
        if not as_json:
            console.print(f"[green]OK[/green] wrote {out}")

    raise typer.Exit(code=0 if result.ok else 1)


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str
    fix_hint: str = ""


def _check_cmd(cmd: str, env_var: str) -> CheckResult:
    p = shutil.which(cmd)
    if p:
        return CheckResult(name=f"cmd:{cmd}", ok=True, detail=p)
    return CheckResult(
        name=f"cmd:{cmd}",
        ok=False,
        detail="not found in PATH",
        fix_hint=f"Install '{cmd}' or point {env_var} at it.",
    )


def _check_import(module_name: str) -> CheckResult:
    try:
        __import__(module_name)
        return CheckResult(name=f"python:{module_name}", ok=True, detail="import OK")
    except ImportError as e:
        return CheckResult(name=f"python:{module_name}", ok=False, detail=str(e), fix_hint="pip install -e .")


def _fmt(res: CheckResult) -> str:
    tag = "OK" if res.ok else "MISSING"
    s = f"[{tag:7}] {res.name}: {res.detail}"
    if (not res.ok) and res.fix_hint:
        s += f"\n          fix: {res.fix_hint}"
    return s


def run_doctor_checks() -> list[CheckResult]:
    checks = [
        _check_cmd(settings.git_bin, "TBV_GIT_BIN"),
        _check_cmd(settings.npm_bin, "TBV_NPM_BIN"),
        _check_cmd(settings.node_bin, "TBV_NODE_BIN"),
    ]
    checks.extend(_check_import(m) for m in ("httpx", "pydantic", "pydantic_settings", "rich", "yaml"))
    return checks


@app.command()
def doctor() -> None:
    """Check that git, npm and node are available."""
    results = run_doctor_checks()
    for res in results:
        console.print(_fmt(res), markup=False, highlight=False)
    raise typer.Exit(code=0 if all(r.ok for r in results) else 1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(8000),
    reload: bool = typer.Option(False),
) -> None:
    """Run API server."""
    import uvicorn

    uvicorn.run("tbv.api:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
