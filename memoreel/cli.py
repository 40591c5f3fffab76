"""Main CLI application with typer subcommands."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from dotenv import load_dotenv
from rich.prompt import Confirm
from rich.table import Table

from memoreel.utils.logging import (
    setup_logging, Verbosity, console, info, success, warn, error,
    make_progress,
)
from memoreel.utils.config import load_config, merge_cli_overrides, DEFAULT_CONFIG_YAML
from memoreel.utils.deps_check import check_all, print_dep_status

load_dotenv()

app = typer.Typer(
    name="memoreel",
    help="Turn a set of photos and clips into a styled memory video.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)


class BackendChoice(str, Enum):
    auto = "auto"
    compositor = "compositor"
    fallback = "fallback"


# ── Helper functions ──────────────────────────────────────────────────────────

def _load_manifest(path: Path) -> dict[str, Any]:
    """A JSON manifest ({media, style, options} or a bare media list) or a folder of media files."""
    from memoreel.media.descriptor import MediaType, media_type_for

    if path.is_dir():
        media = [
            {"id": f.name, "path": str(f), "filename": f.name, "type": media_type_for(f).value}
            for f in sorted(path.iterdir())
            if f.is_file() and media_type_for(f) != MediaType.unknown
        ]
        return {"media": media}
    if not path.is_file():
        error(f"Manifest not found: {path}")
        raise typer.Exit(1)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        error(f"Cannot read manifest {path}: {e}")
        raise typer.Exit(1)
    if isinstance(data, list):
        data = {"media": data}
    if not isinstance(data, dict) or not isinstance(data.get("media"), list):
        error("Manifest must be a list of media items or an object with a 'media' list")
        raise typer.Exit(1)

    # relative paths are relative to the manifest
    for item in data["media"]:
        if isinstance(item, dict) and item.get("path") and not Path(item["path"]).is_absolute():
            item["path"] = str(path.parent / item["path"])
    return data


# ── RENDER ────────────────────────────────────────────────────────────────────

@app.command()
def render(
    manifest: Annotated[Path, typer.Argument(help="JSON manifest or a folder of photos/videos")],
    style: Annotated[Optional[str], typer.Option("--style", "-s", help="Template name")] = None,
    duration: Annotated[Optional[float], typer.Option("--duration", "-d", help="Target seconds")] = None,
    backend: Annotated[Optional[BackendChoice], typer.Option(help="Render backend")] = None,
    output_dir: Annotated[Optional[Path], typer.Option("--output-dir", "-o")] = None,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Render one memory video and wait for it to finish."""
    setup_logging(Verbosity.VERBOSE if verbose else Verbosity.NORMAL)
    from memoreel.jobs.errors import ValidationError
    from memoreel.jobs.models import JobOptions, JobStatus
    from memoreel.service import build_queue

    cfg = load_config(config)
    cfg = merge_cli_overrides(cfg, {
        "rendering.backend": backend.value if backend else None,
        "rendering.output_dir": str(output_dir) if output_dir else None,
    })
    data = _load_manifest(manifest)
    opts = data.get("options") or {}
    target = duration or opts.get("targetDurationSeconds") or cfg.queue.default_target_duration

    queue = build_queue(cfg)
    with make_progress() as progress:
        task = progress.add_task("Queued", total=100)

        def on_event(ev) -> None:
            progress.update(task, completed=ev.progress, description=ev.status.capitalize())

        with queue.publisher.subscribe(on_event):
            try:
                job = queue.submit(data["media"], style or data.get("style"), JobOptions(target_duration=float(target)))
            except ValidationError as e:
                error(str(e))
                raise typer.Exit(1)
            queue.wait_idle()

    final = queue.get_status(job.id)
    if final is None or final.status != JobStatus.completed:
        error(f"Render failed: {final.error if final else 'job lost'}")
        raise typer.Exit(1)
    if final.degraded:
        warn(f"Rendered with the '{final.renderer}' backend: first clip only, no transitions")
    success(f"Video: {final.output_path}")


# ── TEMPLATES ─────────────────────────────────────────────────────────────────

@app.command()
def templates():
    """List the available style templates."""
    from memoreel.templates.catalog import TemplateCatalog

    catalog = TemplateCatalog()
    table = Table(title="Templates")
    table.add_column("Style", style="cyan")
    table.add_column("Name")
    table.add_column("Description")
    table.add_column("Music", style="dim")
    for t in catalog.list_templates():
        table.add_row(t["id"], t["displayName"], t["description"], catalog.music_for(t["id"]) or "-")
    console.print(table)


# ── DOCTOR ────────────────────────────────────────────────────────────────────

@app.command()
def doctor(
    strict: Annotated[bool, typer.Option("--strict", help="Fail when anything is missing")] = False,
):
    """Check ffmpeg and the filters the compositor needs."""
    setup_logging(Verbosity.NORMAL)
    ok = print_dep_status(check_all(), strict=strict)
    from memoreel.render.factory import create_backend
    backend = create_backend(load_config().rendering)
    info(f"Selected backend: {backend.name}")
    if not ok:
        raise typer.Exit(1)


# ── SERVE ─────────────────────────────────────────────────────────────────────

@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option(help="Bind host")] = None,
    port: Annotated[Optional[int], typer.Option(help="Port")] = None,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Start the HTTP API."""
    setup_logging(Verbosity.NORMAL)
    import uvicorn
    from memoreel.api.app import create_app

    cfg = load_config(config)
    uvicorn.run(
        create_app(cfg),
        host=host or cfg.server.host,
        port=port or cfg.server.port,
        log_level="info",
    )


# ── INIT CONFIG ───────────────────────────────────────────────────────────────

@app.command(name="init-config")
def init_config(
    force: Annotated[bool, typer.Option("--force", help="Overwrite without asking")] = False,
):
    """Generate a default config.yaml in the current directory."""
    setup_logging(Verbosity.NORMAL)
    p = Path("config.yaml")
    if p.exists() and not force:
        if not Confirm.ask("config.yaml exists. Overwrite?", default=False):
            raise typer.Exit(0)
    p.write_text(DEFAULT_CONFIG_YAML)
    success(f"Created {p}")


# ── ENTRY POINT ───────────────────────────────────────────────────────────────

def app_entry():
    app()


if __name__ == "__main__":
    app_entry()
