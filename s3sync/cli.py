# cli.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NoReturn, Optional

import typer
import click
import yaml

from .config import Backend, SyncOptions, load_config, resolve_backend
from .core import get_s3_client, list_all
from .download import download_scope
from .errors import S3SyncError, setup_logging
from .models import Scope
from .reconcile import Reconciler
from .sync import sync_prefix
from .utils import human_bytes, parse_s3_uri

app = typer.Typer(add_completion=False, help="Mirror S3 prefixes between buckets")

# ---------------- Settings kept in Typer context ----------------
@dataclass
class Settings:
    verbose: bool = False
    aws_profile: Optional[str] = None
    aws_region: Optional[str] = None
    backend: Optional[str] = None
    endpoint: Optional[str] = None

# ---------------- Helpers ----------------
def _backend_from_cfg(cfg: dict, settings: Settings) -> Backend:
    bcfg = (cfg.get("backend") or {}) if cfg else {}
    try:
        return resolve_backend(
            settings.backend or bcfg.get("name"),
            endpoint=settings.endpoint or bcfg.get("endpoint"),
        )
    except ValueError as e:
        raise typer.BadParameter(str(e))

def _client_from_cfg(cfg: dict, settings: Settings):
    """
    Resolve AWS auth/region with priority:
    CLI flags -> ENV (handled inside boto3) -> YAML.
    """
    aws = (cfg.get("aws") or {}) if cfg else {}
    backend = _backend_from_cfg(cfg, settings)
    return get_s3_client(
        aws_profile=settings.aws_profile or aws.get("profile"),
        aws_access_key_id=aws.get("access_key_id"),
        aws_secret_access_key=aws.get("secret_access_key"),
        region_name=settings.aws_region or aws.get("region"),
        endpoint_url=backend.endpoint_url,
        retries_max_attempts=aws.get("retries_max_attempts", 8),
        retries_mode=aws.get("retries_mode", "standard"),
        connect_timeout=aws.get("connect_timeout", 15),
        read_timeout=aws.get("read_timeout", 180),
    )

def _load_cfg(config: Optional[str]) -> dict:
    try:
        return load_config(config)
    except FileNotFoundError:
        raise typer.BadParameter(f"Config file not found: {config}", param_hint="--config")
    except yaml.YAMLError as e:
        raise typer.BadParameter(f"Invalid YAML in {config}: {e}", param_hint="--config")

def _parse_uri(uri: str, param: str):
    try:
        return parse_s3_uri(uri)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint=param)

def _fail(e: Exception) -> NoReturn:
    typer.secho(f"Error: {e}", fg=typer.colors.RED, bold=True, err=True)
    raise typer.Exit(code=2)

# ---------------- Root options (global) ----------------
@app.callback()
def _root(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
    profile: Optional[str] = typer.Option(None, "--profile", help="AWS profile name"),
    region: Optional[str] = typer.Option(None, "--region", help="AWS region (e.g. us-east-1)"),
    backend: Optional[str] = typer.Option(
        None,
        "--backend",
        help="Storage backend",
        click_type=click.Choice(["s3", "space"], case_sensitive=False),
    ),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Custom endpoint (e.g. sfo3.digitaloceanspaces.com)"),
):
    """
    Set up global Settings and logging once.
    """
    level = logging.DEBUG if verbose else logging.INFO
    setup_logging(level=level)

    ctx.obj = Settings(
        verbose=verbose,
        aws_profile=profile,
        aws_region=region,
        backend=backend,
        endpoint=endpoint,
    )

# ---------------- SYNC ----------------
@app.command("sync")
def cmd_sync(
    ctx: typer.Context,
    source: Optional[str] = typer.Option(None, "--src", help="Source S3 URI (e.g. s3://bucket/public/)"),
    target: Optional[str] = typer.Option(None, "--dst", help="Destination S3 URI"),
    delete_extra: Optional[bool] = typer.Option(None, "--delete/--no-delete", help="Delete keys that only exist on target"),
    dry_run: Optional[bool] = typer.Option(None, "--dry-run/--no-dry-run", help="Plan only; do not modify anything"),
    max_workers: Optional[int] = typer.Option(None, help="Parallel copy/delete workers"),
    max_attempts: Optional[int] = typer.Option(None, help="Attempts per object on transient errors"),
    progress: Optional[bool] = typer.Option(None, "--progress/--no-progress", help="Show progress bar"),
    show_errors: bool = typer.Option(False, "--show-errors/--no-show-errors", help="Print failed keys"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    cfg = _load_cfg(config)
    scfg = (cfg.get("sync") or {}) if cfg else {}

    src_uri = source or scfg.get("src")
    dst_uri = target or scfg.get("dst")
    if not src_uri or not dst_uri:
        raise typer.BadParameter("Provide --src and --dst or set sync.src and sync.dst in config.yaml")

    src_bucket, src_prefix = _parse_uri(src_uri, "--src")
    dst_bucket, dst_prefix = _parse_uri(dst_uri, "--dst")

    backend = _backend_from_cfg(cfg, ctx.obj)
    try:
        options = SyncOptions.from_mapping(
            scfg,
            max_workers=max_workers,
            max_attempts=max_attempts,
            dry_run=dry_run,
            progress=progress,
            acl=backend.acl,
        )
    except (TypeError, ValueError) as e:
        raise typer.BadParameter(str(e))
    delete_val = delete_extra if delete_extra is not None else bool(scfg.get("delete_extra", False))

    s3 = _client_from_cfg(cfg, ctx.obj)
    try:
        summary = sync_prefix(
            s3,
            src_bucket,
            src_prefix,
            dst_bucket,
            dst_prefix,
            delete_extra=delete_val,
            options=options,
        )
    except S3SyncError as e:
        _fail(e)

    lines = [f"Sync Summary{' (dry-run)' if summary.dry_run else ''}:"]
    lines.append(f" Add {summary.count_add} files, {human_bytes(summary.bytes_add)} in {dst_bucket}/{dst_prefix}")
    if delete_val:
        lines.append(f" Delete {summary.count_remove} files, {human_bytes(summary.bytes_remove)} in {dst_bucket}/{dst_prefix}")
    if summary.failures:
        lines.append(f" Failed {len(summary.failures)} objects")
    if summary.cancelled:
        lines.append(" Interrupted before completion")
    typer.echo("\n".join(lines))

    if show_errors:
        for f in summary.failures:
            typer.echo(f"[{f.operation.upper()} ERROR] {f.key}: {f.cause}")

    if summary.failures:
        raise typer.Exit(code=1)

# ---------------- LS ----------------
@app.command("ls")
def cmd_ls(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="S3 URI to list (e.g. s3://bucket/public/)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    cfg = _load_cfg(config)
    bucket, prefix = _parse_uri(path, "path")
    s3 = _client_from_cfg(cfg, ctx.obj)
    try:
        snapshot = list_all(s3, bucket, prefix)
    except S3SyncError as e:
        _fail(e)

    typer.echo(f"Bucket: {bucket}")
    typer.echo(f"{'Name':<48}  {'Size':>10}  LastModified")
    for rec in snapshot.values():
        key = snapshot.scope.key_for(rec.relative_key)
        lm = rec.last_modified.isoformat() if rec.last_modified else "-"
        typer.echo(f"{key:<48}  {rec.size:>10}  {lm}")
    typer.echo(f"\nList Total: {len(snapshot)} ({human_bytes(snapshot.total_bytes)})")

# ---------------- DOWNLOAD ----------------
@app.command("download")
def cmd_download(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Source S3 URI (e.g. s3://bucket/public/images/)"),
    to: str = typer.Option(".", "--to", help="Local destination directory"),
    overwrite: bool = typer.Option(True, "--overwrite/--no-overwrite", help="Overwrite existing files"),
    max_workers: int = typer.Option(8, help="Parallel workers"),
    progress: bool = typer.Option(False, "--progress/--no-progress", help="Show progress bar"),
    preserve_mtime: bool = typer.Option(False, "--preserve-mtime/--no-preserve-mtime", help="Set local mtime to S3 LastModified"),
    show_errors: bool = typer.Option(False, "--show-errors/--no-show-errors", help="Print failed keys"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    log = logging.getLogger("s3sync.cli.download")
    cfg = _load_cfg(config)
    bucket, prefix = _parse_uri(source, "source")
    s3 = _client_from_cfg(cfg, ctx.obj)

    try:
        res = download_scope(
            s3,
            bucket=bucket,
            prefix=prefix,
            dst_root=to,
            overwrite=overwrite,
            max_workers=max_workers,
            progress=progress,
            preserve_mtime=preserve_mtime,
        )
    except S3SyncError as e:
        _fail(e)

    log.info(
        "Downloaded=%d Errors=%d Dest=%s Bytes=%s",
        len(res["downloaded"]),
        len(res["errors"]),
        res["stats"]["dst_root"],
        human_bytes(res["stats"]["bytes"]),
    )
    typer.echo(f"Downloaded {len(res['downloaded'])} files into {res['stats']['dst_root']}")

    if show_errors and res.get("errors"):
        for e in res["errors"]:
            typer.echo(f"[ERROR] {e}")

    if res.get("errors"):
        raise typer.Exit(code=1)

# ---------------- RM ----------------
@app.command("rm")
def cmd_rm(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="S3 URI of the file or folder to remove"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    max_workers: int = typer.Option(8, help="Parallel delete batches"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    cfg = _load_cfg(config)
    bucket, prefix = _parse_uri(path, "path")
    if not prefix:
        raise typer.BadParameter("Refusing to remove a whole bucket", param_hint="path")
    if not yes and not typer.confirm(f"Delete everything under {path}?"):
        raise typer.Abort()

    s3 = _client_from_cfg(cfg, ctx.obj)
    try:
        snapshot = list_all(s3, bucket, prefix)
    except S3SyncError as e:
        _fail(e)

    reconciler = Reconciler(s3, SyncOptions(max_workers=max_workers))
    deleted, failures = reconciler.delete_phase(Scope(bucket, prefix), snapshot.values())
    for rec in deleted:
        typer.echo(f"{prefix}{rec.relative_key}")
    for f in failures:
        typer.secho(f"{prefix}{f.key}: {f.cause}", fg=typer.colors.RED, err=True)
    typer.echo(f"Removed {len(deleted)} files, {human_bytes(sum(r.size for r in deleted))}")
    if failures:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
