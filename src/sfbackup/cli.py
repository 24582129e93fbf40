from __future__ import annotations

import json
import logging
import sys
from typing import Optional, Tuple

import click

from . import __version__
from .api import SalesforceAPI, SFConfig
from .backup import plan_export, run_backup
from .config import BackupConfig
from .env_loader import load_env_files
from .exceptions import MissingCredentialsError
from .logging_config import configure_logging

_logger = logging.getLogger(__name__)

# Load .env very early, so everything else sees env vars
load_env_files()


def _supports_unicode_emoji() -> bool:
    enc = getattr(sys.stdout, "encoding", "") or ""
    return "UTF-8" in enc.upper()


def _connect() -> SalesforceAPI:
    api = SalesforceAPI(SFConfig.from_env())
    try:
        api.connect()
    except MissingCredentialsError as e:
        missing = ", ".join(e.missing)
        msg = (
            f"Missing Salesforce credentials: {missing}\n\n"
            "Set environment variables or create a .env file with:\n"
            "  SF_LOGIN_URL, SF_CLIENT_ID, SF_CLIENT_SECRET\n"
            "or provide an existing session via SF_ACCESS_TOKEN and SF_INSTANCE_URL."
        )
        raise click.ClickException(msg) from e
    return api


def _parse_soql_overrides(values: Tuple[str, ...]) -> dict:
    overrides = {}
    for v in values:
        name, sep, soql = v.partition("=")
        if not sep or not name.strip() or not soql.strip():
            raise click.BadParameter(f"expected OBJECT=QUERY, got {v!r}", param_hint="--soql")
        overrides[name.strip()] = soql.strip()
    return overrides


@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=True,
)
@click.version_option(__version__, "--version", prog_name="sfbackup")
@click.option(
    "-v",
    "--verbose",
    "loglevel",
    flag_value=logging.INFO,
    default=None,
    help="Enable INFO logs.",
)
@click.option(
    "-vv",
    "--very-verbose",
    "loglevel",
    flag_value=logging.DEBUG,
    help="Enable DEBUG logs.",
)
@click.pass_context
def cli(ctx: click.Context, loglevel: Optional[int]) -> None:
    """Back up Salesforce objects to CSV files."""
    ctx.ensure_object(dict)
    cfg = BackupConfig.from_env()
    ctx.obj["config"] = cfg
    configure_logging(loglevel, cfg.log_file)
    _logger.debug("CLI start, version=%s", __version__)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("run")
@click.option("--out", "out_dir", type=click.Path(file_okay=False), help="Output directory.")
@click.option(
    "--object",
    "objects",
    multiple=True,
    help="Object to back up (repeatable); default: SFBACKUP_OBJECTS or all objects.",
)
@click.option("--bulk/--no-bulk", default=None, help="Allow Bulk API jobs.")
@click.option("--where", help="Global WHERE condition (without the 'WHERE').")
@click.option(
    "--soql", "soql", multiple=True, help="Per-object query as OBJECT=QUERY (repeatable)."
)
@click.option("--no-progress", is_flag=True, help="Hide the progress bar.")
@click.pass_context
def run_cmd(
    ctx: click.Context,
    out_dir: Optional[str],
    objects: Tuple[str, ...],
    bulk: Optional[bool],
    where: Optional[str],
    soql: Tuple[str, ...],
    no_progress: bool,
) -> None:
    """Export every selected object to <out>/<Object>.csv."""
    cfg: BackupConfig = ctx.obj["config"]
    if out_dir:
        cfg.output_dir = out_dir
    if objects:
        cfg.objects = list(objects)
    if bulk is not None:
        cfg.use_bulk_api = bulk
    if where:
        cfg.global_where = where
    cfg.soql_overrides.update(_parse_soql_overrides(soql))

    api = _connect()
    result = run_backup(api, cfg, progress=not no_progress)

    if _supports_unicode_emoji():
        tick, cross, arrow = "✅", "❌", "→"
    else:
        tick, cross, arrow = "[OK]", "[FAIL]", "->"

    for export in result.exported:
        click.echo(
            f"{tick} {export.object_name}: {export.count} {export.unit} "
            f"{arrow} {export.output_path}"
        )
    if result.empty:
        click.echo(f"No data: {', '.join(result.empty)}")
    for name, err in result.failed.items():
        click.echo(f"{cross} {name}: {err}", err=True)

    if not result.success:
        raise click.ClickException(f"{len(result.failed)} object(s) failed.")


@cli.command("modes")
@click.option("--object", "object_name", required=True, help="sObject name (e.g. Account).")
@click.option("--bulk/--no-bulk", default=None, help="Allow Bulk API jobs.")
@click.pass_context
def modes_cmd(ctx: click.Context, object_name: str, bulk: Optional[bool]) -> None:
    """Show the retrieval mode and final query that 'run' would use."""
    cfg: BackupConfig = ctx.obj["config"]
    if bulk is not None:
        cfg.use_bulk_api = bulk
    api = _connect()
    mode, query, _ = plan_export(api, object_name, cfg)
    click.echo(f"{object_name}: {mode.name}")
    click.echo(query.text)


@cli.command("query")
@click.argument("soql")
@click.option("--all-rows", is_flag=True, help="Include deleted and archived rows.")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def query_cmd(soql: str, all_rows: bool, pretty: bool) -> None:
    """Run a SOQL query and print the first result page as JSON."""
    api = _connect()
    res = api.query_all(soql) if all_rows else api.query(soql)
    click.echo(json.dumps(res, indent=2 if pretty else None))
