"""Main CLI entry point using Typer.

This module defines the root CLI application, the redirect commands and
the config command group.
"""

import shlex
from pathlib import Path
from typing import Optional, Annotated

import typer
from rich.console import Console

from imdsnat import __version__
from imdsnat.core.audit import AuditLogger, configure_audit_logger
from imdsnat.core.context import ExecutionContext, create_context
from imdsnat.core.output import console as app_console
from imdsnat.core.config import (
    DEFAULT_CONFIG_PATH,
    RedirectConfig,
    get_example_config,
    init_config,
)
from imdsnat.core.exceptions import ImdsNatError
from imdsnat.services.nftables import (
    RedirectSpec,
    build_rule_expression,
    create_reconciler,
)


# Create the main Typer app
app = typer.Typer(
    name="imdsnat",
    help="Redirect cloud metadata traffic to a local proxy with nftables.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")


# Type aliases for common options
DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        help="Preview changes without executing. Shows what would happen.",
        is_flag=True,
    ),
]

ForceOption = Annotated[
    bool,
    typer.Option(
        "--force",
        "-f",
        help="Overwrite existing files.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]

AppPortOption = Annotated[
    Optional[str],
    typer.Option(
        "--app-port",
        help="Port the local metadata proxy listens on.",
    ),
]

MetadataAddrOption = Annotated[
    Optional[str],
    typer.Option(
        "--metadata-addr",
        help="Metadata service address (IP or CIDR) to intercept.",
    ),
]

HostInterfaceOption = Annotated[
    Optional[str],
    typer.Option(
        "--host-interface",
        help="Ingress interface; a trailing + matches a prefix (e.g. cali+).",
    ),
]

HostIpOption = Annotated[
    Optional[str],
    typer.Option(
        "--host-ip",
        help="Address the local metadata proxy listens on (required).",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console = Console()
        console.print(f"imdsnat version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Redirect cloud metadata traffic to a local proxy with nftables.

    Keeps exactly one DNAT rule in table [bold]ip imdsnat[/bold], chain
    [bold]prerouting[/bold]. Safe to run on every proxy start.

    [bold]Examples:[/bold]
        imdsnat apply --host-ip 10.0.0.5 --host-interface cali+
        imdsnat apply --dry-run --host-ip 10.0.0.5
        imdsnat status --host-ip 10.0.0.5
        imdsnat config show
    """
    pass


def get_context(
    dry_run: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> ExecutionContext:
    """Create execution context from CLI options."""
    return create_context(
        dry_run=dry_run,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )


def handle_error(error: ImdsNatError) -> None:
    """Handle an ImdsNatError by printing formatted error and exiting."""
    app_console.error(error.message)

    if error.details:
        for detail in error.details:
            app_console.print_err(f"  [dim]{detail}[/dim]")

    if error.hint:
        app_console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def _resolve_redirect(
    ctx: ExecutionContext,
    app_port: Optional[str],
    metadata_addr: Optional[str],
    host_interface: Optional[str],
    host_ip: Optional[str],
) -> RedirectConfig:
    return ctx.config.redirect(
        app_port=app_port,
        metadata_address=metadata_addr,
        host_interface=host_interface,
        host_ip=host_ip,
    )


def _audit_logger(ctx: ExecutionContext) -> AuditLogger:
    audit = ctx.config.audit
    return configure_audit_logger(log_path=audit.log_path, enabled=audit.enabled)


# ============================================================================
# Redirect commands
# ============================================================================

@app.command("apply")
def apply_cmd(
    app_port: AppPortOption = None,
    metadata_addr: MetadataAddrOption = None,
    host_interface: HostInterfaceOption = None,
    host_ip: HostIpOption = None,
    config: ConfigOption = None,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Install the metadata redirect rule if it is missing.

    Ensures the nftables table and chain exist, then appends the DNAT rule
    unless an identical rule is already listed. Repeated runs do not
    duplicate the rule.
    """
    ctx = get_context(
        dry_run=dry_run, verbose=verbose, quiet=quiet, no_color=no_color, config=config,
    )

    try:
        redirect = _resolve_redirect(ctx, app_port, metadata_addr, host_interface, host_ip)
        spec = RedirectSpec.from_config(redirect)
        audit = _audit_logger(ctx)
        audit.log_session_start("apply", {
            "app_port": spec.app_port,
            "metadata_address": spec.metadata_address,
            "host_interface": spec.host_interface,
            "host_ip": spec.host_ip,
            "dry_run": dry_run,
        })

        reconciler = create_reconciler(ctx, timeout=redirect.nft_timeout, audit=audit)
        try:
            result = reconciler.reconcile(spec)
        except ImdsNatError as e:
            audit.log_session_end(e.exit_code)
            raise

        audit.log_session_end(0)

    except ImdsNatError as e:
        handle_error(e)
        return

    if result.installed:
        ctx.console.success(f"Metadata redirect installed: {spec}")
    else:
        ctx.console.success(f"Metadata redirect already in place: {spec}")

    if ctx.is_verbose:
        ctx.console.summary("Redirect", {
            "Rule": result.expression,
            "Installed this run": result.installed,
            "Dry run": ctx.dry_run,
        })


@app.command("show")
def show_cmd(
    app_port: AppPortOption = None,
    metadata_addr: MetadataAddrOption = None,
    host_interface: HostInterfaceOption = None,
    host_ip: HostIpOption = None,
    config: ConfigOption = None,
    no_color: NoColorOption = False,
) -> None:
    """Print the rule expression and the nft commands apply would run.

    Nothing is executed.
    """
    ctx = get_context(no_color=no_color, config=config)

    try:
        redirect = _resolve_redirect(ctx, app_port, metadata_addr, host_interface, host_ip)
    except ImdsNatError as e:
        handle_error(e)
        return

    spec = RedirectSpec.from_config(redirect)
    reconciler = create_reconciler(ctx, audit=AuditLogger(enabled=False))

    ctx.console.print(f"[bold]Rule:[/bold] {build_rule_expression(spec)}", soft_wrap=True)
    if not spec.host_ip:
        ctx.console.warn("host_ip is not set; apply will refuse to run")

    script = "\n".join(shlex.join(cmd) for cmd in reconciler.planned_commands(spec))
    ctx.console.nft(script, title="nft commands")


@app.command("status")
def status_cmd(
    app_port: AppPortOption = None,
    metadata_addr: MetadataAddrOption = None,
    host_interface: HostInterfaceOption = None,
    host_ip: HostIpOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Check whether the metadata redirect rule is installed.

    Read-only. Exits 0 if present, 1 if absent.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        redirect = _resolve_redirect(ctx, app_port, metadata_addr, host_interface, host_ip)
        spec = RedirectSpec.from_config(redirect)
        reconciler = create_reconciler(
            ctx, timeout=redirect.nft_timeout, audit=AuditLogger(enabled=False),
        )
        present = reconciler.status(spec)
    except ImdsNatError as e:
        handle_error(e)
        return

    ctx.console.summary("Metadata redirect", {
        "Rule": build_rule_expression(spec),
        "Installed": present,
    })

    if not present:
        raise typer.Exit(1)


# ============================================================================
# Config commands
# ============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Show current configuration.

    Displays the configuration file contents and the effective redirect
    settings after environment overrides.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config
        redirect = app_config.redirect()
    except ImdsNatError as e:
        handle_error(e)
        return

    ctx.console.print()
    ctx.console.print(f"[bold]Configuration file:[/bold] {ctx.config_path}")
    ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
    ctx.console.print()

    ctx.console.yaml(app_config.config.to_yaml(), title="Configuration")

    ctx.console.summary("Effective redirect", {
        "app_port": redirect.app_port,
        "metadata_address": redirect.metadata_address,
        "host_interface": redirect.host_interface,
        "host_ip": redirect.host_ip or "(not set)",
    })


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: ForceOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Initialize a new configuration file.

    Creates a configuration file with defaults and comments.
    """
    ctx = get_context(no_color=no_color, config=config)
    config_path = ctx.config_path

    try:
        init_config(config_path, force=force)
    except ImdsNatError as e:
        handle_error(e)
        return

    ctx.console.success(f"Configuration file created: {config_path}")
    ctx.console.hint("Set host_ip before running: imdsnat apply")


@config_app.command("example")
def config_example(no_color: NoColorOption = False) -> None:
    """Print example configuration file."""
    ctx = get_context(no_color=no_color)
    ctx.console.print(get_example_config(), markup=False)


# Entry point
if __name__ == "__main__":
    app()
