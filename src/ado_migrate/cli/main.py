"""Main CLI entry point for the Azure DevOps to GitHub migration tool."""

import sys
import asyncio
from typing import List, Optional
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from ..config.config import Config
from ..models import Inventory
from ..utils.logging import setup_logging
from ..migration.engine import MigrationEngine
from ..migration.orchestrator import RunReport
from ..migration.steps import Step

console = Console()

PLAN_OPTIONS = (
    'create_teams',
    'link_idp_groups',
    'lock_source_repos',
    'disable_source_repos',
    'rewire_pipelines',
    'download_migration_logs',
)


@click.group()
@click.version_option(version='0.1.0', prog_name='ado-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """Azure DevOps to GitHub Migration Tool - Migrate repositories, teams and pipelines."""
    ctx.ensure_object(dict)

    # Store config path and verbose flag
    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Setup basic logging first (will be enhanced later with config)
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level)


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]ADO Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your Azure DevOps and GitHub details[/yellow]'
        )

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.option('--sequential', is_flag=True, help='Migrate one repository at a time')
@click.option('--all', 'all_', is_flag=True, help='Enable every optional step')
@click.option('--create-teams', is_flag=True, help='Create Maintainers and Admins teams')
@click.option(
    '--link-idp-groups', is_flag=True, help='Link teams to identity provider groups'
)
@click.option('--lock-ado-repos', is_flag=True, help='Lock source repos before migrating')
@click.option(
    '--disable-ado-repos', is_flag=True, help='Disable source repos after migrating'
)
@click.option('--rewire-pipelines', is_flag=True, help='Point pipelines at GitHub')
@click.option(
    '--download-migration-logs', is_flag=True, help='Download migration logs'
)
@click.option('--ado-org', help='Only migrate this Azure DevOps organization')
@click.option('--ado-team-project', help='Only migrate this team project')
@click.option(
    '--repo-list',
    type=click.Path(exists=True),
    help='CSV file (org, teamproject, repo) of repositories to migrate',
)
@click.option(
    '--dry-run',
    is_flag=True,
    help='Perform a dry run without making changes',
)
@click.pass_context
def migrate(
    ctx: click.Context,
    sequential: bool,
    all_: bool,
    create_teams: bool,
    link_idp_groups: bool,
    lock_ado_repos: bool,
    disable_ado_repos: bool,
    rewire_pipelines: bool,
    download_migration_logs: bool,
    ado_org: Optional[str],
    ado_team_project: Optional[str],
    repo_list: Optional[str],
    dry_run: bool,
) -> None:
    """Start the migration process."""
    console.print(
        Panel.fit(
            '[bold blue]ADO Migration Tool[/bold blue]\n'
            'Starting migration process...',
            border_style='blue',
        )
    )

    if dry_run:
        console.print(
            '[yellow]Running in dry-run mode - no changes will be made[/yellow]'
        )

    try:
        # Load configuration
        config = _load_config(ctx)

        # Setup logging with config file settings
        _setup_logging_with_config(ctx, config)

        _apply_migrate_options(
            config,
            all_=all_,
            create_teams=create_teams,
            link_idp_groups=link_idp_groups,
            lock_source_repos=lock_ado_repos,
            disable_source_repos=disable_ado_repos,
            rewire_pipelines=rewire_pipelines,
            download_migration_logs=download_migration_logs,
        )
        if sequential:
            config.migration.sequential = True
        if ado_org:
            config.migration.org_filter = ado_org
        if ado_team_project:
            config.migration.team_project_filter = ado_team_project
        if repo_list:
            config.migration.repo_list = repo_list
        if dry_run:
            config.migration.dry_run = True

        # Run migration
        report = asyncio.run(_run_migration(config, config.migration.dry_run))

    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    if report is not None and not report.success:
        sys.exit(1)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and connectivity to both platforms."""
    console.print(
        Panel.fit(
            '[bold cyan]ADO Migration Tool[/bold cyan]\nValidating configuration...',
            border_style='cyan',
        )
    )

    try:
        # Load configuration
        config = _load_config(ctx)

        engine = MigrationEngine(config)
        try:
            ado_ok, github_ok = engine.test_connectivity()
        finally:
            engine.close()

        if not ado_ok:
            raise ConnectionError('Cannot connect to Azure DevOps')
        if not github_ok:
            raise ConnectionError('Cannot connect to GitHub')

        console.print('[green]✓[/green] Connectivity validation passed')
        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the effective migration configuration."""
    console.print(
        Panel.fit(
            '[bold magenta]ADO Migration Tool[/bold magenta]\nMigration Status',
            border_style='magenta',
        )
    )

    try:
        # Load configuration
        config = _load_config(ctx)

        # Setup logging with config file settings
        _setup_logging_with_config(ctx, config)

        # Create status table
        table = Table(title='Migration Configuration')
        table.add_column('Setting', style='cyan')
        table.add_column('Value', style='green')

        migration = config.migration
        table.add_row('Azure DevOps URL', config.source.url)
        table.add_row('GitHub API URL', config.target.api_url)
        table.add_row('GitHub Org', config.target.org)
        table.add_row('Mode', 'Sequential' if migration.sequential else 'Parallel')
        for option in PLAN_OPTIONS:
            label = option.replace('_', ' ').title()
            table.add_row(label, '✓' if getattr(migration, option) else '✗')
        table.add_row('Org Filter', migration.org_filter or '-')
        table.add_row('Team Project Filter', migration.team_project_filter or '-')
        table.add_row('Repo List', migration.repo_list or '-')
        table.add_row('Max Concurrent Waits', str(migration.max_concurrent_waits))

        console.print(table)

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _apply_migrate_options(config: Config, all_: bool = False, **options: bool) -> None:
    """Switch on every plan option requested on the command line."""
    for option in PLAN_OPTIONS:
        if all_ or options.get(option):
            setattr(config.migration, option, True)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)
    else:
        # Try to load from default locations
        default_paths = ['config.yaml', 'config.yml', '.ado-migrate.yaml']
        for path in default_paths:
            if Path(path).exists():
                return Config.from_file(path)

        # Fall back to environment variables
        try:
            return Config.from_env()
        except Exception:
            raise FileNotFoundError(
                'No configuration found. Use --config to specify a file or run "ado-migrate init" to create one.'
            )


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Use config logging settings, but allow verbose flag to override level
    log_level = 'DEBUG' if verbose else config.logging.level

    setup_logging(
        level=log_level,
        log_file=config.logging.file,
        log_format=config.logging.format,
        secrets=config.secrets,
    )


async def _run_migration(config: Config, dry_run: bool = False) -> Optional[RunReport]:
    """Run the migration process with progress display.

    Returns:
        The run report, or None for a dry run
    """
    engine = MigrationEngine(config)

    with Progress(
        SpinnerColumn(),
        TextColumn('[progress.description]{task.description}'),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(
            '[yellow]Planning migration...' if dry_run else '[blue]Migrating repositories...',
            total=None,
        )

        try:
            if dry_run:
                inventory, steps = await engine.dry_run()
                progress.update(task, description='[green]Dry run completed')
            else:
                report = await engine.migrate()
                progress.update(task, description='[green]Migration completed')
        except asyncio.CancelledError:
            engine.abort()
            raise
        except Exception as e:
            progress.update(task, description=f'[red]Failed: {e}')
            raise

    if dry_run:
        console.print('[green]✓[/green] Dry run completed successfully')
        _display_plan(inventory, steps)
        return None

    _display_run_report(report)
    return report


def _display_plan(inventory: Inventory, steps: List[Step]) -> None:
    """Display the steps a migration would run."""
    table = Table(title=f'Migration Plan ({inventory.repo_count} repositories)')
    table.add_column('#', style='blue', justify='right')
    table.add_column('Step', style='cyan')
    table.add_column('Location', style='white')
    table.add_column('Target', style='green')

    for number, step in enumerate(steps, start=1):
        location = f'{step.org}/{step.team_project}'
        if step.repo:
            location = f'{location}/{step.repo}'
        table.add_row(
            str(number),
            step.kind.value,
            location,
            step.target_repo or step.team_name or '',
        )

    console.print(table)


def _display_run_report(report: RunReport) -> None:
    """Display migration summary results."""
    table = Table(title='Migration Summary')
    table.add_column('Mode', style='cyan')
    table.add_column('Total', style='blue')
    table.add_column('Succeeded', style='green')
    table.add_column('Failed', style='red')
    table.add_column('Skipped', style='yellow')

    table.add_row(
        report.mode.title(),
        str(report.total_repositories),
        str(report.succeeded),
        str(report.failed),
        str(report.skipped),
    )
    console.print(table)

    if report.completed_at:
        duration = report.completed_at - report.started_at
        console.print(f'\n[blue]Migration Duration:[/blue] {duration}')

    warnings = [d.describe() for d in report.duplicate_target_names]
    warnings.extend(
        f'No GitHub service connection for org {org}'
        for org in report.orgs_missing_credential
    )
    if warnings:
        console.print(f'\n[yellow]Warnings ({len(warnings)}):[/yellow]')
        for warning in warnings[:5]:  # Show first 5 warnings
            console.print(f'  • {warning}')
        if len(warnings) > 5:
            console.print(f'  ... and {len(warnings) - 5} more warnings')

    errors = [f'{o.location}: {o.error}' for o in report.outcomes if o.status == 'failed']
    if errors:
        console.print(f'\n[red]Errors ({len(errors)}):[/red]')
        for error in errors[:5]:  # Show first 5 errors
            console.print(f'  • {error}')
        if len(errors) > 5:
            console.print(f'  ... and {len(errors) - 5} more errors')

    if report.aborted:
        console.print('\n[red]Migration aborted at the first failure[/red]')
    elif report.success:
        console.print('\n[green]✓[/green] Migration completed successfully')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]Error: {e}[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
