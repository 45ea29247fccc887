"""CLI entry point."""

import os
import sys
import click
import logging
import signal
import threading
from typing import Any, Dict, Optional, Tuple
from click import Context

from ... import setup_logging
from ...config import default_config
from ...config.config_parser import parse_config
from ...config.models import DEFAULT_LOCAL_OBJECT, JasprConfig
from ...git import RealGit, create_git
from ...github import create_github_client
from ...stack import StackedPR
from ...typing import GitInterface, JasprError, Outcome, RefSpec

# Get module logger
logger = logging.getLogger(__name__)


def check(err: Exception) -> None:
    """Log the error and exit."""
    logger.error(f"{err}")
    sys.exit(1)


class AliasedGroup(click.Group):
    """Command group with support for aliases."""

    def __init__(self, name: Optional[str] = None, commands: Optional[Dict[str, click.Command]] = None,
                 **attrs: Any) -> None:
        """Initialize with aliases map."""
        super().__init__(name, commands, **attrs)
        self.aliases: Dict[str, str] = {}

    def add_alias(self, alias: str, command: str) -> None:
        """Add an alias for a command."""
        self.aliases[alias] = command

    def get_command(self, ctx: Context, cmd_name: str) -> Optional[click.Command]:
        """Get a command by name, supporting aliases."""
        if cmd_name in self.aliases:
            cmd_name = self.aliases[cmd_name]
        return super().get_command(ctx, cmd_name)


def parse_ref_spec(value: Optional[str], default_target_ref: str) -> RefSpec:
    """Parse ``[[local:]target]`` into a RefSpec."""
    if not value:
        return RefSpec(DEFAULT_LOCAL_OBJECT, default_target_ref)
    parts = value.split(":")
    if len(parts) > 2 or not all(parts):
        raise click.BadParameter(f"Invalid refspec: {value}. Expected [[local-object:]target-ref]")
    if len(parts) == 1:
        return RefSpec(DEFAULT_LOCAL_OBJECT, parts[0])
    return RefSpec(parts[0], parts[1])


def setup_git(directory: Optional[str], overrides: Dict[str, Any]) -> Tuple[JasprConfig, GitInterface]:
    """Load the config for the repository and create the git backend."""
    working_directory = os.path.abspath(directory or os.getcwd())
    bootstrap = default_config().model_copy(update={
        'working_directory': working_directory,
        'remote_name': overrides.get('remote_name') or default_config().remote_name,
    })
    try:
        probe = RealGit(bootstrap)
    except JasprError as e:
        logger.error(f"{e}")
        sys.exit(2)

    config = parse_config(probe.working_tree_dir, overrides, probe)
    return config, create_git(config)


def setup_stack(directory: Optional[str], verbose: int, remote: Optional[str],
                use_cli_git_client: bool) -> StackedPR:
    overrides: Dict[str, Any] = {'remote_name': remote}
    if use_cli_git_client:
        overrides['use_cli_git_client'] = True
    config, git_cmd = setup_git(directory, overrides)
    setup_logging(verbose, config.logs_directory, config.log_level)
    github = create_github_client(config)
    return StackedPR(config, github, git_cmd)


def report(outcome: Outcome) -> None:
    if outcome.is_warning:
        logger.warning(outcome.message)
    elif outcome.message:
        logger.info(outcome.message)


def common_options(f: Any) -> Any:
    f = click.option('--use-cli-git-client', is_flag=True, default=False,
                     help="Shell out to the git executable instead of using GitPython")(f)
    f = click.option('--remote', type=str, default=None, help="Name of the git remote (default: origin)")(f)
    f = click.option('-v', '--verbose', count=True,
                     help="Increase verbosity (can be used multiple times for more verbosity)")(f)
    f = click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
                     help='Run as if pyjaspr was started in DIRECTORY instead of the current working directory')(f)
    return f


@click.group(cls=AliasedGroup)
@click.pass_context
def cli(ctx: Context) -> None:
    """pyjaspr - Stacked Pull Requests on GitHub."""
    ctx.obj = {}


@cli.command(name="status", help="Show the status of the local stack")
@click.argument('refspec', required=False)
@common_options
def status(refspec: Optional[str], directory: Optional[str], verbose: int, remote: Optional[str],
           use_cli_git_client: bool) -> None:
    """Status command."""
    setup_logging(verbose)
    try:
        stackedpr = setup_stack(directory, verbose, remote, use_cli_git_client)
        ref_spec = parse_ref_spec(refspec, stackedpr.config.default_target_ref)
        click.echo(stackedpr.get_status_string(ref_spec), nl=False)
    except JasprError as e:
        check(e)


@cli.command(name="push", help="Push the local stack and create or update its pull requests")
@click.argument('refspec', required=False)
@common_options
def push(refspec: Optional[str], directory: Optional[str], verbose: int, remote: Optional[str],
         use_cli_git_client: bool) -> None:
    """Push command."""
    setup_logging(verbose)
    try:
        stackedpr = setup_stack(directory, verbose, remote, use_cli_git_client)
        report(stackedpr.push(parse_ref_spec(refspec, stackedpr.config.default_target_ref)))
    except JasprError as e:
        check(e)


@cli.command(name="merge", help="Merge the approved and passing bottom of the stack")
@click.argument('refspec', required=False)
@common_options
def merge(refspec: Optional[str], directory: Optional[str], verbose: int, remote: Optional[str],
          use_cli_git_client: bool) -> None:
    """Merge command."""
    setup_logging(verbose)
    try:
        stackedpr = setup_stack(directory, verbose, remote, use_cli_git_client)
        report(stackedpr.merge(parse_ref_spec(refspec, stackedpr.config.default_target_ref)))
    except JasprError as e:
        check(e)


@cli.command(name="auto-merge", help="Wait until the whole stack is mergeable, then merge it")
@click.argument('refspec', required=False)
@click.option('-i', '--interval', type=int, default=None,
              help="Seconds to wait between polls (default: 10)")
@common_options
def auto_merge(refspec: Optional[str], interval: Optional[int], directory: Optional[str], verbose: int,
               remote: Optional[str], use_cli_git_client: bool) -> None:
    """Auto-merge command."""
    setup_logging(verbose)
    cancel = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        stackedpr = setup_stack(directory, verbose, remote, use_cli_git_client)
        ref_spec = parse_ref_spec(refspec, stackedpr.config.default_target_ref)
        report(stackedpr.auto_merge(ref_spec, interval, cancel))
    except JasprError as e:
        check(e)
    finally:
        signal.signal(signal.SIGINT, previous_handler)


@cli.command(name="clean", help="Find remote branches whose pull requests are gone")
@click.option('-f', '--force', is_flag=True, default=False,
              help="Delete the orphaned branches instead of only listing them")
@common_options
def clean(force: bool, directory: Optional[str], verbose: int, remote: Optional[str],
          use_cli_git_client: bool) -> None:
    """Clean command."""
    setup_logging(verbose)
    try:
        stackedpr = setup_stack(directory, verbose, remote, use_cli_git_client)
        orphaned = stackedpr.clean(dry_run=not force)
        if orphaned and not force:
            logger.info("Re-run with --force to delete these branches")
    except JasprError as e:
        check(e)


@cli.command(name="install-commit-id-hook", help="Install a commit-msg hook that adds commit-id trailers")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if pyjaspr was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def install_commit_id_hook(directory: Optional[str], verbose: int) -> None:
    """Install hook command."""
    from ...git.hooks import install_commit_id_hook as install_hook
    setup_logging(verbose)
    try:
        hook = install_hook(os.path.abspath(directory or os.getcwd()))
        click.echo(f"Installed {hook}")
    except JasprError as e:
        check(e)


cli.add_alias('st', 'status')
cli.add_alias('up', 'push')


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
