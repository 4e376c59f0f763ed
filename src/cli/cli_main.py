import os
import traceback
from typing import Optional

import click
import yaml

from src.cli.tools.role_seed import seed_entry
from src.utils.logging import get_logger, setup_cli_logging
from src.utils.rbac.engine import can_perform
from src.utils.rbac.errors import RBACError, ValidationError
from src.utils.rbac.models import Role, UserOverrideSet, UserSnapshot
from src.utils.rbac.permission_enum import Action, Resource
from src.utils.rbac.registry import expand_wildcards, load_role_seeds


def _load_yaml(path: str, param_hint: str):
    try:
        with open(path, 'r') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise click.BadParameter(f"{path} is not valid YAML: {e}", param_hint=param_hint)


@click.group()
def cli():
    pass


@click.command(name='seed-roles')
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help="Path to auth_roles.yaml (defaults to AUTH_ROLES_PATH or built-in roles)")
@click.option('--verbosity', '-v', type=int, default=3, help="Logging verbosity level (0-4)")
def seed_roles(config_path: Optional[str], verbosity: int):
    """Create the baseline roles in the database if they are missing."""
    setup_cli_logging(verbosity=verbosity)
    logger = get_logger(__name__)

    try:
        seed_entry(config_path or os.environ.get('AUTH_ROLES_PATH'), os.environ)
    except RBACError as e:
        logger.error(f"Role seeding failed: {e}")
        if verbosity >= 4:
            traceback.print_exc()
        raise click.ClickException(str(e))


@click.command(name='show-roles')
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help="Path to auth_roles.yaml")
def show_roles(config_path: Optional[str]):
    """Print the baseline roles that seed-roles would provision."""
    try:
        roles = load_role_seeds(config_path)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(yaml.safe_dump({'roles': [role.to_dict() for role in roles]}, sort_keys=False))


@click.command()
@click.option('--role-file', '-r', required=True, type=click.Path(exists=True, dir_okay=False),
              help="YAML role definition (name, description, permissions)")
@click.option('--overrides-file', '-o', type=click.Path(exists=True, dir_okay=False),
              help="YAML list of user overrides")
@click.option('--resource', required=True, type=click.Choice([r.value for r in Resource]))
@click.option('--action', required=True, type=click.Choice([a.value for a in Action]))
def check(role_file: str, overrides_file: Optional[str], resource: str, action: str):
    """Evaluate one access decision offline from YAML files."""
    try:
        role = Role.from_dict(expand_wildcards(_load_yaml(role_file, '--role-file')))
        overrides = UserOverrideSet.from_list(
            _load_yaml(overrides_file, '--overrides-file') if overrides_file else []
        )
    except ValidationError as e:
        raise click.BadParameter(str(e))

    user = UserSnapshot(id='cli', role=role, overrides=overrides)
    click.echo('allowed' if can_perform(user, resource, action) else 'denied')


cli.add_command(seed_roles)
cli.add_command(show_roles)
cli.add_command(check)


def main():
    cli()


if __name__ == '__main__':
    main()
