"""ZSphere instance operator CLI (zsi).

Usage:
    zsi validate vm.yaml      # Static spec checks, no remote calls
    zsi plan vm.yaml          # Print the CreateVmInstance payload
    zsi apply vm.yaml         # Create, or refresh an existing instance
    zsi refresh web-01        # Refresh stored state from the platform
    zsi destroy web-01        # Cascading delete of instance and data volumes
    zsi show web-01           # Print stored state

The Cloud API client is built by the callable named in ZSI_CLIENT_FACTORY
from the ZSPHERE_* connection settings.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click

from . import __version__
from .client import CloudApiClient, load_client_factory
from .config import ConnectionConfig, OperatorConfig
from .errors import ConfigurationError, PreconditionError, RemoteOperationError
from .lifecycle import InstanceLifecycle
from .models import VmInstanceState
from .request_builder import validate_spec
from .spec_loader import SpecLoadError, load_spec, load_state, remove_state, save_state


@contextmanager
def cli_errors() -> Iterator[None]:
    """Translate operator errors into click errors with a category prefix."""
    try:
        yield
    except SpecLoadError as e:
        raise click.ClickException(f"Spec error: {e}") from e
    except ConfigurationError as e:
        raise click.ClickException(f"Configuration error: {e}") from e
    except PreconditionError as e:
        raise click.ClickException(f"Precondition failed: {e}") from e
    except RemoteOperationError as e:
        raise click.ClickException(f"Remote operation failed: {e}") from e


def _operator_config(ctx: click.Context) -> OperatorConfig:
    config = ctx.obj.get("config")
    if config is None:
        with cli_errors():
            config = OperatorConfig.from_env()
        ctx.obj["config"] = config
    return config


def _client(ctx: click.Context) -> CloudApiClient:
    client = ctx.obj.get("client")
    if client is not None:
        return client

    config = _operator_config(ctx)
    if not config.client_factory:
        raise click.ClickException(
            "No Cloud API client configured. Set ZSI_CLIENT_FACTORY to 'module:callable'."
        )

    with cli_errors():
        factory = load_client_factory(config.client_factory)
        client = factory(ConnectionConfig.from_env())

    ctx.obj["client"] = client
    return client


def _lifecycle(ctx: click.Context) -> InstanceLifecycle:
    return InstanceLifecycle(_client(ctx))


def _state_path(ctx: click.Context, name: str, override: str | None) -> Path:
    if override:
        return Path(override)
    return _operator_config(ctx).state_path(name)


def _summary(state: VmInstanceState) -> dict[str, Any]:
    root = state.root_volume()
    return {
        "name": state.name,
        "uuid": state.uuid,
        "cpuNum": state.cpu_num,
        "memorySize": state.memory_size,
        "nics": [
            {"l3NetworkUuid": nic.l3_network_uuid, "ip": nic.ip} for nic in state.vm_nics
        ],
        "rootVolume": {"uuid": root.uuid, "sizeGb": root.size_gb} if root else None,
        "dataVolumes": [
            {"uuid": volume.uuid, "sizeGb": volume.size_gb} for volume in state.data_volumes()
        ],
    }


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="zsi")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """ZSphere instance operator (zsi).

    Declarative lifecycle for a single ZSphere VM instance.
    """
    ctx.ensure_object(dict)


@cli.command()
@click.argument("spec_file", type=click.Path(dir_okay=False))
def validate(spec_file: str) -> None:
    """Validate a spec without contacting the platform."""
    with cli_errors():
        spec = load_spec(Path(spec_file))
        validate_spec(spec)
    click.secho(f"✓ Spec for '{spec.name}' is valid", fg="green")


@cli.command()
@click.argument("spec_file", type=click.Path(dir_okay=False))
@click.pass_context
def plan(ctx: click.Context, spec_file: str) -> None:
    """Print the provisioning request a create would send."""
    with cli_errors():
        spec = load_spec(Path(spec_file))
        request = _lifecycle(ctx).plan(spec)
    click.echo(json.dumps(request.to_payload(), indent=2))


@cli.command()
@click.argument("spec_file", type=click.Path(dir_okay=False))
@click.option("--state", "state_file", help="State file (default: <state dir>/<name>.state.json)")
@click.pass_context
def apply(ctx: click.Context, spec_file: str, state_file: str | None) -> None:
    """Create the instance, or refresh it if it already exists."""
    with cli_errors():
        spec = load_spec(Path(spec_file))
        state_path = _state_path(ctx, spec.name, state_file)
        state = load_state(state_path)
        result = _lifecycle(ctx).apply(spec, state)
        save_state(state_path, result)

    click.secho(f"✓ Instance '{result.name}' is present ({result.uuid})", fg="green")
    click.echo(json.dumps(_summary(result), indent=2))


@cli.command()
@click.argument("name")
@click.option("--state", "state_file", help="State file (default: <state dir>/<name>.state.json)")
@click.pass_context
def refresh(ctx: click.Context, name: str, state_file: str | None) -> None:
    """Refresh stored state from the platform."""
    with cli_errors():
        state_path = _state_path(ctx, name, state_file)
        state = load_state(state_path)
        if state is None:
            raise click.ClickException(f"No stored state for '{name}' at {state_path}")
        result = _lifecycle(ctx).read(state)
        save_state(state_path, result)

    if result.is_present:
        click.secho(f"✓ Refreshed '{result.name}' ({result.uuid})", fg="green")
    else:
        click.secho(
            f"! Instance '{result.name}' no longer exists; next apply will re-create it",
            fg="yellow",
        )


@cli.command()
@click.argument("name")
@click.option("--state", "state_file", help="State file (default: <state dir>/<name>.state.json)")
@click.option("--expunge/--no-expunge", default=None, help="Override the stored expunge flag")
@click.pass_context
def destroy(ctx: click.Context, name: str, state_file: str | None, expunge: bool | None) -> None:
    """Delete the instance and its data volumes."""
    with cli_errors():
        state_path = _state_path(ctx, name, state_file)
        state = load_state(state_path)
        if state is None:
            click.echo(f"No stored state for '{name}', nothing to destroy")
            return
        if expunge is not None:
            state = state.model_copy(update={"expunge": expunge})

        report = _lifecycle(ctx).delete(state)
        remove_state(state_path)

    if report is None:
        click.echo(f"Instance '{name}' was already absent")
        return

    if not report.complete:
        click.secho(
            f"! Instance {report.instance_uuid} was already absent on the platform", fg="yellow"
        )
        return

    click.secho(f"✓ Destroyed instance {report.instance_uuid}", fg="green")
    if report.deleted_volume_uuids:
        click.echo(f"  Deleted data volumes: {', '.join(report.deleted_volume_uuids)}")
    if report.instance_expunged:
        click.echo("  Expunged instance and data volumes")


@cli.command()
@click.argument("name")
@click.option("--state", "state_file", help="State file (default: <state dir>/<name>.state.json)")
@click.pass_context
def show(ctx: click.Context, name: str, state_file: str | None) -> None:
    """Print stored state."""
    with cli_errors():
        state_path = _state_path(ctx, name, state_file)
        state = load_state(state_path)
    if state is None:
        raise click.ClickException(f"No stored state for '{name}' at {state_path}")
    click.echo(state.to_json())
