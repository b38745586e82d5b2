"""CLI commands for gputop."""

from pathlib import Path

import click

from gputop.config import Config
from gputop.device import ConfigError, NvmlDevice, QueryError


def _load_config(path: Path | None) -> Config:
    try:
        return Config.load(path)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default ~/.config/gputop/config.toml)",
)
@click.option("--interval", type=float, help="Seconds between samples")
@click.option("--device", "device_index", type=int, help="NVML device index")
@click.version_option(package_name="gputop")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    interval: float | None,
    device_index: int | None,
) -> None:
    """Live GPU telemetry dashboard."""
    config = _load_config(config_path)
    if interval is not None:
        config.sampling.interval = interval
    if device_index is not None:
        config.sampling.device_index = device_index
    try:
        config.validate()
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path

    if ctx.invoked_subcommand is not None:
        return

    from gputop.app import GputopApp
    from gputop.logging import configure

    configure(config)
    app = GputopApp(NvmlDevice(config.sampling.device_index), config)
    app.run()


@main.command()
@click.pass_context
def snapshot(ctx: click.Context) -> None:
    """Print a single reading and exit."""
    from gputop.app import format_memory, format_mib
    from gputop.monitor import SnapshotBuilder

    config: Config = ctx.obj["config"]
    device = NvmlDevice(config.sampling.device_index)
    try:
        with device:
            snap = SnapshotBuilder(device).sample()
    except QueryError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    click.echo(f"Device:      {snap.name}")
    click.echo(f"Driver:      {snap.driver_version} (CUDA {snap.runtime_version})")
    click.echo(f"Temperature: {snap.temperature}°C")
    click.echo(f"Power:       {snap.power_usage / 1000:.1f} W")
    click.echo(
        f"Memory:      {format_mib(snap.memory.used)} / {format_mib(snap.memory.total)}"
    )
    fans = " ".join(f"{speed}%" for speed in snap.fan_speeds) or "n/a"
    click.echo(f"Fans:        {fans}")

    if not snap.processes:
        click.echo("\nNo processes using the device.")
        return

    click.echo(f"\n{'PID':>7}  {'Type':10}  {'Process name':24}  {'GPU Memory':>14}")
    click.echo("-" * 61)
    for proc in snap.processes:
        click.echo(
            f"{proc.pid:>7}  {str(proc.kind):10}  {proc.name[:24]:24}  "
            f"{format_memory(proc.used_gpu_memory):>14}"
        )


@main.group("config")
def config_group() -> None:
    """Manage the configuration file."""


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write the default configuration file."""
    config = Config()
    path: Path = ctx.obj["config_path"] or config.config_path
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")
    config.save(path)
    click.echo(f"Created config at {path}")


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective configuration."""
    import tomlkit

    config: Config = ctx.obj["config"]
    click.echo(tomlkit.dumps(config.to_document()), nl=False)


if __name__ == "__main__":
    main()
