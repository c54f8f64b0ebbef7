"""Config commands -- view and modify the MIC settings.

Provides the ``micflow config`` sub-command group for reading, updating,
and resetting the user's settings file
(:class:`~micflow.models.MicSettings`).  The app secret is never written
here; ``app_secret_source`` only records where to read it from.
"""

from __future__ import annotations

import typer

from micflow.output import error, info, print_record, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    effective: bool = typer.Option(
        False,
        "--effective",
        "-e",
        help="Show settings after applying project config and environment overrides.",
    ),
) -> None:
    """Show current settings.

    Example::

        micflow config show
        micflow config show --effective --json
    """
    from micflow.config import get_config_dir, load_settings, resolve_settings

    settings = resolve_settings() if effective else load_settings()
    info(f"Config directory: {get_config_dir()}")
    print_record(settings.model_dump(mode="json"))


@config_app.command("path")
def config_path() -> None:
    """Print the path of the settings file."""
    from micflow.config import settings_path
    from micflow.output import get_output

    get_output().print_data(str(settings_path()))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Setting name, e.g. 'mic_host'."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a single setting.

    The value is coerced to the field's current type (bool, int, float or
    str) and validated against :class:`~micflow.models.MicSettings` before
    saving.

    Raises:
        typer.Exit: With code 2 for unknown keys or invalid values.

    Example::

        micflow config set app_key kid_abc123
        micflow config set mic_host auth.example.com
        micflow config set app_secret_source file:~/.secrets/mic
    """
    from micflow.config import load_settings, save_settings
    from micflow.models import MicSettings

    data = load_settings().model_dump(mode="json")
    if key not in data:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = data[key]
    coerced: object = value
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            # default_version also accepts strings such as "v3"
            coerced = value
    elif isinstance(current, float):
        try:
            coerced = float(value)
        except ValueError:
            error(f"Expected a number for {key}, got: {value}")
            raise typer.Exit(code=2) from None

    data[key] = coerced
    try:
        new_settings = MicSettings.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_settings(new_settings)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset settings to defaults. Asks for confirmation unless ``--force``."""
    from micflow.config import save_settings
    from micflow.models import MicSettings

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all settings to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_settings(MicSettings())
    success("Settings reset to defaults.")
