import logging

import typer

from .commands.history import register_history_commands
from .commands.relay import register_relay_commands
from .commands.utils import get_version, post_json, raise_exit, require_config

logger = logging.getLogger("device_relay.cli")

app = typer.Typer(add_completion=False)
history_app = typer.Typer(add_completion=False)


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"device-relay {get_version()}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    return


def main() -> None:
    """Entrypoint for CLI execution."""
    app()


register_relay_commands(
    app,
    require_config=require_config,
    raise_exit=raise_exit,
    post_json=post_json,
)
app.add_typer(history_app, name="history")
register_history_commands(
    history_app,
    require_config=require_config,
    raise_exit=raise_exit,
)


if __name__ == "__main__":
    main()
