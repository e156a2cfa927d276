from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import httpx
import typer
import uvicorn

from ....core.logging_utils import log_event, setup_rotating_logger
from ....relay.webhook import create_relay_app


def register_relay_commands(
    app: typer.Typer,
    *,
    require_config: Callable,
    raise_exit: Callable,
    post_json: Callable,
) -> None:
    @app.command("serve")
    def serve(
        path: Optional[Path] = typer.Option(None, "--path", help="Project root path"),
        config_file: Optional[Path] = typer.Option(
            None, "--config", help="Config file (default: <root>/device-relay.yml)"
        ),
        host: Optional[str] = typer.Option(None, "--host", help="Host to bind"),
        port: Optional[int] = typer.Option(None, "--port", help="Port to bind"),
    ):
        """Run the Telegram webhook relay."""
        config = require_config(path, config_file)
        logger = setup_rotating_logger("device-relay", config.log)
        bind_host = host or config.relay.host
        bind_port = port or config.relay.port
        log_event(
            logger,
            logging.INFO,
            "relay.serve.starting",
            root=config.root,
            host=bind_host,
            port=bind_port,
        )
        typer.echo(f"Serving relay on http://{bind_host}:{bind_port}")
        uvicorn.run(
            create_relay_app(config, logger=logger),
            host=bind_host,
            port=bind_port,
        )

    @app.command("register")
    def register(
        url: str = typer.Option(..., "--url", help="Relay base URL"),
        bot_token: str = typer.Option(..., "--bot-token", help="Telegram bot token"),
        nickname: str = typer.Option(..., "--nickname", help="Device nickname"),
        fcm_token: str = typer.Option(..., "--fcm-token", help="FCM registration token"),
        timeout: float = typer.Option(10.0, "--timeout", help="Timeout (seconds)"),
    ):
        """Announce a device endpoint to the relay, as the device app does."""
        payload = {"bot_token": bot_token, "nickname": nickname, "fcm_token": fcm_token}
        try:
            response = post_json(
                f"{url.rstrip('/')}/register_nickname", payload, timeout=timeout
            )
        except httpx.HTTPError as exc:
            raise_exit(f"Registration request failed: {exc}", cause=exc)
        body = (response.text or "").strip()
        if response.status_code != 200:
            raise_exit(f"Registration rejected ({response.status_code}): {body}")
        typer.echo(
            f"Registered nickname {nickname!r}; now send /register {nickname} to the bot."
        )
