from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import Any

from common.config import ConfigError, load_settings
from common.log import setup_logging
from daemon.control import ControlServer
from daemon.login_loop import LoginLoop
from daemon.notify import Notifier
from daemon.persist import PersistedState, PersistenceError, default_config_path, load_state
from daemon.state import SharedState
from daemon.watcher import ConfigWatcher

logger = logging.getLogger("daemon.main")


def load_initial_state(path: Path) -> PersistedState:
    try:
        return load_state(path)
    except PersistenceError as exc:
        logger.error("config %s unusable, starting with defaults: %s", path, exc)
        return PersistedState()


class DaemonApp:
    def __init__(self, settings: dict[str, Any], notifier: Notifier | None = None):
        self.settings = settings
        config_path = Path(settings["config_path"]).expanduser() if settings.get("config_path") else default_config_path()
        self.state = SharedState(load_initial_state(config_path), config_path)
        self.login_loop = LoginLoop(self.state, settings, notifier=notifier)
        self.control = ControlServer(
            self.state,
            settings,
            on_login=self.login_loop.login_once,
            get_status=self.login_loop.status,
        )
        self.watcher: ConfigWatcher | None = None
        if settings.get("watch_config", True):
            self.watcher = ConfigWatcher(self.state, interval=float(settings["watch_interval"]))

    async def run(self) -> None:
        logger.info("daemon starting config=%s", self.state.config_path)
        tasks = [
            asyncio.create_task(self.login_loop.run(), name="daemon-login-loop"),
            asyncio.create_task(self.control.run(), name="daemon-control-server"),
        ]
        if self.watcher is not None:
            tasks.append(asyncio.create_task(self.watcher.run(), name="daemon-config-watcher"))

        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        failure: BaseException | None = None
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                failure = task.exception()
                logger.error("task %s failed: %r", task.get_name(), failure)
                break
        if failure is not None:
            self.state.stop()
            if pending:
                await asyncio.wait(pending)

        if self.state.dirty:
            try:
                await self.state.persist()
            except PersistenceError as exc:
                logger.error("final save failed: %s", exc)
        logger.info("daemon stopped")
        if failure is not None:
            raise failure


def _install_signal_handlers(app: DaemonApp) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.state.stop)
        except NotImplementedError:
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(app.state.stop))


async def _amain(settings: dict[str, Any]) -> None:
    app = DaemonApp(settings)
    _install_signal_handlers(app)
    await app.run()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="HTU campus network login daemon")
    parser.add_argument("--settings", help="path to optional yaml settings file")
    parser.add_argument("--config", help="path to the json state file (credentials and cached urls)")
    parser.add_argument("--log-level", choices=["debug", "info", "warning", "error"])
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args.settings, {"config_path": args.config, "log_level": args.log_level})
    except ConfigError as exc:
        parser.error(str(exc))
    setup_logging(settings["log_level"])
    asyncio.run(_amain(settings))


if __name__ == "__main__":
    main()
