"""
microstat Core Module.

This module provides the main entry point for microstat, a Micropub
endpoint for statically generated sites.

The microstat entry point embeds Gunicorn to run the Micropub Flask app,
which:
1. Receives posts via Micropub (POST /micropub), authenticated with IndieAuth
2. Writes each post (and its media) into the site's source tree
3. Runs the configured publish command, removing the post again if it fails
4. Sends webmentions to the URLs the post replies to, or pings micro.blog

Functions:
    configure_logging(debug) -> None:
        Configure root logging (rotating file + stdout).
    main() -> None:
        Entry point for the console script.

Example:
    Run via console script:
        $ microstat
        $ microstat --debug
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

LOG_FILE = "microstat.log"


def configure_logging(debug: bool = False) -> None:
    """Configure global logging with a 10MB rotating file and stdout."""
    log_level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear any existing handlers to avoid duplicates (e.g., from gunicorn)
    root_logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    log_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3
    )
    log_handler.setLevel(log_level)
    log_handler.setFormatter(formatter)
    root_logger.addHandler(log_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def check_config(config: Dict[str, Any]) -> List[str]:
    """Validate configuration and log every violation.

    Returns:
        The list of violations; empty if the configuration is usable.
    """
    from config import validate_config

    violations = validate_config(config)
    if violations:
        logger.error("Couldn't start: configuration is invalid!")
        for violation in violations:
            logger.error(f"  - {violation}")
        logger.error("Please copy config.yml.example to config.yml and modify the values as described in the comments.")
    return violations


def main(debug: bool = False) -> None:
    """Main entry point for the microstat console command.

    Args:
        debug: Enable debug logging. Can also be set via --debug flag or the
               MICROSTAT_DEBUG environment variable.

    Exits with status 1 if the configuration is invalid.
    """
    from gunicorn.app.base import BaseApplication
    from config import load_config
    from micropub import create_app
    from publishing import RequestHandler

    if not debug:
        debug = os.environ.get("MICROSTAT_DEBUG", "").lower() in ("true", "1", "yes")
        if len(sys.argv) > 1 and "--debug" in sys.argv:
            debug = True

    configure_logging(debug)
    if debug:
        logger.info("Debug mode enabled: verbose logging")

    logger.info("Loading configuration from config.yml")
    config = load_config()
    if check_config(config):
        sys.exit(1)

    handler = RequestHandler.from_config(config)
    app = create_app(handler, config=config)

    listen_port = config["app"]["listen_port"]
    config_path = os.path.join(os.path.dirname(__file__), "gunicorn_config.py")

    class StandaloneApplication(BaseApplication):
        """Custom Gunicorn application for embedding within the microstat entry point."""

        def __init__(self, app, options=None):
            self.options = options or {}
            self.application = app
            super().__init__()

        def load_config(self):
            config_file = self.options.get("config")
            if config_file:
                with open(config_file, "r") as f:
                    config_code = f.read()
                config_namespace = {}
                exec(config_code, config_namespace)
                for key, value in config_namespace.items():
                    if key in self.cfg.settings and value is not None:
                        self.cfg.set(key.lower(), value)

            self.cfg.set("bind", self.options["bind"])
            if self.options.get("debug"):
                self.cfg.set("loglevel", "debug")

        def load(self):
            return self.application

    logger.info(f"Listening on port {listen_port}.")
    options = {
        "config": config_path,
        "bind": f"0.0.0.0:{listen_port}",
        "debug": debug,
    }
    StandaloneApplication(app, options).run()


# Allow running as a script for development/testing
if __name__ == "__main__":
    main()
