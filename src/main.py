"""
Main application entry point for the academic portal.
"""

# Standard library imports
import argparse
import sys
from pathlib import Path

import uvicorn

# Third-party imports
from dotenv import load_dotenv

# Local imports
from adapters.gemini_adapter import GeminiGateway
from common.config import Config, load_config
from common.logging import get_logger, log_startup_message, setup_logging
from portal.websocket import create_portal_app

# Load environment variables from .env file at module level
load_dotenv()

logger = get_logger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Seleste Academic Portal")
    parser.add_argument("--port", type=int, help="Override the port to run on")
    parser.add_argument("--host", type=str, help="Override the host to run on")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument(
        "--skip-health-check",
        action="store_true",
        help="Start without checking that the generative service is reachable",
    )
    return parser.parse_args(argv)


def build_gateway(config: Config) -> GeminiGateway:
    try:
        return GeminiGateway(config.genai, config.video_polling)
    except ValueError as e:
        logger.critical(event="startup_failed", reason=str(e))
        sys.exit(1)


def main(argv=None) -> None:
    """Main entry point."""
    try:
        # Parse arguments
        args = parse_args(argv)

        # Load configuration
        config = load_config(args.config)

        # Setup logging
        setup_logging(config)

        gateway = build_gateway(config)

        # Health checks run in the app lifespan, on the loop that serves requests
        app = create_portal_app(
            config, gateway, startup_health_check=not args.skip_health_check
        )

        # Run with uvicorn (use command-line args if provided)
        host = args.host or config.portal.host
        port = args.port or config.portal.port

        log_startup_message("starting_server", host=host, port=port, text_model=config.genai.text_model)

        # Run uvicorn synchronously (it creates its own event loop)
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_config=None,  # Use our custom logging setup
            access_log=False,  # Disable default access logs
        )

    except KeyboardInterrupt:
        logger.info(event="application_shutdown", reason="Keyboard interrupt")
    except SystemExit as e:
        if e.code not in (0, None):
            logger.critical(event="application_failed", reason="Startup checks failed")
        else:
            logger.info(event="application_shutdown", exit_code=e.code)
        raise
    except Exception as e:
        logger.critical(event="application_crashed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    main()
