import asyncio
import sys
import logging
from aiohttp import web

from src.config import load_settings
from src.domain.exceptions import ConfigurationException, DatabaseConnectionException
from src.infrastructure.database import DatabaseGateway
from src.application.bug_service import BugService
from src.api.routes import create_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

async def main():
    # Load settings from the environment and .env file
    try:
        settings = load_settings()
    except ConfigurationException as e:
        logger.error(str(e))
        sys.exit(1)

    logging.getLogger().setLevel(settings.log_level)

    # Gateway -> service -> HTTP handlers
    db_gateway = DatabaseGateway(
        db_url=settings.database_url,
        echo=settings.db_echo,
        environment=settings.app_env,
    )
    bug_service = BugService(db_gateway=db_gateway)
    app = create_app(bug_service, api_prefix=settings.api_prefix, cors_origin=settings.cors_origin)
    runner = None

    try:
        await db_gateway.connect()
        await db_gateway.create_schema()

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, settings.host, settings.port)
        await site.start()
        logger.info(f"Application running on port {settings.port} under /{settings.api_prefix}.")

        # Serve until cancelled
        await asyncio.Event().wait()
    except DatabaseConnectionException as e:
        logger.error(f"Cannot start without a database: {e}")
        sys.exit(1)
    finally:
        if runner is not None:
            await runner.cleanup()
        await db_gateway.disconnect()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server interrupted by user. Exiting gracefully.")
