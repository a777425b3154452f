"""Example script demonstrating mailguard delivery with fallback."""

import asyncio
import logging

from mailguard import DeliveryDispatcher, Message
from mailguard.backends import default_backends
from mailguard.config import settings

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    """Send ten emails through two flaky providers."""

    logger.info("=" * 60)
    logger.info("mailguard delivery demo")
    logger.info("=" * 60)

    dispatcher = DeliveryDispatcher.from_settings(default_backends(), settings)

    for i in range(1, 11):
        email = Message(
            id=f"email-{i}",
            to=f"user{i}@example.com",
            subject="Test Email",
            body="Hello, this is a test.",
        )

        result = await dispatcher.dispatch(email)
        logger.info(result.describe())

    logger.info("-" * 60)
    logger.info("Breaker status:")
    for backend in dispatcher.backends:
        status = dispatcher.breaker(backend.name).get_status()
        logger.info(f"  {status['name']}: {status['state']} ({status['failure_count']} failures)")
    logger.info(f"Delivered: {len(dispatcher.ledger)}")


if __name__ == "__main__":
    asyncio.run(main())
