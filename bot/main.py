import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

import config
from bot.handlers_registration import RegistrationFlow, create_registration_router
from registration_wizard import configure_logging

logger = logging.getLogger(__name__)


async def main() -> None:
    configure_logging(config.LOG_LEVEL)
    if not config.TELEGRAM_TOKEN:
        raise ValueError("TELEGRAM_TOKEN is not set. Fill .env file first.")

    bot = Bot(token=config.TELEGRAM_TOKEN)
    dp = Dispatcher(storage=MemoryStorage())
    dp.include_router(create_registration_router(RegistrationFlow()))

    logger.info("Starting registration wizard bot")
    try:
        await dp.start_polling(bot)
    finally:
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
