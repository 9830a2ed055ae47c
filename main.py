#!/usr/bin/env python3
"""
Clean Deterministic Startup - OpaY wallet bot

Configuration check, Telegram application, handler groups, scene registry,
then long polling until interrupted.
"""

import asyncio
import logging
import sys
from typing import List, Optional

from telegram import Update
from telegram.ext import Application, ContextTypes

from caching.simple_cache import settings_cache
from config import Config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def log_unhandled_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Last-resort error handler; handlers report their own errors to the user"""
    logger.error(f"❌ Unhandled error for update {getattr(update, 'update_id', None)}: {context.error}")


class CleanStartupManager:
    """Startup sequence with explicit steps; critical failures stop the bot"""

    CRITICAL_STEPS = ("Config", "Application")

    def __init__(self):
        self.application: Optional[Application] = None
        self.startup_complete = False
        self.startup_errors: List[str] = []

    async def validate_config(self) -> bool:
        missing = Config.validate()
        if missing:
            logger.error(f"❌ Missing configuration: {', '.join(missing)}")
            self.startup_errors.append(f"Config: missing {', '.join(missing)}")
            return False
        Config.log_environment_config()
        return True

    async def create_application(self) -> bool:
        try:
            logger.info("🤖 Creating Telegram application...")
            self.application = Application.builder().token(Config.BOT_TOKEN).build()
            self.application.add_error_handler(log_unhandled_error)
            logger.info("✅ Telegram application created")
            return True
        except Exception as e:
            logger.error(f"❌ Application creation failed: {e}")
            self.startup_errors.append(f"Application: {e}")
            return False

    async def register_handlers(self) -> bool:
        """Register handler groups; scenes go last because they own free text"""
        if not self.application:
            self.startup_errors.append("Handlers: application not initialized")
            return False

        from handlers.admin import register_admin_handlers
        from handlers.scenes import register_scene_handlers
        from handlers.start import register_start_handlers
        from handlers.topup import register_topup_handlers
        from handlers.wallet import register_wallet_handlers

        handler_groups = [
            ("Start", register_start_handlers),
            ("Wallet", register_wallet_handlers),
            ("Topup", register_topup_handlers),
            ("Admin", register_admin_handlers),
            ("Scenes", register_scene_handlers),
        ]

        for group_name, register_func in handler_groups:
            try:
                register_func(self.application)
                logger.info(f"✅ {group_name} handlers registered")
            except Exception as e:
                logger.error(f"❌ {group_name} handlers failed: {e}")
                self.startup_errors.append(f"{group_name} handlers: {e}")

        logger.info("✅ Handler registration complete")
        return True

    async def initialize_scenes(self) -> bool:
        try:
            from services.scene_engine import get_scene_engine
            engine = get_scene_engine()
            logger.info(f"🎬 Scenes ready: {', '.join(engine.scene_registry)}")
            return True
        except Exception as e:
            logger.error(f"❌ Scene engine initialization failed: {e}")
            self.startup_errors.append(f"Scenes: {e}")
            return False

    async def start_application(self) -> bool:
        try:
            logger.info("📡 Starting in polling mode...")
            await self.application.initialize()
            await self.application.start()
            await self.application.updater.start_polling(allowed_updates=Update.ALL_TYPES)
            logger.info("✅ Application started in polling mode")
            self.startup_complete = True
            return True
        except Exception as e:
            logger.error(f"❌ Application start failed: {e}")
            self.startup_errors.append(f"Application start: {e}")
            return False

    async def startup_sequence(self) -> bool:
        logger.info(f"🚀 Starting {Config.PLATFORM_NAME} bot...")

        startup_steps = [
            ("Config", self.validate_config),
            ("Application", self.create_application),
            ("Handlers", self.register_handlers),
            ("Scenes", self.initialize_scenes),
            ("Start", self.start_application),
        ]

        for step_name, step_func in startup_steps:
            logger.info(f"▶️ Executing step: {step_name}")
            success = await step_func()
            if not success:
                logger.error(f"❌ Step '{step_name}' failed")
                if step_name in self.CRITICAL_STEPS:
                    logger.error("🚨 Critical step failed - cannot continue startup")
                    return False
                logger.warning(f"⚠️ Non-critical step '{step_name}' failed - continuing startup")

        if self.startup_errors:
            logger.warning(f"⚠️ Startup completed with {len(self.startup_errors)} warnings:")
            for error in self.startup_errors:
                logger.warning(f"  - {error}")
        else:
            logger.info("✅ Startup sequence completed successfully")

        return self.startup_complete

    async def shutdown(self) -> None:
        if not self.application:
            return
        if self.application.updater and self.application.updater.running:
            await self.application.updater.stop()
        if self.application.running:
            await self.application.stop()
        await self.application.shutdown()
        logger.info(f"📊 Settings cache: {settings_cache.get_stats()}")
        logger.info("👋 Bot stopped")


startup_manager = CleanStartupManager()


async def main_clean():
    success = await startup_manager.startup_sequence()
    if not success:
        logger.error("❌ Startup failed - exiting")
        sys.exit(1)

    logger.info(f"🎉 {Config.PLATFORM_NAME} bot startup complete!")
    try:
        await asyncio.Event().wait()
    finally:
        await startup_manager.shutdown()


if __name__ == "__main__":
    try:
        asyncio.run(main_clean())
    except KeyboardInterrupt:
        logger.info("👋 Bot stopped by user")
