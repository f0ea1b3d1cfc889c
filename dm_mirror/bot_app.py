import asyncio
import os
import shutil
import sys

from dotenv import load_dotenv

from .authorization_gate import AuthorizationGate
from .config_service import DEFAULT_PROFILE, ConfigService
from .correlation_store import CorrelationStore
from .discord_client_adapter import DiscordClientAdapter
from .event_dispatcher import EventDispatcher
from .logger_factory import configure_logging, get_logger
from .mirror_transport import MirrorTransport
from .sync_engine import SyncEngine


async def main(profile: str = DEFAULT_PROFILE) -> None:
    # Ensure env
    if not os.path.exists(".env") and os.path.exists(".env.example"):
        try:
            shutil.copyfile(".env.example", ".env")
        except OSError:
            pass
    load_dotenv()

    try:
        config = ConfigService(profile)
    except ValueError as e:
        raise SystemExit(str(e)) from e
    configure_logging(
        level=config.log_level(),
        tz=config.log_timezone(),
        lib_log_level=config.lib_log_level(),
        console_to_file=config.log_console(),
        error_file=config.log_errors(),
    )
    logger = get_logger("bot_app")

    token = config.token()
    if not token:
        raise RuntimeError(f"Missing token in {config.path} and DISCORD_TOKEN in environment")
    channel_id = config.channel_id()
    if channel_id is None:
        # Keep running: every DM gets a "channel not found" reply until this is fixed
        logger.warning(f"no mirror channel configured path={config.path}")

    store = CorrelationStore.open(config.database_path())

    def build_engine(client) -> SyncEngine:
        transport = MirrorTransport(
            client,
            channel_id,
            retry_attempts=config.send_retry_attempts(),
            logger=get_logger("MirrorTransport"),
        )
        return SyncEngine(store, transport, AuthorizationGate(get_logger("AuthorizationGate")), logger=get_logger("SyncEngine"))

    client = DiscordClientAdapter(
        dispatcher=None,
        mirror_channel_id=channel_id,
        intents_cfg=config.discord_intents(),
        logger=get_logger("Discord"),
    )
    dispatcher = EventDispatcher(build_engine(client), logger=get_logger("EventDispatcher"))
    client.dispatcher = dispatcher

    logger.info(f"Discord bot starting… profile={config.profile}")
    try:
        await asyncio.gather(client.start(token), dispatcher.run())
    finally:
        if not client.is_closed():
            await client.close()
        store.close()


def run() -> None:
    profile = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_PROFILE
    asyncio.run(main(profile))


if __name__ == "__main__":
    run()
