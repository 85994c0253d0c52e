import asyncio
import signal
import sys

from loguru import logger

from consumer.app.composition import create_consumer_dependencies
from consumer.app.config.settings import Settings
from consumer.app.core import SERVICE_NAME


def _log(event: str, **kwargs) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


async def run_consumer(settings: Settings | None = None) -> None:
    settings = settings or Settings()
    deps = create_consumer_dependencies(settings)
    await deps.connect()

    shutdown = asyncio.Event()
    listen_task = deps.events.start()
    listen_task.add_done_callback(lambda _: shutdown.set())

    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass

    _log("consumer_started", topic_arn=deps.events.topic_arn, queues=deps.events.queue_names)
    try:
        await shutdown.wait()
        if listen_task.done() and not listen_task.cancelled():
            # Surfaces a receive failure that ended the loop in throw mode.
            listen_task.result()
    finally:
        await deps.close()
        _log("consumer_stopped")


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    try:
        asyncio.run(run_consumer(settings))
    except KeyboardInterrupt:
        _log("consumer_interrupted")
    except Exception as e:
        logger.exception("consumer failed: {}", e)
        raise


if __name__ == "__main__":
    main()
