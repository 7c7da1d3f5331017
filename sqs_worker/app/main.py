import asyncio
import importlib
import signal
from typing import Any, Callable

from loguru import logger

from sqs_worker.app.composition import create_worker_dependencies
from sqs_worker.app.config.settings import Settings
from sqs_worker.app.core import SERVICE_NAME
from sqs_worker.app.core.exceptions import ConfigurationError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def load_handler(path: str) -> Callable[..., Any]:
    """Import a handler given as "package.module:function"."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"WORKER_HANDLER must look like 'package.module:function', got {path!r}")
    try:
        module = importlib.import_module(module_name)
        handler = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"cannot load handler {path!r}: {e}") from e
    if not callable(handler):
        raise ConfigurationError(f"handler {path!r} is not callable")
    return handler


async def run_worker(settings: Settings | None = None) -> None:
    settings = settings or Settings()
    handler = load_handler(settings.worker_handler)
    deps = create_worker_dependencies(settings)
    try:
        await deps.connect()
        worker = deps.worker

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, worker.stop)
            except NotImplementedError:
                pass

        summary = await worker.listen(deps.destination, handler)
        _log(
            "worker_stopped",
            stop_reason=summary.stop_reason,
            iterations=summary.iterations,
            processed=summary.processed,
            released=summary.released,
            dead_lettered=summary.dead_lettered,
            total_errors=summary.total_errors,
        )
    finally:
        await deps.close()


def main() -> None:
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        _log("worker_interrupted")
    except Exception as e:
        logger.exception("worker failed: {}", e)
        raise


if __name__ == "__main__":
    main()
