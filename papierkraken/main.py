import uvicorn

from papierkraken.api.app import build_app_services, create_app
from papierkraken.config.settings import Settings
from papierkraken.database.connection import close_pool, init_pool
from papierkraken.logging.logger import Log
from papierkraken.worker.recovery_runner import RecoveryRunner
from papierkraken.worker.recovery_worker import RecoveryWorker


def main() -> None:
    """Entry point: configure logging -> build the API -> serve with uvicorn."""
    settings = Settings()
    Log.configure(settings.log_level)
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


def recover() -> None:
    """Entry point: initialize pool -> build dependencies -> start recovery loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        services = build_app_services(settings)
        runner = RecoveryRunner(
            services.ingestion,
            services.storage,
            services.doc_repo,
            settings.max_recovery_attempts,
        )
        worker = RecoveryWorker(services.doc_repo, runner, settings)
        worker.run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
