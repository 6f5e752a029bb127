"""
saverun Application.

Wires the file watcher, debouncer, trigger channel, supervisor and
shutdown watcher together and runs until interrupted.
Requires Python 3.11+.
"""

from saverun.project.models import RunConfig
from saverun.supervisor.channel import TriggerChannel
from saverun.supervisor.models import Trigger
from saverun.supervisor.process import ActiveProcess
from saverun.supervisor.runner import CommandChainRunner
from saverun.supervisor.shutdown import ShutdownWatcher
from saverun.supervisor.supervisor import ProcessSupervisor
from saverun.utils.config import Settings, get_settings
from saverun.utils.errors import WatchSourceError
from saverun.utils.logger import LoggerMixin
from saverun.watcher.debouncer import Debouncer
from saverun.watcher.file_watcher import FileWatcher

# Exit statuses
EXIT_OK = 0
EXIT_WATCH_FAILED = 1
EXIT_CONFIG_ERROR = 2

# Seconds between watch-source health checks
HEALTH_CHECK_INTERVAL = 0.5


class Application(LoggerMixin):
    """
    The running program.

    Data flows watcher -> path filter -> debouncer -> channel ->
    supervisor -> runner -> child processes. The supervisor and the
    shutdown watcher share the ActiveProcess cell.
    """

    def __init__(self, config: RunConfig, settings: Settings | None = None) -> None:
        """
        Initialize the application.

        Args:
            config: Resolved run configuration
            settings: Settings, defaults to get_settings()
        """
        settings = settings or get_settings()
        self._config = config
        self._settings = settings

        self.channel = TriggerChannel()
        self.active = ActiveProcess()

        self.runner = CommandChainRunner(
            chain=config.chain,
            active=self.active,
            attach_stdin=config.attach_stdin,
            policy=config.policy,
            cwd=config.root,
        )
        self.supervisor = ProcessSupervisor(
            channel=self.channel,
            active=self.active,
            runner=self.runner,
            settle_delay_ms=settings.supervisor.settle_delay_ms,
            wait_for_exit=settings.supervisor.wait_for_exit,
            exit_timeout_ms=settings.supervisor.exit_timeout_ms,
        )
        self.debouncer = Debouncer(
            channel=self.channel,
            quiet_window_ms=settings.debounce.quiet_window_ms,
        )
        self.watcher = FileWatcher(
            root_path=config.root,
            on_event=self.debouncer.offer,
            rules=config.rules,
            watch_pattern=config.watch_pattern,
            poll_interval_ms=settings.watcher.poll_interval_ms,
            use_polling=settings.watcher.use_polling,
            recursive=settings.watcher.recursive,
        )
        self.shutdown = ShutdownWatcher(active=self.active)

    def run(self) -> int:
        """
        Run until a signal arrives or the watch source fails.

        Must be called from the main thread.

        Returns:
            Process exit status
        """
        self.log.info(
            "starting",
            version=self._settings.app_version,
            root=str(self._config.root),
            chain=str(self._config.chain),
            policy=self._config.policy.value,
            watching=list(self._config.extensions) or "all files",
        )

        self.shutdown.install()
        self.supervisor.start()
        try:
            # Run the chain once right away
            self.channel.send(Trigger.startup())

            try:
                self.watcher.start()
            except WatchSourceError as e:
                self.log.error("watch_source_failed", error=str(e))
                return EXIT_WATCH_FAILED

            while not self.shutdown.wait(timeout=HEALTH_CHECK_INTERVAL):
                if not self.watcher.is_alive():
                    self.log.error("watch_source_failed", error="observer stopped")
                    return EXIT_WATCH_FAILED

            # The signal handler only records the request
            self.shutdown.finish()
            return EXIT_OK
        finally:
            self.close()

    def close(self) -> None:
        """Kill the active child and stop every component."""
        self.active.close()
        self.supervisor.stop()
        self.watcher.stop()
        self.shutdown.uninstall()
        self.log.info(
            "stopped",
            triggers=self.debouncer.emitted_count,
            dropped=self.debouncer.dropped_count,
            unfinished_runs=self.supervisor.active_runs,
        )
