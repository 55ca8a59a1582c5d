"""Foreground discovery daemon."""

from aggregator_cli.daemon.service import DiscoveryDaemon, run_daemon

__all__ = ["DiscoveryDaemon", "run_daemon"]
