"""
System utilities for logging and process management

This module provides the log formatter used by the CLI and the process-tree
termination used when a language server connection is disposed.
"""

import logging
from datetime import datetime

import psutil


class MicrosecondFormatter(logging.Formatter):
    """Custom formatter that provides microsecond precision timestamps"""

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created)
        return dt.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]  # Keep 3 decimal places (milliseconds)


def terminate_process_tree(pid: int, logger: logging.Logger) -> int:
    """Kill a process and all of its descendants.

    Language servers are often launched through ``sh -c`` or ``npx``, so the
    direct child is rarely the process doing the work. Children are killed
    before the parent.

    Returns:
        Number of processes that were signalled
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        logger.debug(f"Process {pid} already gone")
        return 0

    try:
        children = parent.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        children = []

    killed = 0
    for proc in [*reversed(children), parent]:
        try:
            logger.debug(f"Killing PID {proc.pid}")
            proc.kill()
            killed += 1
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logger.warning(f"Access denied killing PID {proc.pid}: {e}")

    return killed
