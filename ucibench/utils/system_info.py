"""Host metadata recorded alongside benchmark snapshots."""

from __future__ import annotations

import logging
import platform
from typing import Any, Dict

import psutil

logger = logging.getLogger(__name__)


def host_info() -> Dict[str, Any]:
    """Describe the machine a benchmark ran on.

    Node counts are mostly hardware independent but NPS and timings are not,
    so snapshots carry enough context to explain noisy diffs.
    """
    mem = psutil.virtual_memory()
    return {
        "platform": platform.platform(),
        "python": platform.python_version(),
        "cpu_physical": psutil.cpu_count(logical=False) or 0,
        "cpu_logical": psutil.cpu_count(logical=True) or 0,
        "memory_gb": round(mem.total / (1024 ** 3), 1),
    }


def log_system_info() -> None:
    info = host_info()
    logger.info("Host: %s | Python %s | CPU %s/%s cores | Memory %sGB | Load %.0f%%",
                info["platform"], info["python"], info["cpu_physical"], info["cpu_logical"],
                info["memory_gb"], psutil.cpu_percent(interval=0.1))
