"""Built-in local tools."""

import json
import os
import platform
import sys

from pydantic import BaseModel

from chorus.tools.base import LocalToolDefinition
from chorus.utils.ids import utc_now


async def get_current_time(_: BaseModel) -> str:
    """Report the local date, time, timezone and day of week."""
    now = utc_now().astimezone()
    offset = now.strftime("%z")
    return json.dumps(
        {
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M:%S"),
            "timezone": now.tzname(),
            "utcOffset": f"UTC{offset[:3]}:{offset[3:]}" if offset else "UTC",
            "dayOfWeek": now.strftime("%A"),
            "timestamp": utc_now().isoformat(),
        }
    )


async def get_device_info(_: BaseModel) -> str:
    """Report the host platform."""
    return json.dumps(
        {
            "platform": sys.platform,
            "osVersion": platform.release(),
            "machine": platform.machine(),
            "pythonVersion": platform.python_version(),
            "cpuCount": os.cpu_count(),
        }
    )


def create_builtin_tools() -> list[LocalToolDefinition]:
    return [
        LocalToolDefinition(
            id="builtin-get-current-time",
            name="Get Current Time",
            schema_name="get_current_time",
            description="Get current date, time, timezone, and day of week",
            handler=get_current_time,
        ),
        LocalToolDefinition(
            id="builtin-get-device-info",
            name="Get Device Info",
            schema_name="get_device_info",
            description="Get device platform, OS version, machine type and CPU count",
            handler=get_device_info,
        ),
    ]
