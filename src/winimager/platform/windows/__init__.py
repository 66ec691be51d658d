"""
WinImager Windows tools.

Command builders and output parsers for:
- wimlib-imagex for capture, apply and single-file update
- bcdboot for boot configuration
- fsutil for the volume dirty bit
"""

from winimager.platform.windows.commands import (
    apply_arguments,
    boot_config_arguments,
    capture_arguments,
    dirty_query_arguments,
    format_command,
    update_arguments,
)
from winimager.platform.windows.parsers import (
    normalize_drive_letter,
    parse_dirty_output,
    strip_long_path_prefix,
    volume_relative_path,
)
from winimager.platform.windows.placeholder import is_cloud_only

__all__ = [
    "apply_arguments",
    "boot_config_arguments",
    "capture_arguments",
    "dirty_query_arguments",
    "format_command",
    "is_cloud_only",
    "normalize_drive_letter",
    "parse_dirty_output",
    "strip_long_path_prefix",
    "update_arguments",
    "volume_relative_path",
]
