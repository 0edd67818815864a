"""Display components for terminal output.

Modules:
    colors: Terminal color handling and detection
    progress: Progress bars, sparklines and status colors
    dashboard: Per-account usage dashboard and activity log
    watch: Live updating watch mode
"""

from quota_watch.display.colors import Colors, disable_colors, init_colors, supports_color
from quota_watch.display.dashboard import (
    build_json_output,
    display_activity_log,
    display_services,
)
from quota_watch.display.progress import (
    format_percentage,
    make_progress_bar,
    make_sparkline,
    status_color,
)
from quota_watch.display.watch import run_watch_mode

__all__ = [
    # Colors
    "Colors",
    "supports_color",
    "disable_colors",
    "init_colors",
    # Progress
    "make_progress_bar",
    "format_percentage",
    "make_sparkline",
    "status_color",
    # Dashboard
    "display_services",
    "display_activity_log",
    "build_json_output",
    # Watch
    "run_watch_mode",
]
