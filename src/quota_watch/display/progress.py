"""Progress bars, sparklines and status coloring."""

from typing import Optional

from quota_watch.display.colors import Colors
from quota_watch.usage.models import STATUS_ERROR, Severity, Status

SPARK_CHARS = "▁▂▃▄▅▆▇█"


def status_color(status: Optional[Status]) -> str:
    """Color for a window or service status."""
    if status == STATUS_ERROR:
        return Colors.MAGENTA
    severity = Severity.from_value(status)
    if severity in (Severity.CRITICAL, Severity.EXHAUSTED):
        return Colors.RED
    if severity is Severity.WARNING:
        return Colors.YELLOW
    if severity is Severity.OK:
        return Colors.GREEN
    return Colors.GRAY


def status_icon(status: Optional[Status]) -> str:
    if status == STATUS_ERROR:
        return "✗"
    severity = Severity.from_value(status)
    if severity is Severity.EXHAUSTED:
        return "■"
    if severity is Severity.CRITICAL:
        return "●"
    if severity is Severity.WARNING:
        return "▲"
    if severity is Severity.OK:
        return "✓"
    return "?"


def make_progress_bar(percentage: float, width: int = 25, status: Optional[Status] = None) -> str:
    """Create a visual progress bar with block characters.

    Args:
        percentage: Usage percentage. Values outside 0-100 are clamped for drawing.
        width: Width of the progress bar in characters.
        status: Status used for the fill color.

    Returns:
        Colored string representation of the progress bar.
    """
    clamped = max(0.0, min(100.0, float(percentage)))
    filled = int(width * clamped / 100)
    empty = width - filled
    return f"{status_color(status)}{'█' * filled}{Colors.BAR_EMPTY}{'░' * empty}{Colors.RESET}"


def make_elapsed_marker(elapsed_pct: Optional[float], width: int = 25) -> str:
    """A line with a caret under the bar at the elapsed share of the window."""
    if elapsed_pct is None:
        return ""
    position = min(width - 1, int(width * elapsed_pct / 100))
    return f"{' ' * position}{Colors.DIM}^{Colors.RESET}"


def format_percentage(percentage: float, status: Optional[Status] = None) -> str:
    """Format a percentage with status color, e.g. "75% used"."""
    value = round(float(percentage), 1)
    text = f"{int(value)}" if value == int(value) else f"{value:.1f}"
    return f"{status_color(status)}{text}% used{Colors.RESET}"


def make_sparkline(values: list, width: int = 10) -> str:
    """Sparkline of recent utilization, scaled to 0-100.

    Args:
        values: Utilization points, oldest first.
        width: Number of most recent points shown.

    Returns:
        Colored sparkline, or an empty string with fewer than two points.
    """
    if len(values) < 2:
        return ""
    points = values[-width:]
    top = len(SPARK_CHARS) - 1
    line = "".join(
        SPARK_CHARS[int(max(0.0, min(100.0, v)) / 100 * top)] for v in points
    )
    return f"{Colors.CYAN}{line}{Colors.RESET}"


__all__ = [
    "SPARK_CHARS",
    "status_color",
    "status_icon",
    "make_progress_bar",
    "make_elapsed_marker",
    "format_percentage",
    "make_sparkline",
]
