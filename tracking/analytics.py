"""Formatting and end-of-session summary helpers."""

from typing import Any, Dict

from tracking.session import Session


def format_clock(seconds: int) -> str:
    """
    Format a countdown as MM:SS.

    Minutes are not wrapped into hours, so 3725 seconds reads "62:05".

    Examples:
        >>> format_clock(75)
        '01:15'
        >>> format_clock(0)
        '00:00'
    """
    total_seconds = max(0, int(seconds))
    minutes, secs = divmod(total_seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


def format_duration(seconds: float) -> str:
    """
    Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds (truncated to int for display)

    Returns:
        Formatted string like "1 min 30 secs", "45 secs", "2 hrs 15 mins"

    Examples:
        >>> format_duration(90)
        '1 min 30 secs'
        >>> format_duration(3725)
        '1 hr 2 mins'
        >>> format_duration(0)
        '0 sec'
    """
    # Truncate to int at display time only (floor, not round)
    total_seconds = int(seconds) if seconds >= 0 else 0

    hours = total_seconds // 3600
    mins = (total_seconds % 3600) // 60
    secs = total_seconds % 60

    parts = []

    if hours > 0:
        hr_unit = "hr" if hours == 1 else "hrs"
        parts.append(f"{hours} {hr_unit}")

    if mins > 0:
        min_unit = "min" if mins == 1 else "mins"
        parts.append(f"{mins} {min_unit}")

    # Seconds are dropped once hours are shown
    if secs > 0 and hours == 0:
        sec_unit = "sec" if secs == 1 else "secs"
        parts.append(f"{secs} {sec_unit}")

    return " ".join(parts) if parts else "0 sec"


def summarise_session(session: Session) -> Dict[str, Any]:
    """
    Collect end-of-session figures.

    Args:
        session: The session, usually just completed or stopped.

    Returns:
        Dictionary with state, planned/penalty/elapsed seconds, violation and
        attention-check counts.
    """
    elapsed = 0.0
    if session.start_time:
        end = session.end_time or session.start_time
        elapsed = max(0.0, (end - session.start_time).total_seconds())

    return {
        "state": session.state.value,
        "planned_seconds": session.planned_seconds,
        "penalty_seconds": session.penalty_seconds_added,
        "violations": session.violation_count,
        "attention_checks_passed": session.attention_checks_passed,
        "attention_checks_failed": session.attention_checks_failed,
        "elapsed_seconds": elapsed,
    }


def generate_summary_text(summary: Dict[str, Any]) -> str:
    """
    Render a summary dictionary as console text.

    Args:
        summary: Output of summarise_session().

    Returns:
        Multi-line human-readable summary.
    """
    text = f"""Session Summary:
Planned Duration: {format_duration(summary["planned_seconds"])}
Time Added: {format_duration(summary["penalty_seconds"])}
Violations: {summary["violations"]}
Total Time: {format_duration(summary["elapsed_seconds"])}
"""

    checks = summary["attention_checks_passed"] + summary["attention_checks_failed"]
    if checks > 0:
        text += f"Attention Checks: {summary['attention_checks_passed']}/{checks} passed\n"

    text += "\n"

    if summary["violations"] == 0:
        text += "Flawless. Not a single violation."
    elif summary["violations"] <= 2:
        text += "Nearly there. A couple of slips cost you extra time."
    else:
        text += "Restless session. Every slip made it longer."

    return text
