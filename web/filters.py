"""
Request filters for automation-only endpoints
"""
from typing import Optional

from aiohttp import web

from config import settings

SCHEDULER_SOURCE = "Vercel Cron"
CI_SOURCE = "GitHub Actions"


def identify_automation(request: web.Request) -> Optional[str]:
    """
    Name the automation that sent the request

    Args:
        request: incoming request

    Returns:
        Source name when the User-Agent matches a known automation identity,
        None otherwise
    """
    user_agent = request.headers.get("User-Agent", "")
    if user_agent == settings.CRON_USER_AGENT:
        return SCHEDULER_SOURCE
    if settings.CI_USER_AGENT_MARKER and settings.CI_USER_AGENT_MARKER in user_agent:
        return CI_SOURCE
    return None


def expected_identities() -> list[str]:
    return [settings.CRON_USER_AGENT, f"{settings.CI_USER_AGENT_MARKER}/*"]
