"""Calendar tool — read upcoming Google Calendar events."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from pydantic import BaseModel, Field

from toolbot.errors import ToolbotError
from toolbot.tool.base import BaseTool, ToolError, ToolOk, ToolResult

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
MAX_EVENTS = 50

NOT_AUTHENTICATED = (
    "Calendar not authenticated. Please use /auth to connect your Google Calendar."
)


class CalendarParams(BaseModel):
    max_results: int = Field(
        default=10, description="Maximum number of events to return (default 10, max 50)"
    )
    days_ahead: int = Field(
        default=7, description="How many days ahead to look for events (default 7)"
    )


def format_event(item: dict[str, Any]) -> str:
    """One event as ``- Mon Jan 2, 3:04 PM - Summary`` plus optional location."""
    start = item.get("start", {})
    raw = start.get("dateTime") or start.get("date", "")
    try:
        moment = datetime.fromisoformat(raw)
    except ValueError:
        when = raw
    else:
        if "dateTime" in start:
            hour = moment.hour % 12 or 12
            when = f"{moment:%a %b} {moment.day}, {hour}:{moment:%M %p}"
        else:
            when = f"{moment:%a %b} {moment.day}"

    line = f"- {when} - {item.get('summary', '(no title)')}"
    if item.get("location"):
        line += f"\n  Location: {item['location']}"
    return line


class CalendarTool(BaseTool[CalendarParams]):
    """Upcoming events from the user's primary Google Calendar.

    Authentication is a two-step OAuth flow driven by the caller:
    ``init()`` hands back a consent URL, ``complete_auth(code)`` exchanges
    the code and stores the token. Until then ``execute`` answers with a
    hint instead of failing.
    """

    name: ClassVar[str] = "get_calendar_events"
    description: ClassVar[str] = (
        "Get upcoming events from the user's Google Calendar. Can specify how many "
        "events to retrieve (default 10) and how many days ahead to look (default 7)."
    )
    param_model: ClassVar[type[BaseModel]] = CalendarParams

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        token_file: str,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_url = redirect_url
        self._token_file = token_file
        self._service: Any = None
        self._pending_flow: Flow | None = None

    @property
    def authenticated(self) -> bool:
        return self._service is not None

    async def init(self) -> str:
        """Connect using a stored token.

        Returns:
            An authorization URL when the user still has to grant access,
            or an empty string when the calendar is ready.

        Raises:
            ToolbotError: OAuth client credentials are not configured.
        """
        if not self._client_id or not self._client_secret:
            raise ToolbotError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required")

        creds = await asyncio.to_thread(self._load_token)
        if creds is None:
            self._pending_flow = self._flow()
            auth_url, _ = self._pending_flow.authorization_url(
                access_type="offline", prompt="consent"
            )
            return auth_url

        self._service = await asyncio.to_thread(_build_service, creds)
        return ""

    async def complete_auth(self, code: str) -> None:
        """Exchange an authorization code for a token and connect."""
        if not self._client_id or not self._client_secret:
            raise ToolbotError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required")

        flow = self._pending_flow or self._flow()
        try:
            await asyncio.to_thread(flow.fetch_token, code=code)
        except Exception as e:
            raise ToolbotError(f"exchanging auth code: {e}") from e

        creds = flow.credentials
        await asyncio.to_thread(self._save_token, creds)
        self._pending_flow = None
        self._service = await asyncio.to_thread(_build_service, creds)
        logger.info("Calendar authenticated, token saved to %s", self._token_file)

    async def execute(self, params: CalendarParams) -> ToolResult:
        service = self._service
        if service is None:
            return ToolOk(output=NOT_AUTHENTICATED)

        max_results = max(1, min(params.max_results, MAX_EVENTS))
        days_ahead = max(0, params.days_ahead)

        try:
            items = await asyncio.to_thread(
                _list_events, service, max_results, days_ahead
            )
        except HttpError as e:
            return ToolError(output=f"Error retrieving events: {e}")

        if not items:
            return ToolOk(output="No upcoming events found.")

        lines = [f"Found {len(items)} upcoming events:", ""]
        lines.extend(format_event(item) for item in items)
        return ToolOk(output="\n".join(lines))

    def _flow(self) -> Flow:
        client_config = {
            "installed": {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": [self._redirect_url],
            }
        }
        return Flow.from_client_config(
            client_config, scopes=SCOPES, redirect_uri=self._redirect_url
        )

    def _load_token(self) -> Credentials | None:
        if not os.path.exists(self._token_file):
            return None
        try:
            creds = Credentials.from_authorized_user_file(self._token_file, SCOPES)
            if creds.expired and creds.refresh_token:
                creds.refresh(Request())
                self._save_token(creds)
        except Exception as e:
            logger.warning("Failed to load calendar token: %s", e)
            return None
        return creds if creds.valid else None

    def _save_token(self, creds: Credentials) -> None:
        with open(self._token_file, "w") as f:
            f.write(creds.to_json())


def _build_service(creds: Credentials) -> Any:
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def _list_events(service: Any, max_results: int, days_ahead: int) -> list[dict[str, Any]]:
    now = datetime.now(timezone.utc)
    response = (
        service.events()
        .list(
            calendarId="primary",
            showDeleted=False,
            singleEvents=True,
            timeMin=now.isoformat(),
            timeMax=(now + timedelta(days=days_ahead)).isoformat(),
            maxResults=max_results,
            orderBy="startTime",
        )
        .execute()
    )
    return response.get("items", [])
