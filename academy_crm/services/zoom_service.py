"""
Zoom Service
Provisions meeting rooms through the Zoom REST API (Server-to-Server OAuth)
"""

import base64
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx

from ..config import (
    EXTERNAL_HTTP_TIMEOUT,
    TIMEZONE,
    ZOOM_ACCOUNT_ID,
    ZOOM_API_BASE_URL,
    ZOOM_CLIENT_ID,
    ZOOM_CLIENT_SECRET,
    ZOOM_OAUTH_URL,
)
from ..errors import ExternalProviderError

logger = logging.getLogger(__name__)

# Zoom meeting type 2 = scheduled (single occurrence)
ZOOM_SCHEDULED_MEETING = 2


class ZoomService:
    """Thin async client over the endpoints used for lesson rooms"""

    def __init__(self):
        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0

    @property
    def is_configured(self) -> bool:
        return bool(ZOOM_ACCOUNT_ID and ZOOM_CLIENT_ID and ZOOM_CLIENT_SECRET)

    async def _get_access_token(self) -> str:
        # Reuse the token until a minute before it expires
        if self._access_token and self._token_expires_at > time.time() + 60:
            return self._access_token

        if not self.is_configured:
            raise ExternalProviderError("zoom", "Zoom credentials are not configured")

        credentials = base64.b64encode(f"{ZOOM_CLIENT_ID}:{ZOOM_CLIENT_SECRET}".encode()).decode()
        try:
            async with httpx.AsyncClient(timeout=EXTERNAL_HTTP_TIMEOUT) as client:
                response = await client.post(
                    ZOOM_OAUTH_URL,
                    params={"grant_type": "account_credentials", "account_id": ZOOM_ACCOUNT_ID},
                    headers={"Authorization": f"Basic {credentials}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"❌ Zoom OAuth failed: {e}")
            raise ExternalProviderError("zoom", "Failed to obtain access token") from e

        data = response.json()
        self._access_token = data["access_token"]
        self._token_expires_at = time.time() + int(data.get("expires_in", 3600))
        logger.info("🔑 Zoom access token refreshed")
        return self._access_token

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        token = await self._get_access_token()
        try:
            async with httpx.AsyncClient(timeout=EXTERNAL_HTTP_TIMEOUT) as client:
                response = await client.request(
                    method,
                    f"{ZOOM_API_BASE_URL}{endpoint}",
                    headers={"Authorization": f"Bearer {token}"},
                    **kwargs,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"❌ Zoom API {method} {endpoint} returned {e.response.status_code}: {e.response.text[:200]}")
            raise ExternalProviderError("zoom", f"API returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Zoom API {method} {endpoint} failed: {e}")
            raise ExternalProviderError("zoom", str(e)) from e

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get_users(self) -> list[dict]:
        data = await self._request("GET", "/users", params={"page_size": 100})
        return data.get("users", []) if data else []

    async def get_host_key(self, user_id: str) -> Optional[str]:
        try:
            data = await self._request("GET", f"/users/{user_id}", params={"login_type": 100})
        except ExternalProviderError as e:
            logger.warning(f"⚠️ Could not read host key for Zoom user {user_id}: {e.message}")
            return None
        return (data or {}).get("host_key")

    async def is_host_available(self, user_id: str, start: datetime, duration_minutes: int) -> bool:
        """True when the host has no meeting overlapping [start, start + duration)"""
        end = start + timedelta(minutes=duration_minutes)
        day = start.date().isoformat()
        data = await self._request(
            "GET",
            f"/users/{user_id}/meetings",
            params={"page_size": 300, "from": day, "to": day},
        )
        for meeting in (data or {}).get("meetings", []):
            if not meeting.get("start_time"):
                continue
            other_start = datetime.fromisoformat(meeting["start_time"].replace("Z", "+00:00"))
            other_end = other_start + timedelta(minutes=int(meeting.get("duration") or 0))
            if start.tzinfo is None:
                other_start = other_start.replace(tzinfo=None)
                other_end = other_end.replace(tzinfo=None)
            if start < other_end and end > other_start:
                return False
        return True

    async def find_available_host(self, start: datetime, duration_minutes: int) -> Optional[dict]:
        """First active Zoom user free for the slot, with its host key"""
        for user in await self.get_users():
            if user.get("status") != "active":
                continue
            if await self.is_host_available(user["id"], start, duration_minutes):
                host_key = await self.get_host_key(user["id"])
                logger.info(f"✅ Zoom host available: {user.get('email', user['id'])}")
                return {**user, "host_key": host_key}
        logger.warning(f"⚠️ No Zoom host available at {start.isoformat()} for {duration_minutes} min")
        return None

    async def create_room(self, host_id: str, topic: str, start: datetime, duration_minutes: int) -> dict:
        """
        Create a scheduled room for one lesson.

        Returns:
            dict with id, join_url, start_url, password, host_key
        """
        payload = {
            "topic": topic[:200],
            "type": ZOOM_SCHEDULED_MEETING,
            "start_time": start.isoformat(),
            "duration": duration_minutes,
            "timezone": TIMEZONE,
            "settings": {
                "host_video": True,
                "participant_video": True,
                "join_before_host": True,
                "waiting_room": False,
                "mute_upon_entry": True,
                "auto_recording": "none",
            },
        }
        meeting = await self._request("POST", f"/users/{host_id}/meetings", json=payload)
        host_key = await self.get_host_key(host_id)
        logger.info(f"🎥 Zoom room {meeting['id']} created for '{topic}'")
        return {
            "id": str(meeting["id"]),
            "join_url": meeting.get("join_url"),
            "start_url": meeting.get("start_url"),
            "password": meeting.get("password"),
            "host_key": host_key,
            "host_id": host_id,
        }

    async def delete_room(self, room_id: str) -> None:
        await self._request("DELETE", f"/meetings/{room_id}")
        logger.info(f"🗑️ Zoom room {room_id} deleted")


zoom_service = ZoomService()
