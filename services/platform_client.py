"""
Tutoring Platform Client

HTTP access to the tutoring platform for tutor availability, bookings and
student notifications. Every call is pass/fail: HTTP and transport errors
are logged and reported as an empty result rather than raised.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

import httpx

from config.settings import settings


class PlatformClient:
    """Async client for the tutoring platform REST API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.PLATFORM_API_URL
        self.api_key = api_key if api_key is not None else settings.PLATFORM_API_KEY
        self.timeout_seconds = timeout_seconds or settings.PLATFORM_TIMEOUT_SECONDS
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logging.getLogger("PlatformClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout_seconds,
                transport=self.transport,
            )
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> Optional[httpx.Response]:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            self.logger.error(f"Platform {method} {path} failed: {e}")
            return None

        if response.is_success:
            return response

        self.logger.warning(f"Platform {method} {path} returned {response.status_code}")
        return None

    def _json_object(self, response: httpx.Response, path: str) -> Optional[Dict[str, Any]]:
        """Decoded body when it is a JSON object, otherwise None"""
        try:
            payload = response.json()
        except ValueError as e:
            self.logger.warning(f"Platform {path} returned a non-JSON body: {e}")
            return None

        if not isinstance(payload, dict):
            self.logger.warning(f"Platform {path} returned {type(payload).__name__}, expected an object")
            return None
        return payload

    async def ping(self) -> bool:
        response = await self._request("GET", "/api/health")
        return response is not None

    async def get_available_tutors(self, subject: str, when: datetime, duration: int = 60) -> List[Dict[str, Any]]:
        """
        Tutors available for a subject around a given time.

        Returns:
            Tutor dicts, each with an "available_slots" list; empty on failure
        """
        response = await self._request(
            "GET",
            "/api/v1/tutors/availability",
            params={"subject": subject, "datetime": when.isoformat(), "duration": duration},
        )
        if response is None:
            return []

        payload = self._json_object(response, "/api/v1/tutors/availability")
        if payload is None:
            return []
        tutors = payload.get("tutors") or []
        return [tutor for tutor in tutors if isinstance(tutor, dict)] if isinstance(tutors, list) else []

    async def create_booking(
        self,
        student_id: str,
        tutor_id: str,
        subject: Optional[str],
        scheduled_at: datetime,
        notes: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        response = await self._request(
            "POST",
            "/api/v1/bookings",
            json={
                "student_id": student_id,
                "tutor_id": tutor_id,
                "subject": subject,
                "scheduled_at": scheduled_at.isoformat(),
                "notes": notes,
            },
        )
        if response is None:
            return None
        return self._json_object(response, "/api/v1/bookings")

    async def send_notification(
        self,
        student_id: str,
        notification_type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        response = await self._request(
            "POST",
            "/api/v1/notifications",
            json={
                "student_id": student_id,
                "notification_type": notification_type,
                "title": title,
                "message": message,
                "data": data or {},
            },
        )
        return response is not None
