"""
HTTP transport used by the client-side store.

One instance holds one logged-in session (the ``access_token`` cookie lives in
the underlying ``httpx.AsyncClient``).
"""
from typing import Any, Dict, List, Optional
import logging

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Server rejected the call, or it never reached the server (``status_code`` is None)"""

    def __init__(self, status_code: Optional[int], message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class HabitApi:
    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise ApiError(None, str(e) or type(e).__name__) from e
        if response.is_error:
            try:
                message = response.json().get("error") or response.text
            except ValueError:
                message = response.text
            logger.warning(f"{method} {url} failed: {response.status_code} {message}")
            raise ApiError(response.status_code, str(message))
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Session

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/auth/login", json={"email": email, "password": password})

    async def logout(self) -> None:
        await self._request("POST", "/api/auth/logout")

    # Habits

    async def fetch_habits(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/habits")

    async def create_habit(self, name: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/habits", json={"name": name})

    async def delete_habit(self, habit_id: str) -> None:
        await self._request("DELETE", f"/api/habits/{habit_id}")

    async def rename_habit(self, habit_id: str, name: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/api/habits/{habit_id}", json={"name": name})

    async def toggle_log(self, habit_id: str, day: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/habits/{habit_id}/logs/{day}/toggle")

    async def set_done(self, habit_id: str, day: str, done: bool) -> Dict[str, Any]:
        return await self._request("PUT", f"/api/habits/{habit_id}/logs/{day}", json={"done": done})

    async def update_note(self, habit_id: str, day: str, note: str) -> Dict[str, Any]:
        return await self._request("PUT", f"/api/habits/{habit_id}/logs/{day}/note", json={"note": note})

    async def reorder(self, ordered_ids: List[str]) -> None:
        await self._request("PUT", "/api/habits/order", json={"ids": ordered_ids})

    async def set_reminder_time(self, habit_id: str, reminder_time: Optional[str]) -> Dict[str, Any]:
        return await self._request(
            "PUT", f"/api/habits/{habit_id}/reminder", json={"reminder_time": reminder_time}
        )

    # AI coach

    async def chat(
        self,
        api_key: str,
        model_name: Optional[str],
        messages: List[Dict[str, Any]],
        existing_habits: List[str]
    ) -> Dict[str, Any]:
        payload = {
            "apiKey": api_key,
            "modelName": model_name,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "existingHabits": existing_habits,
        }
        return await self._request("POST", "/api/ai/generate-habits", json=payload)

    # Conversations

    async def list_conversations(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/conversations")

    async def create_conversation(self) -> Dict[str, Any]:
        return await self._request("POST", "/api/conversations")

    async def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/conversations/{conversation_id}")

    async def save_conversation_messages(self, conversation_id: str, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._request(
            "PUT", f"/api/conversations/{conversation_id}/messages", json={"messages": messages}
        )

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/api/conversations/{conversation_id}")

    async def close(self):
        await self.client.aclose()
