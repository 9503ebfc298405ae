"""
Client-side habit store.

Holds one session's working copy of habits and coach conversations. Two
reconciliation strategies are used:

* add/remove wait for the server and then re-fetch the authoritative list,
  since local state lacks server-assigned ids and ranks;
* toggle/set-done/rename/note/reorder/reminder change local state
  immediately and send the server call as a background task. On success
  nothing is re-fetched. On failure only that mutation's own change is
  reverted (the touched day, name or reminder time; the previous order for
  reorder), so later mutations on the same habit survive. The habit id lands
  in ``unsynced`` and the error in ``sync_errors``. Transport failures count
  as failures too, since ``HabitApi`` raises them as ``ApiError``.

A store is built per session and torn down with ``close()`` on logout.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from app.client.api import ApiError, HabitApi

logger = logging.getLogger(__name__)


@dataclass
class ClientHabit:
    id: str
    name: str
    reminder_time: Optional[str] = None
    completed_dates: Dict[str, bool] = field(default_factory=dict)
    notes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ClientHabit":
        return cls(
            id=data["id"],
            name=data["name"],
            reminder_time=data.get("reminder_time"),
            completed_dates=dict(data.get("completed_dates") or {}),
            notes=dict(data.get("notes") or {}),
        )


@dataclass
class ChatState:
    active_conversation_id: Optional[str] = None
    messages: List[Dict[str, Any]] = field(default_factory=list)
    conversations: List[Dict[str, Any]] = field(default_factory=list)
    is_sending: bool = False


class HabitStore:
    def __init__(self, api: HabitApi, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.api = api
        self.api_key = api_key
        self.model_name = model_name
        self.habits: List[ClientHabit] = []
        self.is_loading = True
        self.chat = ChatState()
        self.unsynced: Set[str] = set()
        self.sync_errors: List[str] = []
        self._pending: Set[asyncio.Task] = set()
        self._closed = False

    # Settings

    def set_api_key(self, key: str):
        self.api_key = key

    def set_model_name(self, name: str):
        self.model_name = name

    # Lookup

    def get_habit(self, habit_id: str) -> Optional[ClientHabit]:
        return next((h for h in self.habits if h.id == habit_id), None)

    def _index_of(self, habit_id: str) -> int:
        for index, habit in enumerate(self.habits):
            if habit.id == habit_id:
                return index
        return -1

    # Re-sync after write

    async def sync_habits(self):
        """Replace local state with the server's list"""
        self.is_loading = True
        try:
            data = await self.api.fetch_habits()
            self.habits = [ClientHabit.from_api(item) for item in data]
            self.unsynced.clear()
        except ApiError as e:
            logger.error(f"Failed to sync habits: {e}")
            self.sync_errors.append(f"sync: {e.message}")
        finally:
            self.is_loading = False

    async def add_habit(self, name: str):
        await self.api.create_habit(name)
        await self.sync_habits()

    async def remove_habit(self, habit_id: str):
        self.habits = [h for h in self.habits if h.id != habit_id]
        try:
            await self.api.delete_habit(habit_id)
        finally:
            await self.sync_habits()

    # Optimistic-only

    def toggle_habit(self, habit_id: str, day: str) -> Optional[asyncio.Task]:
        habit = self.get_habit(habit_id)
        if habit is None:
            return None
        undo = self._day_undo(habit, day)
        if habit.completed_dates.get(day):
            del habit.completed_dates[day]
            # Server deletes the log row, and the note with it
            habit.notes.pop(day, None)
        else:
            habit.completed_dates[day] = True
        return self._background(habit_id, undo, self.api.toggle_log(habit_id, day), "toggle")

    def set_done(self, habit_id: str, day: str, done: bool) -> Optional[asyncio.Task]:
        habit = self.get_habit(habit_id)
        if habit is None:
            return None
        undo = self._day_undo(habit, day)
        if done:
            habit.completed_dates[day] = True
        else:
            habit.completed_dates.pop(day, None)
            habit.notes.pop(day, None)
        return self._background(habit_id, undo, self.api.set_done(habit_id, day, done), "set_done")

    def rename_habit(self, habit_id: str, name: str) -> Optional[asyncio.Task]:
        habit = self.get_habit(habit_id)
        if habit is None:
            return None
        previous = habit.name

        def undo(h: ClientHabit):
            h.name = previous

        habit.name = name
        return self._background(habit_id, undo, self.api.rename_habit(habit_id, name), "rename")

    def add_note(self, habit_id: str, day: str, note: str) -> Optional[asyncio.Task]:
        habit = self.get_habit(habit_id)
        if habit is None:
            return None
        undo = self._day_undo(habit, day)
        if note:
            habit.notes[day] = note
        else:
            habit.notes.pop(day, None)
        # Saving a note creates the day's log row on the server
        habit.completed_dates[day] = True
        return self._background(habit_id, undo, self.api.update_note(habit_id, day, note), "note")

    def set_reminder_time(self, habit_id: str, reminder_time: Optional[str]) -> Optional[asyncio.Task]:
        habit = self.get_habit(habit_id)
        if habit is None:
            return None
        previous = habit.reminder_time

        def undo(h: ClientHabit):
            h.reminder_time = previous

        habit.reminder_time = reminder_time
        return self._background(
            habit_id, undo, self.api.set_reminder_time(habit_id, reminder_time), "reminder"
        )

    @staticmethod
    def _day_undo(habit: ClientHabit, day: str) -> Callable[[ClientHabit], None]:
        """Capture one day's done flag and note so a failed call restores only that day"""
        was_done = habit.completed_dates.get(day)
        note = habit.notes.get(day)

        def undo(h: ClientHabit):
            if was_done:
                h.completed_dates[day] = was_done
            else:
                h.completed_dates.pop(day, None)
            if note is not None:
                h.notes[day] = note
            else:
                h.notes.pop(day, None)

        return undo

    def reorder_habits(self, from_index: int, to_index: int) -> Optional[asyncio.Task]:
        """Move one habit in the display list and persist the new full order"""
        if not (0 <= from_index < len(self.habits)) or not (0 <= to_index < len(self.habits)):
            return None
        previous_order = [h.id for h in self.habits]
        moved = self.habits.pop(from_index)
        self.habits.insert(to_index, moved)
        ordered_ids = [h.id for h in self.habits]
        return self._spawn(self._run_reorder(previous_order, ordered_ids))

    async def _run_reorder(self, previous_order: List[str], ordered_ids: List[str]):
        try:
            await self.api.reorder(ordered_ids)
        except ApiError as e:
            logger.error(f"Reorder failed, restoring previous order: {e}")
            by_id = {h.id: h for h in self.habits}
            restored = [by_id[i] for i in previous_order if i in by_id]
            restored += [h for h in self.habits if h.id not in previous_order]
            self.habits = restored
            self.unsynced.update(ordered_ids)
            self.sync_errors.append(f"reorder: {e.message}")

    def _background(self, habit_id: str, undo: Callable[[ClientHabit], None], call: Awaitable,
                    action: str) -> asyncio.Task:
        return self._spawn(self._run_optimistic(habit_id, undo, call, action))

    async def _run_optimistic(self, habit_id: str, undo: Callable[[ClientHabit], None], call: Awaitable,
                              action: str):
        try:
            await call
        except ApiError as e:
            logger.error(f"{action} failed for habit {habit_id}, rolling back: {e}")
            habit = self.get_habit(habit_id)
            if habit is not None:
                # Only this mutation is reverted; later ones on the same habit stand
                undo(habit)
            self.unsynced.add(habit_id)
            self.sync_errors.append(f"{action} {habit_id}: {e.message}")
        else:
            self.unsynced.discard(habit_id)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def flush(self):
        """Wait for all in-flight background mutations"""
        while self._pending:
            results = await asyncio.gather(*list(self._pending), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Background mutation crashed: {result!r}")
                    self.sync_errors.append(f"unexpected: {result!r}")

    # Coach chat

    async def load_conversations(self):
        self.chat.conversations = await self.api.list_conversations()

    async def new_conversation(self):
        self.chat.active_conversation_id = None
        self.chat.messages = []

    async def open_conversation(self, conversation_id: str):
        data = await self.api.get_conversation(conversation_id)
        self.chat.active_conversation_id = data["id"]
        self.chat.messages = list(data.get("messages") or [])

    async def delete_conversation(self, conversation_id: str):
        await self.api.delete_conversation(conversation_id)
        if self.chat.active_conversation_id == conversation_id:
            await self.new_conversation()
        await self.load_conversations()

    async def send_chat_message(self, text: str) -> Dict[str, Any]:
        """Send one user turn to the coach, persist the exchange and return the reply"""
        if not self.api_key:
            raise ValueError("An API key is required to chat with the coach")
        text = text.strip()
        if not text:
            raise ValueError("Message cannot be empty")

        self.chat.is_sending = True
        try:
            if self.chat.active_conversation_id is None:
                created = await self.api.create_conversation()
                self.chat.active_conversation_id = created["id"]

            self.chat.messages.append({"role": "user", "content": text})
            reply = await self.api.chat(
                self.api_key,
                self.model_name,
                self.chat.messages,
                [h.name for h in self.habits]
            )
            assistant = {"role": "assistant", "content": reply.get("message") or ""}
            if reply.get("habits"):
                assistant["habits"] = reply["habits"]
            self.chat.messages.append(assistant)

            await self.api.save_conversation_messages(self.chat.active_conversation_id, self.chat.messages)
            await self.load_conversations()
            return assistant
        finally:
            self.chat.is_sending = False

    async def accept_suggestion(self, suggestion: Dict[str, Any]):
        await self.add_habit(suggestion["name"])

    # Lifecycle

    async def close(self):
        """Finish in-flight calls, end the server session and drop local state"""
        if self._closed:
            return
        await self.flush()
        try:
            await self.api.logout()
        except ApiError as e:
            logger.warning(f"Logout failed: {e}")
        await self.api.close()
        self.habits = []
        self.chat = ChatState()
        self.unsynced.clear()
        self._closed = True
