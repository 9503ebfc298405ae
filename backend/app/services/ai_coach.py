"""
AI Coach Service - habit analysis and mini-habit generation

The generative model is an external collaborator: prompt text in, text out,
sometimes malformed. Every parse here degrades instead of raising, except the
single-shot generator whose contract is a JSON array.
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional
import json
import logging
import re

from app.core.llm import GeminiClient, resolve_model

logger = logging.getLogger(__name__)

MAX_CHAT_MESSAGES = 40
ANALYSIS_DAYS = 14

ANALYSIS_PROMPT = """
You are a minimalist habit coach. Analyze the following habit data for the last 7-14 days.
Your goal is to provide a "Weekly Review" that is concise, encouraging, and actionable.

Data:
{context}

Output Requirements:
1.  **Summary:** One sentence on overall performance.
2.  **Insight:** One specific observation based on the data (correlation between notes and completion, streaks, etc.).
3.  **Action:** One small, specific suggestion for next week.

Keep the tone calm, objective, and supportive. Total output should be under 100 words. Return plain text, no markdown formatting beyond simple bullet points if needed.
"""

GENERATE_PROMPT = """
You are an expert in the Mini Habits methodology by Stephen Guise.
The user wants to reach this goal: {goal}
{context_line}
Propose 3-5 mini habits. Each must take less than 2 minutes, be a specific physical action and be too small to fail.

Respond with ONLY a JSON array, no other text:
[{{"name": "Habit name (max 8 words)", "why": "One sentence explanation"}}]
"""

CHAT_SYSTEM_PROMPT = """You are an expert in the Mini Habits methodology by Stephen Guise, acting as a friendly coach. Your job is to help the user design daily mini habits, actions so small they're impossible to fail.

Rules for mini habits:
- Each takes less than 2 minutes
- Each is a specific, physical action (not a vague intention)
- Follows the "too small to fail" principle
- Builds toward the user's larger goal over time

Conversation flow:
1. First, understand the user's goal. Ask 2-3 short clarifying questions (current experience, available time, obstacles).
2. Once you understand, propose 3-5 mini habits.
3. If the user gives feedback, refine your proposals.
4. If the user asks HOW to do a habit or asks for advice, answer their question with practical, actionable tips. Do NOT re-propose habits. Set "habits" to null when answering questions.
5. Only propose new or revised habits when the user explicitly asks for different habits or you're refining based on their feedback.

{existing_habits}

You MUST always respond with valid JSON in this exact format:
{{"message": "your conversational text here", "habits": null}}

When proposing habits, use this format:
{{"message": "your text explaining the habits", "habits": [{{"name": "Habit name (max 8 words)", "why": "One sentence explanation"}}]}}

Set "habits" to null when you're asking questions or chatting without proposing habits.
Never include anything outside the JSON object."""

CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
ARRAY_RE = re.compile(r"\[[\s\S]*\]")
OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class MalformedModelOutput(Exception):
    """The model answered, but not in the shape the caller needs"""


def build_analysis_context(habits: List[Dict[str, Any]], today: date, days: int = ANALYSIS_DAYS) -> str:
    """Render the last ``days`` days of each habit as plain-text lines for the analysis prompt"""
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    blocks = []
    for habit in habits:
        completed = habit.get("completed_dates") or {}
        notes = habit.get("notes") or {}
        lines = [f"Habit: {habit['name']}"]
        for day in window:
            key = day.isoformat()
            status = "Done" if completed.get(key) else "Missed"
            note = f" (Note: {notes[key]})" if notes.get(key) else ""
            lines.append(f"{key}: {status}{note}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def normalize_habits(raw: Any) -> Optional[List[Dict[str, str]]]:
    if not isinstance(raw, list):
        return None
    habits = []
    for item in raw:
        if isinstance(item, dict) and item.get("name"):
            habits.append({"name": str(item["name"]).strip(), "why": str(item.get("why") or "").strip()})
    return habits


def parse_habit_array(text: str) -> List[Dict[str, str]]:
    """Parse the single-shot generator output, which must be a JSON array"""
    candidates = [text.strip()]
    fenced = CODE_FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    bracketed = ARRAY_RE.search(text)
    if bracketed:
        candidates.append(bracketed.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        habits = normalize_habits(parsed)
        if habits is not None:
            return habits
    raise MalformedModelOutput("Failed to parse habits from model response")


def parse_chat_reply(text: str) -> Dict[str, Any]:
    """Direct JSON, then the outermost brace substring, then raw text as the message"""
    for candidate in (text, _first_match(OBJECT_RE, text)):
        if candidate is None:
            continue
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return {
                "message": parsed.get("message") or text,
                "habits": normalize_habits(parsed.get("habits")) or None,
            }
    return {"message": text, "habits": None}


def _first_match(pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(0) if match else None


def to_model_contents(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep the last 40 messages and map roles onto the model's user/model pair"""
    contents = []
    for message in messages[-MAX_CHAT_MESSAGES:]:
        role = "model" if message.get("role") == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": str(message.get("content") or "")}]})
    return contents


def existing_habits_context(existing_habits: Optional[List[str]]) -> str:
    if not existing_habits:
        return "The user has no existing habits yet."
    listing = "\n".join(f"- {name}" for name in existing_habits)
    return (
        f"The user already tracks these habits:\n{listing}\n\n"
        "Avoid suggesting duplicates. You can build on existing habits or suggest complementary ones."
    )


class AICoachService:
    def __init__(self, llm: GeminiClient):
        self.llm = llm

    async def analyze(self, api_key: str, context: str, model_name: Optional[str]) -> str:
        model = resolve_model(model_name)
        return await self.llm.generate_text(api_key, model, ANALYSIS_PROMPT.format(context=context))

    async def generate_habits(
        self,
        api_key: str,
        model_name: Optional[str],
        goal: str,
        context: Optional[str] = None
    ) -> List[Dict[str, str]]:
        model = resolve_model(model_name)
        context_line = f"Additional context: {context}" if context else ""
        text = await self.llm.generate_text(
            api_key, model, GENERATE_PROMPT.format(goal=goal, context_line=context_line)
        )
        try:
            return parse_habit_array(text)
        except MalformedModelOutput:
            logger.error(f"Unparseable habit generation output: {text[:200]}")
            raise

    async def chat(
        self,
        api_key: str,
        model_name: Optional[str],
        messages: List[Dict[str, Any]],
        existing_habits: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        model = resolve_model(model_name)
        system_instruction = CHAT_SYSTEM_PROMPT.format(existing_habits=existing_habits_context(existing_habits))
        text = await self.llm.generate_content(
            api_key, model, to_model_contents(messages), system_instruction=system_instruction
        )
        return parse_chat_reply(text)
