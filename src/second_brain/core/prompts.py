# src/second_brain/core/prompts.py

from __future__ import annotations

from collections.abc import Iterable
from typing import Final

from .models import Task, TaskSnapshot

FORMAT_RULES: Final[str] = """
FORMATTING:
- Plain chat text. Use *text* for bold (never **text**).
- Use "-" bullet points for lists.
- Match the user's language (English or Thai).
""".strip()


EXTRACTION_SCHEMA: Final[str] = """
{
  "title": "A concise title (max 100 chars)",
  "clean_summary": "A clean summary of the thought/task (2-3 sentences)",
  "category": "One of: Work, Personal, Idea, Health",
  "priority": "One of: P1 (urgent), P2 (important), P3 (normal)",
  "due_date": "ISO 8601 date string (YYYY-MM-DD) or empty string if not specified",
  "assignee": "Name of person assigned (or null if none)",
  "intent": "One of: new_task, update_task, query, delete_task",
  "target_task_title": "If intent is update_task or delete_task, the name of the task being referenced. Otherwise null",
  "search_query": "The specific term to search for. If the user wants ALL tasks, set to 'all'."
}
""".strip()


INTENT_RULES: Final[str] = """
IMPORTANT - Intent Detection Rules:
- "delete_task": User explicitly wants to DELETE, REMOVE, or ARCHIVE a task.
  * Keywords (Thai): "ลบ", "เอาออก", "ลบทิ้ง", "ลบงาน".
  * Keywords (English): "delete", "remove", "archive", "destroy".
  * target_task_title: extract ONLY the subject or person. Remove "all tasks for", "ทุกงานของ", "ลบงาน" and bot mentions.
- "query": User asks about existing tasks, requests a list, or checks status.
  Keywords: "What", "Show", "List", "Do I have", "How many", "search", "งานทั้งหมด".
  * If the user wants a list of EVERYTHING ("list all tasks", "show all", "งานทั้งหมด"), set search_query to "all".
  * If searching for a person, use their name ("Tasks for View" -> "View").
  * If searching for a status or priority, use it ("P1 tasks" -> "P1").
  * Remove filler words like "tasks for", "work of", "show me", "list" and bot mentions.
  * Convert Thai nicknames to their likely English spelling ("วิว" -> "View", "นุ่น" -> "Noon").
- "update_task": User wants to CHANGE an existing task (status, note, date).
  Keywords: "update", "done", "finish", "complete", "doing", "change".
- "new_task": User shares a thought/idea or creates a TODO.

Examples:
- "ลบงานของวิวทั้งหมด" -> intent: "delete_task", target_task_title: "View"
- "delete all tasks for View" -> intent: "delete_task", target_task_title: "View"
- "Remove the task for Client X" -> intent: "delete_task", target_task_title: "Client X"
- "List all tasks" -> intent: "query", search_query: "all"
- "งานทั้งหมดมีอะไรบ้าง" -> intent: "query", search_query: "all"
- "Update Client X to Done" -> intent: "update_task", target_task_title: "Client X"
""".strip()


def _date_context(now_text: str) -> str:
    return f"""
IMPORTANT - DATE CONTEXT:
Today is: {now_text}
When the user says "today", use this date.
When the user says "tomorrow", use the day after this date.
When the user says "next Monday", calculate based on this date.
""".strip()


def build_multi_extraction_prompt(text: str, now_text: str) -> str:
    return f"""Analyze the following message and extract structured information.
Return ONLY a valid JSON object of the form {{"items": [ ... ]}} with no additional text, comments, or markdown.
Each element of "items" must match this exact structure:

{EXTRACTION_SCHEMA}

IMPORTANT - LISTS:
If the message contains several bulleted, numbered or line-separated items, return ONE element per item,
in the order they appear. Never merge several items into one element.

{_date_context(now_text)}

{INTENT_RULES}

Original text: "{text}\""""


def build_single_extraction_prompt(text: str, now_text: str) -> str:
    return f"""Analyze the following thought/task and extract structured information.
Return ONLY a valid JSON object with no additional text, comments, or markdown formatting.
The JSON must match this exact structure:

{EXTRACTION_SCHEMA}

{_date_context(now_text)}

{INTENT_RULES}

Original text: "{text}\""""


def build_thread_update_prompt(reply: str, snapshot: TaskSnapshot | None, now_text: str) -> str:
    task_context = ""
    if snapshot is not None:
        task_context = (
            f'Original task: "{snapshot.title}"\n'
            f"Summary: {snapshot.summary}\n"
            f"Status: {snapshot.status}\n\n"
        )

    return f"""Given this task update/reply from the user, determine what action they're taking. Return JSON:

{{
  "action": "One of: completed, in_progress, detail, rescheduled, deleted, unchanged",
  "updates": {{
    "status": "Done" or "In Progress" (only if action is "completed" or "in_progress"),
    "note": "Additional detail to append" (if action is "detail"),
    "due_date": "New ISO date YYYY-MM-DD" (if action is "rescheduled")
  }},
  "thought_signature": "Updated signature if provided, otherwise empty string"
}}

CLASSIFICATION RULES:
- "completed": done, finished, complete, closed, "เสร็จแล้ว", "เรียบร้อย", "ทำเสร็จ".
- "in_progress": doing, working on it, started, in progress, "กำลังทำ", "เริ่มแล้ว".
- "deleted": "delete this", "remove this", "cancel this task", "ลบงานนี้", "ลบเลย", "ยกเลิก".
- "rescheduled": postpone, move to, reschedule, a new date, "เลื่อน", "เลื่อนไป".
- "detail": any additional information about the task.
- "unchanged": acknowledgements with no new information ("ok", "thanks").

{_date_context(now_text)}
When the user mentions or implies dates (e.g. "tomorrow", "next week"), calculate based on today's date.

{task_context}User reply: "{reply}\""""


def build_agent_system_prompt(now_text: str, tool_names: Iterable[str]) -> str:
    tools = "\n".join(f"- {name}" for name in tool_names)
    return f"""You are the user's "Second Brain": a concise task assistant working inside a chat.
You capture, find, update and archive tasks by calling tools. Never invent task ids: search first.

Current date and time: {now_text}
Resolve relative dates ("today", "tomorrow", "next Monday") against this date and pass ISO dates (YYYY-MM-DD).

Available tools:
{tools}

RULES:
- If the message lists several items, create one task per item.
- To change or archive an existing task, search for it first, then use the id from the results.
- A search query of "all" lists every open task.
- You may call several tools in one turn; they run in order, so later calls can use earlier results.
- When done, answer in 1-4 short lines: what you did or what you found.
- Do not add advice or opinions unless asked.

{FORMAT_RULES}"""


def build_answer_prompt(question: str, tasks: Iterable[Task]) -> str:
    lines = [
        f"- [{t.status.value}] {t.title} (Due: {t.due_date or 'N/A'}, Priority: {t.priority.value})"
        for t in tasks
    ]
    tasks_context = "\n".join(lines) or "No relevant tasks found."

    return f"""You are a concise assistant for the user's "Second Brain".
User Question: "{question}"

Found Tasks for Context:
{tasks_context}

INSTRUCTIONS:
1. Answer the user's question directly and concisely based on the tasks provided.
2. DO NOT provide extra advice, opinions, or recommendations unless explicitly asked.
3. If no tasks are found, simply state that no matching tasks were found in the brain.
4. Keep the tone professional and brief.

{FORMAT_RULES}"""


def build_focus_list_prompt(tasks: Iterable[Task]) -> str:
    lines = [
        f"- {t.title} ({t.priority.value}, Due: {t.due_date or 'No due date'}): {t.summary}"
        for t in tasks
    ]
    tasks_text = "\n".join(lines)
    return f"""Generate a concise daily focus list summary from these tasks.
Focus on priorities and actionable items (2-3 sentences).

{FORMAT_RULES}

Tasks for summary:
{tasks_text}"""
