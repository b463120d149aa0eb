# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets; keep them in .env (local, gitignored).

Unprefixed names in parentheses are still read when the BRAIN_ one is unset.
"""

ENV_VARS = {
    # App / logging
    "BRAIN_APP_NAME": "App display name (default: second-brain).",
    "BRAIN_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "BRAIN_DATA_DIR": "Local data directory (default: .local/second_brain).",
    "BRAIN_TIMEZONE": "Reference timezone for relative dates (TIMEZONE; default: Asia/Bangkok).",
    # Capture flow
    "BRAIN_CAPTURE_MODE": "agentic (tool-calling loop) or legacy (extract then act). Default: agentic.",
    "BRAIN_AGENT_MAX_TURNS": "Upper bound on model turns per agentic request (default: 5).",
    "BRAIN_THINKING_LEVEL": "Reasoning effort for capture calls: low/medium/high (default: low).",
    # LLM (OpenAI-compatible endpoint, Gemini by default)
    "BRAIN_LLM_API_KEY": "Model API key (GEMINI_API_KEY / OPENAI_API_KEY). Offline mode when unset.",
    "BRAIN_LLM_BASE_URL": "OpenAI-compatible base URL (default: Gemini's /v1beta/openai/ endpoint).",
    "BRAIN_LLM_MODEL": "Model name (default: gemini-3-flash-preview).",
    "BRAIN_LLM_TIMEOUT_SECONDS": "Read timeout per model call (default: 60).",
    "BRAIN_LLM_SEND_REASONING_EFFORT": "Send reasoning_effort with requests (true/false, default: true).",
    # Record store
    "BRAIN_STORE_BACKEND": "auto, notion or sqlite. auto picks notion when token and database id are set.",
    "BRAIN_NOTION_TOKEN": "Notion integration token (NOTION_TOKEN).",
    "BRAIN_NOTION_DATABASE_ID": "Notion database id or URL (NOTION_DATABASE_ID).",
    "BRAIN_NOTION_VERSION": "Notion-Version header (default: 2022-06-28).",
    "BRAIN_NOTION_BASE_URL": "Notion API base URL (default: https://api.notion.com/v1).",
    "BRAIN_TASKS_DB_PATH": "SQLite task store path (default: <data_dir>/tasks.sqlite3).",
    # Connectors
    "BRAIN_CONSOLE_ENABLED": "Enable console connector (true/false, default: true).",
    "BRAIN_MATRIX_ENABLED": "Enable Matrix connector (true/false, default: false).",
    "BRAIN_MATRIX_HOMESERVER": "Matrix homeserver URL (MATRIX_HOMESERVER).",
    "BRAIN_MATRIX_USER_ID": "Matrix user ID of the bot (MATRIX_USER_ID).",
    "BRAIN_MATRIX_PASSWORD": "Password for first login; the session is stored locally (MATRIX_PASSWORD).",
    "BRAIN_MATRIX_ROOMS": "Optional allowlist of room IDs (empty => all rooms).",
    "BRAIN_MATRIX_STORE_PATH": "Matrix session directory (default: <data_dir>/matrix_store).",
    # Briefings
    "BRAIN_BRIEFINGS_ENABLED": "Run the morning/nightly digest scheduler (true/false, default: true).",
    "BRAIN_BRIEFING_CHANNEL": "Channel/room for scheduled digests (BRIEFING_CHANNEL_ID).",
    "BRAIN_BRIEFING_TIMEZONE": "Timezone for digest times (default: BRAIN_TIMEZONE).",
    "BRAIN_MORNING_TIME": "Morning briefing time, HH:MM (default: 08:00).",
    "BRAIN_NIGHTLY_TIME": "Nightly review time, HH:MM (default: 21:00).",
    "BRAIN_MIDDAY_TIME": "Optional midday status update (morning briefing again), HH:MM. Off when unset.",
}
