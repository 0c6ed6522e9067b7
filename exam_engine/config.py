"""
Engine configuration.

Values come from the process environment, after a local .env file (if any)
has been loaded. Read once at import; tests patch the module attributes.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# ─── Text-generation service ───────────────────────────────────────────────────

LLM_API_KEY = (
    os.getenv("LLM_API_KEY")
    or os.getenv("GOOGLE_API_KEY")
    or os.getenv("OPENAI_API_KEY")
    or ""
).strip()
LLM_BASE_URL = os.getenv(
    "LLM_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
)
DEFAULT_MODEL_ID = os.getenv("EXAM_MODEL_ID", "gemini-2.0-flash")

LLM_TEMPERATURE_GENERATION = 0.5
LLM_TEMPERATURE_GRADING = 0.2
LLM_MAX_TOKENS_GENERATION = 8192
LLM_MAX_TOKENS_GRADING = 8192

# ─── Persistence ───────────────────────────────────────────────────────────────

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
SESSION_TTL_MINUTES = int(os.getenv("EXAM_SESSION_TTL_MINUTES") or 1440)

# ─── Submission backend ────────────────────────────────────────────────────────

SUBMISSION_API_URL = os.getenv("SUBMISSION_API_URL", "http://localhost:3000/api/exams")
SUBMISSION_TIMEOUT_SECONDS = 15.0

# ─── Question bank ─────────────────────────────────────────────────────────────

BATCH_SIZE = 20
DEFAULT_QUESTION_COUNT = int(os.getenv("EXAM_DEFAULT_QUESTION_COUNT") or 10)

# ─── Timer / grading ───────────────────────────────────────────────────────────

TIMER_TICK_SECONDS = 1.0
TIMER_SAVE_INTERVAL_SECONDS = 10
MAX_SCORE = 10.0
MIN_EFFORT_PERCENT = 5.0
