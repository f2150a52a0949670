"""Shared constants for AutoCoder - enum lists, reserved names, defaults."""

import re

# --- Entity enum lists (used by validation and the dashboard) ---

NODE_TYPES = ["file", "folder"]

KNOWLEDGE_CATEGORIES = ["business", "technical", "user", "general"]

CLIPBOARD_CATEGORIES = [
    "idea", "prompt_tool", "prompt_helper",
    "link_tool", "link_article", "link_video",
    "video_tutorial", "irrelevant",
]

RELEVANCE_LEVELS = ["high", "medium", "low"]

PIPELINE_STAGES = ["backend", "frontend", "design", "deployment", "planning"]

CHAT_ROLES = ["user", "model"]

# --- Clipboard persistence (legacy sentinel node) ---

CLIPBOARD_SENTINEL_NAME = ".vibecode_clipboard.json"
CLIPBOARD_SENTINEL_ID = "clipboard-persistence-node"
CLIPBOARD_SENTINEL_PATH = "/" + CLIPBOARD_SENTINEL_NAME

# --- Knowledge base ---

LEGACY_KNOWLEDGE_ID = "legacy-1"
LEGACY_KNOWLEDGE_TITLE = "General Context"

# --- Import ---

BINARY_EXTENSIONS = [
    # images
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".bmp", ".webp", ".tif", ".tiff",
    # documents / archives
    ".pdf", ".zip", ".gz", ".tgz", ".tar", ".rar", ".7z", ".jar",
    # executables / libraries
    ".exe", ".dll", ".bin", ".so", ".dylib", ".class", ".pyc", ".o",
    # audio / video
    ".mp3", ".wav", ".ogg", ".flac", ".mp4", ".webm", ".mov", ".avi", ".mkv",
]

DEFAULT_NEW_FILE_NAME = "newfile"

FILE_CHANGES_PATTERN = re.compile(r"<file_changes>([\s\S]*?)</file_changes>")

# --- Local embedded store ---

LOCAL_SCHEMA_VERSION = 4

# --- Remote store defaults ---

DEFAULT_REMOTE_API_URL = "http://localhost:3001/api"

DEFAULT_PLAN = [{
    "id": "1",
    "title": "Requirements analysis",
    "description": "Based on the knowledge base",
    "status": "pending",
    "type": "structure",
    "children": [],
}]
