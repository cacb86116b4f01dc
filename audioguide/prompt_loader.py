from __future__ import annotations

from pathlib import Path

SYSTEM_PROMPT_FILE = "system_prompt.txt"
WELCOME_MESSAGE_FILE = "welcome_message.txt"


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt file as UTF-8 text and strip BOM and trailing newlines.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded string.
    Side Effects / State: None; pure function reading the filesystem.
    Dependencies: Uses Path.read_text/read_bytes; used by the prompt composer and pipeline.
    Failure Modes: UnicodeDecodeError triggers a fallback decode with errors ignored,
        which can drop invalid bytes. A missing file raises FileNotFoundError.
    If Removed: The system instruction and welcome text cannot be built.
    Testing Notes: Validate BOM-stripping and fallback decoding on non-UTF8 files.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        raw = prompt_path.read_bytes()
        text = raw.decode("utf-8", errors="ignore")
    return text.lstrip("\ufeff").rstrip("\r\n")


def load_system_prompt_template(prompts_dir: Path) -> str:
    return load_prompt(prompts_dir / SYSTEM_PROMPT_FILE)


def load_welcome_message(prompts_dir: Path) -> str:
    return load_prompt(prompts_dir / WELCOME_MESSAGE_FILE)
