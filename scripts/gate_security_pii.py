#!/usr/bin/env python3
"""Gate G2: Security & PII check for source files.

Phone numbers, JIDs, QR challenges and message text must never be logged
verbatim. Fails if:
- print( found in runtime code (src/**)
- a logger call names a sensitive value without redaction on the same line
- a logger message is an f-string (interpolated values bypass redaction)

Usage:
    python scripts/gate_security_pii.py [SRC_DIR]
"""

import re
import sys
from pathlib import Path

# Keywords that must not appear in logger calls without redaction
SENSITIVE_KEYWORDS = (
    "payload",
    "request.json",
    "webhook",
    "message_text",
    "phone",
    "chat_id",
    "contact_id",
    "qr_code",
    ".body",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(
    r"logger\.(debug|info|warning|error|critical|exception)\s*\("
)

LOGGER_FSTRING_PATTERN = re.compile(
    r"logger\.(debug|info|warning|error|critical|exception)\s*\(\s*f[\"']"
)

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
)


def _code_part(line: str) -> str:
    return line.split("#")[0] if "#" in line else line


def check_file(filepath: Path) -> list[str]:
    """Check a single file for violations. Returns list of error messages."""
    errors = []
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []

    for lineno, line in enumerate(content.splitlines(), start=1):
        if line.lstrip().startswith("#"):
            continue
        code = _code_part(line)

        if PRINT_PATTERN.search(code):
            errors.append(f"{filepath}:{lineno}: print() not allowed in runtime code")

        if LOGGER_FSTRING_PATTERN.search(code):
            errors.append(
                f"{filepath}:{lineno}: f-string logger message; pass values via extra_fields"
            )

        if LOGGER_CALL_PATTERN.search(code):
            code_lower = code.lower()
            has_redaction = any(rp in code for rp in REDACTION_PATTERNS)
            for keyword in SENSITIVE_KEYWORDS:
                if keyword in code_lower and not has_redaction:
                    errors.append(
                        f"{filepath}:{lineno}: logger call with '{keyword}' "
                        "must use redaction (safe_log_context/redact_value)"
                    )

    return errors


def check_tree(src_dir: Path) -> list[str]:
    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))
    return all_errors


def main(argv: list[str] | None = None) -> int:
    """Run gate check on the src directory."""
    args = sys.argv[1:] if argv is None else argv
    src_dir = Path(args[0]) if args else Path("src")

    if not src_dir.exists():
        src_dir = Path(__file__).parent.parent / "src"

    if not src_dir.exists():
        sys.stderr.write("Error: src directory not found\n")
        return 1

    all_errors = check_tree(src_dir)
    if all_errors:
        sys.stderr.write("Gate G2 FAILED - Security/PII violations found:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("Gate G2 PASSED - No security/PII violations found\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
