"""Tests for the G2 security/PII gate script."""

import importlib.util
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
SCRIPT = ROOT / "scripts" / "gate_security_pii.py"


@pytest.fixture(scope="module")
def gate():
    spec = importlib.util.spec_from_file_location("gate_security_pii", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _write(tmp_path: Path, source: str) -> Path:
    path = tmp_path / "module.py"
    path.write_text(source, encoding="utf-8")
    return path


class TestCheckFile:
    def test_print_is_rejected(self, gate, tmp_path):
        errors = gate.check_file(_write(tmp_path, "print('hello')\n"))
        assert len(errors) == 1
        assert "print()" in errors[0]

    def test_sensitive_logger_call_without_redaction(self, gate, tmp_path):
        errors = gate.check_file(_write(tmp_path, "logger.info('sent', phone)\n"))
        assert any("'phone'" in e for e in errors)

    def test_fstring_logger_message(self, gate, tmp_path):
        errors = gate.check_file(_write(tmp_path, "logger.info(f'sent to {to}')\n"))
        assert any("f-string" in e for e in errors)

    def test_redacted_logger_call_passes(self, gate, tmp_path):
        source = (
            "logger.info('sent', extra={'extra_fields': "
            "safe_log_context(phone=phone)})\n"
        )
        assert gate.check_file(_write(tmp_path, source)) == []

    def test_comments_are_ignored(self, gate, tmp_path):
        assert gate.check_file(_write(tmp_path, "# print(payload)\n")) == []


class TestSourceTree:
    def test_src_is_clean(self, gate):
        assert gate.check_tree(ROOT / "src") == []

    def test_main_reports_success(self, gate, capsys):
        assert gate.main([str(ROOT / "src")]) == 0
        assert "PASSED" in capsys.readouterr().out

    def test_main_reports_failure(self, gate, tmp_path, capsys):
        _write(tmp_path, "print('x')\n")
        assert gate.main([str(tmp_path)]) == 1
        assert "FAILED" in capsys.readouterr().err
