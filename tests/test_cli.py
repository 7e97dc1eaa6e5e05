"""
Tests for CLI module.
"""

import logging
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from testrail_sync.cli import _confirm_import, _print_stage_report, main, parse_arguments
from testrail_sync.exceptions import FetchError
from testrail_sync.importer import ImportReport
from testrail_sync.models import Suite
from testrail_sync.orchestrator import FullMigrationResult, StageResult
from testrail_sync.utils import setup_logging

LOCATION_ARGS = ["--src-project", "30", "--src-suite", "20069", "--dst-project", "31", "--dst-suite", "19859"]


@pytest.mark.unit
class TestParseArguments:
    def test_defaults(self) -> None:
        args = parse_arguments(["cases", *LOCATION_ARGS])
        assert args.command == "cases"
        assert args.src_project == 30
        assert args.dst_suite == 19859
        assert args.compare_field == "title"
        assert args.workers == 8
        assert not args.dry_run
        assert not args.approve
        assert args.log_dir == ".testrail"

    def test_missing_location_is_rejected(self) -> None:
        with pytest.raises(SystemExit):
            _ = parse_arguments(["suites", "--src-project", "30"])

    def test_unknown_command_is_rejected(self) -> None:
        with pytest.raises(SystemExit):
            _ = parse_arguments(["milestones", *LOCATION_ARGS])


@pytest.mark.unit
class TestStageOutput:
    def test_report_with_failures(self, capsys: pytest.CaptureFixture[str]) -> None:
        stage = StageResult(
            "cases",
            source_count=5,
            destination_count=2,
            novel=[object(), object(), object()],
            report=ImportReport(attempted=3, created_ids=[1, 2], errors=['case "X": 400 Bad Request']),
        )

        _print_stage_report(stage)
        out = capsys.readouterr().out

        assert "Already present: 2" in out
        assert "New: 3" in out
        assert "Imported: 2" in out
        assert 'case "X": 400 Bad Request' in out

    def test_dry_run_report(self, capsys: pytest.CaptureFixture[str]) -> None:
        _print_stage_report(StageResult("suites", source_count=1, novel=[object()], dry_run=True))
        assert "Dry run: nothing imported" in capsys.readouterr().out

    @pytest.mark.parametrize(("answer", "expected"), [("y", True), ("YES", True), ("n", False), ("", False)])
    def test_confirm_import(self, answer: str, expected: bool) -> None:
        stage = StageResult("suites", novel=[Suite(id=1, name="Smoke")])
        with patch("builtins.input", return_value=answer):
            assert _confirm_import(stage) is expected

    def test_confirm_import_without_stdin(self) -> None:
        with patch("builtins.input", side_effect=EOFError):
            assert _confirm_import(StageResult("suites", novel=[object()])) is False


@pytest.mark.unit
class TestSetupLogging:
    """Test setup_logging verbosity levels."""

    def _get_console_handler(self, root_logger: logging.Logger) -> logging.StreamHandler[Any]:
        console_handlers = [
            h
            for h in root_logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]
        assert console_handlers, "Expected at least one console StreamHandler"
        return console_handlers[0]

    @pytest.mark.parametrize(
        ("verbosity", "level"), [(0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG), (5, logging.DEBUG)]
    )
    def test_console_level(
        self, verbosity: int, level: int, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        root_logger = logging.getLogger()
        original_handlers = root_logger.handlers[:]
        root_logger.handlers.clear()

        try:
            setup_logging(verbosity=verbosity)
            assert self._get_console_handler(root_logger).level == level
            assert not [h for h in root_logger.handlers if isinstance(h, logging.FileHandler)]
            assert list(tmp_path.iterdir()) == []
        finally:
            for h in root_logger.handlers:
                h.close()
            root_logger.handlers = original_handlers


@pytest.mark.unit
class TestMainForwarding:
    """Test that command line options reach the context and orchestrator."""

    def _run_main(self, argv: list[str], orchestrator: MagicMock, tmp_path: Path) -> tuple[int | str | None, Any]:
        with (
            patch("testrail_sync.cli.setup_logging"),
            patch("testrail_sync.cli.tru.get_client", return_value=MagicMock()) as mock_get_client,
            patch("testrail_sync.cli.SyncOrchestrator", return_value=orchestrator) as mock_orchestrator,
        ):
            with pytest.raises(SystemExit) as exc_info:
                main([*argv, "--log-dir", str(tmp_path)])
            self.get_client = mock_get_client
        return exc_info.value.code, mock_orchestrator

    def _orchestrator(self) -> MagicMock:
        orchestrator = MagicMock()
        orchestrator.mapping_file = None
        orchestrator.mapping.return_value = {10: 200}
        stage = StageResult("suites", source_count=1)
        for name in ("migrate_suites", "migrate_sections", "migrate_shared_steps", "migrate_cases"):
            getattr(orchestrator, name).return_value = stage
        orchestrator.migrate_full.return_value = FullMigrationResult(stages=[stage])
        return orchestrator

    def test_flags_forwarded(self, tmp_path: Path) -> None:
        orchestrator = self._orchestrator()

        code, mock_orchestrator = self._run_main(
            ["suites", *LOCATION_ARGS, "--dry-run", "--approve", "--save-mapping", "--export"], orchestrator, tmp_path
        )

        assert code == 0
        _, kwargs = mock_orchestrator.call_args
        assert kwargs["dry_run"] is True
        assert kwargs["confirm"] is None
        assert kwargs["export_snapshots"] is True
        assert kwargs["save_mapping"] is True
        orchestrator.migrate_suites.assert_called_once()

    def test_confirmation_asked_without_approve(self, tmp_path: Path) -> None:
        code, mock_orchestrator = self._run_main(["sections", *LOCATION_ARGS], self._orchestrator(), tmp_path)
        assert code == 0
        assert mock_orchestrator.call_args.kwargs["confirm"] is _confirm_import

    def test_connection_options_forwarded(self, tmp_path: Path) -> None:
        argv = ["full", *LOCATION_ARGS, "--url", "https://x.testrail.io", "--username", "qa", "--insecure", "-y"]
        code, _ = self._run_main(argv, self._orchestrator(), tmp_path)
        assert code == 0
        self.get_client.assert_called_once_with("https://x.testrail.io", "qa", None, verify=False)

    def test_cases_writes_summary(self, tmp_path: Path) -> None:
        code, _ = self._run_main(["cases", *LOCATION_ARGS, "-y"], self._orchestrator(), tmp_path)
        assert code == 0
        assert len(list(tmp_path.glob("sync_cases_*.json"))) == 1

    def test_mapping_file_loaded(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        mapping_file = tmp_path / "mapping.json"
        mapping_file.write_text('{"5": 105}')

        code, _ = self._run_main(
            ["cases", *LOCATION_ARGS, "-y", "--mapping-file", str(mapping_file)], self._orchestrator(), tmp_path
        )

        assert code == 0
        assert "Loaded mapping: 1 pairs" in capsys.readouterr().out

    def test_sync_error_exits_nonzero(self, tmp_path: Path) -> None:
        orchestrator = self._orchestrator()
        orchestrator.migrate_suites.side_effect = FetchError("suites", "source", "connection refused")

        code, _ = self._run_main(["suites", *LOCATION_ARGS, "-y"], orchestrator, tmp_path)

        assert code == 1

    def test_bad_mapping_file_exits_nonzero(self, tmp_path: Path) -> None:
        code, _ = self._run_main(
            ["cases", *LOCATION_ARGS, "-y", "--mapping-file", str(tmp_path / "missing.json")],
            self._orchestrator(),
            tmp_path,
        )
        assert code == 1
