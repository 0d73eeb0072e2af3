"""Tests for CLI context dependency injection."""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import typer

from src.cli.context import CLIContext, build_cli_context, get_cli_context


def _context() -> CLIContext:
    return CLIContext(
        console=Mock(),
        commands=Mock(),
        constants=Mock(),
        paths=Mock(),
        store=Mock(),
    )


def test_cli_context_is_immutable():
    """Test that CLIContext is frozen/immutable."""
    ctx = _context()

    with pytest.raises(AttributeError):
        ctx.console = Mock()  # type: ignore[misc]


def test_build_cli_context_uses_host_root(monkeypatch, tmp_path):
    """Test that every path and the state store follow PG_PROVISION_ROOT."""
    monkeypatch.setenv("PG_PROVISION_ROOT", str(tmp_path))
    monkeypatch.setenv("PG_PROVISION_PG_VERSION", "16")

    ctx = build_cli_context()

    assert ctx.paths.root == tmp_path
    assert ctx.paths.pg_conf == tmp_path / "etc/postgresql/16/main/postgresql.conf"
    assert ctx.store.path == tmp_path / "etc/postgresql-setup.state"
    assert ctx.commands is not None
    assert ctx.constants.TOOL_NAME == "pg-provision"


def test_default_root_is_filesystem_root(monkeypatch):
    monkeypatch.delenv("PG_PROVISION_ROOT", raising=False)

    assert build_cli_context().paths.root == Path("/")


def test_get_cli_context_from_typer_context():
    """Test that get_cli_context retrieves from Typer context."""
    mock_ctx_obj = _context()
    typer_ctx = Mock(spec=typer.Context)
    typer_ctx.obj = mock_ctx_obj

    assert get_cli_context(typer_ctx) is mock_ctx_obj


def test_get_cli_context_with_invalid_obj_falls_back():
    """Test that get_cli_context falls back when ctx.obj is not CLIContext."""
    typer_ctx = Mock(spec=typer.Context)
    typer_ctx.obj = "invalid"

    with patch("src.cli.context.build_cli_context") as mock_build:
        mock_build.return_value = Mock(spec=CLIContext)

        get_cli_context(typer_ctx)

        mock_build.assert_called_once()


@patch("click.get_current_context")
def test_get_cli_context_uses_click_context_as_fallback(mock_get_click_ctx):
    """Test that get_cli_context uses click context when typer ctx is None."""
    mock_ctx_obj = _context()
    mock_click_context = Mock()
    mock_click_context.obj = mock_ctx_obj
    mock_get_click_ctx.return_value = mock_click_context

    result = get_cli_context(None)

    assert result is mock_ctx_obj
    mock_get_click_ctx.assert_called_once_with(silent=True)
