"""Tests for CLI module."""

import json
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from slidesmith import __version__
from slidesmith.cli import cli
from slidesmith.models import RenderResult

REQUEST = {
    "fileName": "cli_deck",
    "slides": [
        {"title": "Q1 Results", "bullets": ["Revenue: $1.2M"], "layout": "content_only"},
        {"title": "KPIs", "layout": "custom_x", "visual_recipe": {"type": "kpi", "items": []}},
    ],
}

TEMPLATE = {
    "layouts": {"content_only": {"areas": {}, "elements": []}},
    "tokens": {"primary": "#112233"},
    "visualStyles": {"palette": {"colors": ["#112233", "#445566"]}},
}


class TestCLI:
    """Tests for CLI functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()
        self.temp_dir = Path(tempfile.mkdtemp())

        self.request_path = self.temp_dir / "request.json"
        self.request_path.write_text(json.dumps(REQUEST), encoding="utf-8")

        self.template_path = self.temp_dir / "template.json"
        self.template_path.write_text(json.dumps(TEMPLATE), encoding="utf-8")

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_cli_version(self):
        """Test CLI version option."""
        result = self.runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_cli_help(self):
        """Test CLI help lists the commands."""
        result = self.runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "slidesmith" in result.output
        for command in ("render", "validate", "palette"):
            assert command in result.output

    def test_render_help(self):
        """Test render command help."""
        result = self.runner.invoke(cli, ["render", "--help"])
        assert result.exit_code == 0
        assert "--template" in result.output
        assert "--output-dir" in result.output

    @patch("slidesmith.cli.PresentationBuilder")
    def test_render_success(self, mock_builder_class):
        """Test a successful render reports the saved path."""
        mock_builder_class.return_value.build.return_value = RenderResult(
            success=True, file_path="/tmp/out/cli_deck.pptx"
        )

        result = self.runner.invoke(cli, ["render", str(self.request_path), "-o", str(self.temp_dir / "out")])

        assert result.exit_code == 0, result.output
        assert "Presentation saved to" in result.output
        settings = mock_builder_class.call_args.args[0]
        assert settings.output_dir == str(self.temp_dir / "out")
        request = mock_builder_class.return_value.build.call_args.args[0]
        assert request.file_name == "cli_deck"

    @patch("slidesmith.cli.PresentationBuilder")
    def test_render_failure_exits_nonzero(self, mock_builder_class):
        """Test a failed render prints the message and exits 1."""
        mock_builder_class.return_value.build.return_value = RenderResult(
            success=False, message="[slide 2] layout 'custom_x' not found in template.layouts"
        )

        result = self.runner.invoke(cli, ["render", str(self.request_path)])

        assert result.exit_code == 1
        assert "Rendering failed" in result.output

    def test_render_writes_document(self):
        """Test an end-to-end render without a template."""
        out_dir = self.temp_dir / "out"
        env = {"SLIDESMITH_TEMP_DIR": str(self.temp_dir / "temp"), "OPENAI_API_KEY": ""}
        with patch.dict("os.environ", env):
            result = self.runner.invoke(cli, ["render", str(self.request_path), "-o", str(out_dir)])

        assert result.exit_code == 0, result.output
        assert (out_dir / "cli_deck.pptx").exists()

    def test_render_missing_request(self):
        """Test render with a request file that does not exist."""
        result = self.runner.invoke(cli, ["render", str(self.temp_dir / "missing.json")])
        assert result.exit_code != 0

    def test_render_invalid_request(self):
        """Test render with an unreadable request document."""
        bad = self.temp_dir / "bad.txt"
        bad.write_text("nope")
        result = self.runner.invoke(cli, ["render", str(bad)])
        assert result.exit_code == 1
        assert "Error loading request" in result.output

    def test_validate_reports_findings(self):
        """Test validate lists every finding and exits 1."""
        result = self.runner.invoke(cli, ["validate", str(self.request_path), "-t", str(self.template_path)])
        assert result.exit_code == 1
        assert "Template Validation Findings" in result.output
        assert "custom_x" in result.output

    def test_validate_success(self):
        """Test validate on a request that fits."""
        fitting = dict(REQUEST, slides=REQUEST["slides"][:1])
        self.request_path.write_text(json.dumps(fitting), encoding="utf-8")
        result = self.runner.invoke(cli, ["validate", str(self.request_path), "-t", str(self.template_path)])
        assert result.exit_code == 0
        assert "Template fits all 1 slides" in result.output

    def test_validate_requires_template(self):
        """Test validate without --template."""
        result = self.runner.invoke(cli, ["validate", str(self.request_path)])
        assert result.exit_code == 2

    def test_palette(self):
        """Test palette shows the resolved theme from the template."""
        result = self.runner.invoke(cli, ["palette", str(self.request_path), "-t", str(self.template_path)])
        assert result.exit_code == 0, result.output
        assert "Resolved Theme" in result.output
        assert "#112233" in result.output
        assert "#445566" in result.output
