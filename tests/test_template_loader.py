"""Tests for loading templates and requests from JSON and YAML."""

import json
import shutil
import tempfile
from pathlib import Path

import pytest
import yaml

from slidesmith.exceptions import TemplateLoadError
from slidesmith.template_loader import TemplateLoader

TEMPLATE = {
    "layouts": {
        "content_with_visual": {
            "areas": {"visual": {"x": 8.2, "y": 1.5, "w": 4.4, "h": 3.4}},
            "elements": [{"type": "visual", "area": "visual", "recipeRef": "visual_recipe"}],
        }
    },
    "styles": {"title": {"fontSize": 30}},
    "tokens": {"primary": "#112233"},
}

REQUEST = {
    "fileName": "deck",
    "themeColor1": "#AA0000",
    "slides": [
        {"title": "Intro", "layout": "title_slide"},
        {"title": "KPIs", "layout": "content_with_visual", "visual_recipe": {"type": "kpi", "items": []}},
    ],
}


class TestTemplateLoader:
    """Tests for TemplateLoader."""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.loader = TemplateLoader(self.temp_dir)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write(self, name, content):
        path = self.temp_dir / name
        path.write_text(content, encoding="utf-8")
        return path

    def test_load_json_template(self):
        self._write("template.json", json.dumps(TEMPLATE))
        template = self.loader.load_template("template.json")
        assert "content_with_visual" in template.layouts
        assert template.tokens.primary == "#112233"

    def test_load_yaml_template(self):
        self._write("template.yaml", yaml.safe_dump(TEMPLATE))
        template = self.loader.load_template(self.temp_dir / "template.yaml")
        assert template.layout("content_with_visual").visual_elements()[0].area == "visual"

    def test_raw_tree_used_for_lookup(self):
        self._write("template.json", json.dumps(TEMPLATE))
        template = self.loader.load_template("template.json")
        assert template.lookup("styles.title.fontSize") == 30

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError, match="Template file not found"):
            self.loader.load_template("missing.json")

    def test_unsupported_suffix(self):
        self._write("template.txt", "{}")
        with pytest.raises(ValueError, match=r"\.json, \.yaml or \.yml"):
            self.loader.load_template("template.txt")

    def test_malformed_json(self):
        self._write("broken.json", "{not json")
        with pytest.raises(TemplateLoadError):
            self.loader.load_template("broken.json")

    def test_top_level_must_be_mapping(self):
        self._write("list.yaml", "- a\n- b\n")
        with pytest.raises(TemplateLoadError, match="Expected a mapping"):
            self.loader.load_template("list.yaml")

    def test_load_request(self):
        self._write("request.json", json.dumps(REQUEST))
        request = self.loader.load_request("request.json")
        assert request.file_name == "deck"
        assert request.theme_color1 == "#AA0000"
        assert len(request.slides) == 2
        assert request.slides[1].visual_recipe.kind == "kpi"
        assert request.template_config is None

    def test_embedded_template(self):
        self._write("request.json", json.dumps({**REQUEST, "templateConfig": TEMPLATE}))
        request = self.loader.load_request("request.json")
        assert request.template_config.lookup("styles.title.fontSize") == 30

    def test_template_path_overrides_embedded(self):
        override = {"tokens": {"primary": "#445566"}}
        self._write("request.json", json.dumps({**REQUEST, "templateConfig": TEMPLATE}))
        self._write("override.yml", yaml.safe_dump(override))
        request = self.loader.load_request("request.json", template_path="override.yml")
        assert request.template_config.tokens.primary == "#445566"
        assert request.template_config.layouts == {}

    def test_invalid_request(self):
        self._write("request.json", json.dumps({"slides": []}))
        with pytest.raises(TemplateLoadError, match="Invalid presentation request"):
            self.loader.load_request("request.json")
