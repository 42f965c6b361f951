"""Loading of template configurations and presentation requests from disk."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from .exceptions import TemplateLoadError
from .models import PresentationRequest, TemplateConfig

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".json", ".yaml", ".yml")


class TemplateLoader:
    """
    Reads JSON or YAML documents into validated template and request models.

    The raw document tree is kept on the loaded TemplateConfig so dotted
    style references resolve against exactly what the author wrote.
    """

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        """
        Initialize the loader.

        Args:
            base_dir: Directory that relative paths are resolved against
        """
        self.base_dir = Path(base_dir) if base_dir else None

    def _resolve(self, path: Union[str, Path]) -> Path:
        resolved = Path(path)
        if self.base_dir and not resolved.is_absolute():
            resolved = self.base_dir / resolved
        return resolved

    def read_document(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Parse a JSON or YAML file into a mapping.

        Args:
            path: File to read

        Returns:
            Parsed document

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the suffix is not .json, .yaml or .yml
            TemplateLoadError: If the content cannot be parsed into a mapping
        """
        file_path = self._resolve(path)

        if not file_path.exists():
            raise FileNotFoundError(f"Template file not found: {path}")

        suffix = file_path.suffix.lower()
        if suffix not in SUPPORTED_SUFFIXES:
            raise ValueError(f"Template must be a .json, .yaml or .yml file, got: {file_path.suffix}")

        logger.info(f"Loading document: {file_path}")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                if suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise TemplateLoadError(f"Failed to parse {file_path}: {e}") from e

        if not isinstance(data, dict):
            raise TemplateLoadError(f"Expected a mapping at the top of {file_path}, got {type(data).__name__}")

        return data

    def parse_template(self, data: Dict[str, Any]) -> TemplateConfig:
        """Validate a template mapping and attach the raw tree for path lookups."""
        try:
            template = TemplateConfig.model_validate(data)
        except ValidationError as e:
            raise TemplateLoadError(f"Invalid template configuration: {e}") from e
        template._tree = data
        logger.debug(f"Template defines {len(template.layouts)} layouts: {', '.join(template.layouts)}")
        return template

    def load_template(self, path: Union[str, Path]) -> TemplateConfig:
        """
        Load a TemplateConfig from a JSON or YAML file.

        Args:
            path: Template file path

        Returns:
            Validated TemplateConfig
        """
        return self.parse_template(self.read_document(path))

    def load_request(
        self,
        path: Union[str, Path],
        template_path: Optional[Union[str, Path]] = None,
    ) -> PresentationRequest:
        """
        Load a PresentationRequest, optionally replacing its template.

        Args:
            path: Request file path
            template_path: Template file that overrides any embedded ``templateConfig``

        Returns:
            Validated PresentationRequest
        """
        data = self.read_document(path)
        embedded = data.pop("templateConfig", None) or data.pop("template_config", None)

        try:
            request = PresentationRequest.model_validate(data)
        except ValidationError as e:
            raise TemplateLoadError(f"Invalid presentation request: {e}") from e

        if template_path is not None:
            request.template_config = self.load_template(template_path)
        elif isinstance(embedded, dict):
            request.template_config = self.parse_template(embedded)

        logger.info(f"Loaded request '{request.file_name}' with {len(request.slides)} slides")
        return request
