"""
Tweak Engine - Template Loader

Parses and validates YAML template documents.
Transforms raw YAML into the definition tree, normalizing the legacy
category-wrapped layout and the flat layout to one group sequence.
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import logging
import re
import yaml
from pydantic import ValidationError

from tweakengine.models import Action, Entry, Group, History, Mode, Template
from tweakengine.engine.resolver import ROLLBACK_BLOCK

logger = logging.getLogger(__name__)

# params, analyzeparams, executeparams, rollbackparams (any case)
BLOCK_KEY_PATTERN = re.compile(r"^(analyze|execute|rollback)?params$", re.IGNORECASE)


class TemplateError(Exception):
    """Exception raised for template loading errors."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        return f"{self.message}: {'; '.join(self.errors)}"


class TemplateLoader:
    """
    Loader for optimization template documents.

    Responsibilities:
    - Parse YAML content
    - Select the group node set (flat "groups" or legacy "categories")
    - Validate structure and required fields
    - Transform to the definition tree (Template)
    - Run the rollback pre-flight check
    """

    # Top-level group containers
    FLAT_KEY = "groups"
    LEGACY_KEY = "categories"

    def __init__(self):
        """Initialize loader."""
        self.logger = logging.getLogger(__name__)

    def parse(self, yaml_content: str, mode: Optional[Mode] = None) -> Template:
        """
        Parse YAML content into a Template.

        Args:
            yaml_content: YAML template document
            mode: Mode of the run the template is loaded for; rollback
                  enables the rollback pre-flight check

        Returns:
            Validated Template

        Raises:
            TemplateError: If parsing or validation fails
        """
        # Step 1: Parse YAML syntax
        raw = self._parse_yaml(yaml_content)

        # Step 2: Select group nodes from either layout
        raw_groups, errors = self._select_groups(raw)

        # Step 3: Validate structure
        errors.extend(self._validate_structure(raw_groups))
        if errors:
            raise TemplateError("Template validation failed", errors=errors)

        # Step 4: Transform to definition tree
        try:
            template = self._transform_to_model(raw, raw_groups)
        except ValidationError as e:
            errors = [f"{err['loc']}: {err['msg']}" for err in e.errors()]
            raise TemplateError("Model validation failed", errors=errors)

        # Step 5: Semantic validation
        semantic_errors = self._validate_semantics(template)
        if semantic_errors:
            raise TemplateError("Semantic validation failed", errors=semantic_errors)

        # Step 6: Rollback pre-flight
        if mode is not None and Mode(mode) is Mode.ROLLBACK:
            self._check_rollback_data(template)

        self.logger.info(
            f"Loaded template with {len(template.groups)} groups and "
            f"{sum(len(g.entries) for g in template.groups)} entries"
        )
        return template

    def parse_file(self, file_path: Union[str, Path], mode: Optional[Mode] = None) -> Template:
        """
        Parse a template from file.

        Raises:
            TemplateError: If file cannot be read or parsed
        """
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                yaml_content = f.read()
        except OSError as e:
            raise TemplateError(f"Cannot read file: {str(e)}")

        return self.parse(yaml_content, mode=mode)

    def validate_only(self, yaml_content: str, mode: Optional[Mode] = None) -> Tuple[bool, List[str]]:
        """
        Validate a template without returning it.

        Returns:
            Tuple of (is_valid, error_list)
        """
        try:
            self.parse(yaml_content, mode=mode)
            return True, []
        except TemplateError as e:
            return False, e.errors or [e.message]

    def _parse_yaml(self, yaml_content: str) -> Dict[str, Any]:
        """Parse YAML string to dictionary."""
        try:
            document = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise TemplateError(f"YAML syntax error: {str(e)}")
        if document is None:
            raise TemplateError("Empty template")
        if not isinstance(document, dict):
            raise TemplateError("Template must be a YAML mapping/dictionary")
        return document

    def _select_groups(self, document: Dict[str, Any]) -> Tuple[List[Any], List[str]]:
        """
        Return the raw group nodes of either layout.

        Flat:    groups: [...]
        Legacy:  categories: [{name: ..., groups: [...]}, ...]
        """
        has_flat = self.FLAT_KEY in document
        has_legacy = self.LEGACY_KEY in document

        if has_flat and has_legacy:
            return [], [f"Template must not contain both '{self.FLAT_KEY}' and '{self.LEGACY_KEY}'"]
        if not has_flat and not has_legacy:
            return [], [f"Missing required section: '{self.FLAT_KEY}'"]

        if has_flat:
            groups = document[self.FLAT_KEY] or []
            if not isinstance(groups, list):
                return [], [f"'{self.FLAT_KEY}' must be a list"]
            return groups, []

        categories = document[self.LEGACY_KEY] or []
        if not isinstance(categories, list):
            return [], [f"'{self.LEGACY_KEY}' must be a list"]

        self.logger.debug("Template uses the legacy category layout")
        groups: List[Any] = []
        errors: List[str] = []
        for i, category in enumerate(categories):
            if not isinstance(category, dict):
                errors.append(f"{self.LEGACY_KEY}[{i}] must be a mapping")
                continue
            nested = category.get(self.FLAT_KEY) or []
            if not isinstance(nested, list):
                errors.append(f"{self.LEGACY_KEY}[{i}].{self.FLAT_KEY} must be a list")
                continue
            groups.extend(nested)
        return groups, errors

    def _validate_structure(self, groups: List[Any]) -> List[str]:
        """Validate group/entry/action structure, collecting every error."""
        errors = []

        for i, group in enumerate(groups):
            where = f"groups[{i}]"
            if not isinstance(group, dict):
                errors.append(f"{where} must be a mapping")
                continue
            if group.get("id") in (None, ""):
                errors.append(f"{where}.id is required")
            elif not isinstance(group["id"], str):
                errors.append(f"{where}.id must be a string (quote it)")
            if group.get("name") is not None and not isinstance(group["name"], str):
                errors.append(f"{where}.name must be a string (quote it)")

            entries = group.get("entries") or []
            if not isinstance(entries, list):
                errors.append(f"{where}.entries must be a list")
                continue

            for j, entry in enumerate(entries):
                entry_where = f"{where}.entries[{j}]"
                if not isinstance(entry, dict):
                    errors.append(f"{entry_where} must be a mapping")
                    continue
                if entry.get("name") in (None, ""):
                    errors.append(f"{entry_where}.name is required")
                elif not isinstance(entry["name"], str):
                    errors.append(f"{entry_where}.name must be a string (quote it)")
                if "history" in entry and entry["history"] is not None and not isinstance(entry["history"], dict):
                    errors.append(f"{entry_where}.history must be a mapping")
                errors.extend(self._validate_action(entry.get("action"), f"{entry_where}.action"))

        return errors

    def _validate_action(self, action: Any, where: str) -> List[str]:
        if action is None:
            return [f"{where} is required"]
        if not isinstance(action, dict):
            return [f"{where} must be a mapping"]

        errors = []
        if action.get("plugin") in (None, ""):
            errors.append(f"{where}.plugin is required")
        seen = set()
        for key in action:
            if key == "plugin":
                continue
            if not isinstance(key, str) or not BLOCK_KEY_PATTERN.match(key):
                errors.append(f"{where}: unknown key '{key}'")
                continue
            if key.lower() in seen:
                errors.append(f"{where}: duplicate parameter block '{key.lower()}'")
            seen.add(key.lower())
        return errors

    def _transform_to_model(self, document: Dict[str, Any], raw_groups: List[Dict[str, Any]]) -> Template:
        """Transform validated raw nodes to a Template."""
        return Template(
            metadata=self._normalize_metadata(document.get("metadata")),
            groups=[self._build_group(raw) for raw in raw_groups],
        )

    def _normalize_metadata(self, metadata: Any) -> Dict[str, str]:
        """Accept a mapping or a list of {name, value} pairs."""
        if metadata is None:
            return {}
        if isinstance(metadata, dict):
            return {str(k): str(v) for k, v in metadata.items()}
        if isinstance(metadata, list):
            pairs = {}
            for i, item in enumerate(metadata):
                if not isinstance(item, dict) or "name" not in item:
                    raise TemplateError(f"metadata[{i}] must be a mapping with 'name' and 'value'")
                pairs[str(item["name"])] = str(item.get("value", ""))
            return pairs
        raise TemplateError("metadata must be a mapping or a list of name/value pairs")

    def _build_group(self, raw: Dict[str, Any]) -> Group:
        group_id = raw["id"]
        return Group(
            id=group_id,
            name=raw.get("name") or group_id,
            enabled=raw.get("enabled", True),
            description=raw.get("description"),
            entries=[self._build_entry(e) for e in raw.get("entries") or []],
        )

    def _build_entry(self, raw: Dict[str, Any]) -> Entry:
        raw_action = raw["action"]
        action = Action(
            plugin=str(raw_action["plugin"]),
            blocks={
                key.lower(): value
                for key, value in raw_action.items()
                if key != "plugin"
            },
        )
        raw_history = raw.get("history")
        return Entry(
            name=raw["name"],
            enabled=raw.get("enabled", True),
            execute=raw.get("execute", True),
            description=raw.get("description"),
            action=action,
            history=History(**raw_history) if raw_history else None,
        )

    def _validate_semantics(self, template: Template) -> List[str]:
        """Validate semantic correctness of the template."""
        errors = []

        seen = set()
        for group in template.groups:
            if group.id in seen:
                errors.append(f"Duplicate group ID: '{group.id}'")
            seen.add(group.id)

        return errors

    def _check_rollback_data(self, template: Template) -> None:
        """Fail when no entry anywhere carries rollback instructions."""
        for _, entry in template.iter_entries():
            if entry.action.has_block(ROLLBACK_BLOCK):
                return
        raise TemplateError(
            "Template contains no rollback instructions",
            errors=[f"No entry carries a '{ROLLBACK_BLOCK}' block"],
        )


# Singleton instance
loader = TemplateLoader()


def get_loader() -> TemplateLoader:
    """Get loader instance."""
    return loader
