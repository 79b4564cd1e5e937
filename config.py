"""
This module defines the data structures for our configuration and turns the
YAML document into them. Validation here only covers the shape of the file;
the resource arguments themselves are checked by Pulumi and the provider.
"""

import os
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

REQUIRED_KEYS = ["team", "service", "environment", "region"]

@dataclass
class AWSResource:
    name: str
    type: str
    args: Dict[str, Any]
    custom_name: Optional[str] = None

@dataclass
class StackOutput:
    name: str
    value: Optional[Any] = None
    template: Optional[str] = None
    values: Dict[str, Any] = field(default_factory=dict)

@dataclass
class Config:
    team: str
    service: str
    environment: str
    region: str
    tags: Dict[str, str]
    aws_resources: List[AWSResource]
    outputs: List[StackOutput] = field(default_factory=list)
    # Directory that file: references are resolved against.
    base_dir: str = "."

def _parse_resource(entry: Dict[str, Any]) -> AWSResource:
    for key in ("name", "type"):
        if key not in entry:
            raise ValueError(f"Resource entry is missing '{key}': {entry}")
    if "." not in entry["type"]:
        raise ValueError(
            f"Resource type '{entry['type']}' for '{entry['name']}' must look like '<module>.<Class>'"
        )
    return AWSResource(
        name=entry["name"],
        type=entry["type"],
        args=dict(entry.get("args") or {}),
        custom_name=entry.get("custom_name"),
    )

def _parse_output(entry: Dict[str, Any]) -> StackOutput:
    if "name" not in entry:
        raise ValueError(f"Output entry is missing 'name': {entry}")
    has_value = "value" in entry
    has_template = "template" in entry
    if has_value == has_template:
        raise ValueError(f"Output '{entry['name']}' needs exactly one of 'value' or 'template'")
    return StackOutput(
        name=entry["name"],
        value=entry.get("value"),
        template=entry.get("template"),
        values=dict(entry.get("values") or {}),
    )

def parse_config(config_data: Dict[str, Any], base_dir: str = ".") -> Config:
    """Validate raw configuration data and build a Config from it."""
    if not isinstance(config_data, dict):
        raise ValueError("Configuration must be a mapping")

    # Ensure required keys exist
    for key in REQUIRED_KEYS:
        if key not in config_data:
            raise ValueError(f"Missing required configuration key: {key}")

    resources = [_parse_resource(entry) for entry in config_data.get("aws_resources") or []]
    seen = set()
    for resource in resources:
        if resource.name in seen:
            raise ValueError(f"Duplicate resource name: {resource.name}")
        seen.add(resource.name)

    outputs = [_parse_output(entry) for entry in config_data.get("outputs") or []]

    return Config(
        team=str(config_data["team"]),
        service=str(config_data["service"]),
        environment=str(config_data["environment"]),
        region=str(config_data["region"]),
        tags=dict(config_data.get("tags") or {}),
        aws_resources=resources,
        outputs=outputs,
        base_dir=base_dir,
    )

def load_config(file_path: str) -> Config:
    """Load and validate YAML configuration from the given file path."""
    with open(file_path, "r") as file:
        config_data = yaml.safe_load(file)
    return parse_config(config_data, base_dir=os.path.dirname(os.path.abspath(file_path)))
