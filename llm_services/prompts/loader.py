import json
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined


def to_pretty_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


class PromptLoader:
    """Renders the Jinja2 prompt templates shipped next to this module"""

    def __init__(self, template_dir=None):
        if template_dir is None:
            template_dir = Path(__file__).parent / "templates"

        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        self.env.filters["tojson_pretty"] = to_pretty_json

    def load_template(self, template_name: str):
        """Load a template by name (the environment caches compiled templates)"""
        return self.env.get_template(template_name)

    def render_prompt(self, template_name: str, **kwargs) -> str:
        """Render a prompt with given variables"""
        template = self.load_template(template_name)
        return template.render(**kwargs)
