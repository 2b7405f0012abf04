"""Model prompt templates shipped in ``appwrite_agent/prompts/``.

Each template is declared with the placeholders it may use; a template that
references anything else, or a render call that leaves a placeholder unset,
is rejected instead of sending a half-filled prompt to the model.
"""

import string
from pathlib import Path

from appwrite_agent.exceptions import ConfigurationError

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

TEMPLATE_FIELDS: dict[str, frozenset[str]] = {
    "system_prompt.md": frozenset({"project_name", "project_id", "context_lines"}),
    "attachment_note.md": frozenset({"file_count", "file_descriptions", "multi_file_note"}),
    "tool_results_preamble.md": frozenset(),
}


def template_fields(template: str) -> set[str]:
    """Placeholder names referenced by a ``str.format`` template."""
    return {
        field_name
        for _, field_name, _, _ in string.Formatter().parse(template)
        if field_name
    }


class InstructionLoader:
    """Loads, checks and renders the known prompt templates."""

    def __init__(self, base_dir: Path | str | None = None):
        self.base_dir = Path(base_dir).expanduser().resolve() if base_dir else PROMPTS_DIR
        self._cache: dict[str, str] = {}

    def load(self, name: str) -> str:
        """Return a template's text.

        Raises:
            ConfigurationError if the template is unknown, missing, or uses
            placeholders it does not declare
        """
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        allowed = TEMPLATE_FIELDS.get(name)
        if allowed is None:
            raise ConfigurationError(f"Unknown prompt template: {name}")
        path = self.base_dir / name
        if not path.is_file():
            raise ConfigurationError(f"Prompt template not found: {path}")

        content = path.read_text(encoding="utf-8").strip()
        unexpected = template_fields(content) - allowed
        if unexpected:
            raise ConfigurationError(
                f"Prompt template {name} uses undeclared placeholders: {', '.join(sorted(unexpected))}"
            )
        self._cache[name] = content
        return content

    def render(self, name: str, **variables: object) -> str:
        """Fill every declared placeholder of a template.

        Raises:
            ConfigurationError if a declared placeholder has no value
        """
        template = self.load(name)
        missing = TEMPLATE_FIELDS[name] - variables.keys()
        if missing:
            raise ConfigurationError(
                f"Missing values for prompt template {name}: {', '.join(sorted(missing))}"
            )
        return template.format(**{key: str(value) for key, value in variables.items()})
