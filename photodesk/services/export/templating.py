import datetime
import re
from jinja2 import Environment, BaseLoader, TemplateError

# Characters that are not safe in file names on common filesystems
_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


class FilenameTemplater:
    """
    Handles generation of filenames using Jinja2 templates.
    """

    def __init__(self) -> None:
        # Using a minimal environment for performance and safety
        self.env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, pattern: str, context: dict) -> str:
        """
        Renders the filename pattern with the provided context.
        Falls back to '<original_name>-<operation>' if rendering fails.
        """
        try:
            template = self.env.from_string(pattern)
            render_context = {"date": datetime.date.today().isoformat(), **context}
            rendered = _UNSAFE_CHARS.sub("_", template.render(render_context)).strip()
            if not rendered:
                raise ValueError("Template rendered to empty string")
            return rendered
        except (TemplateError, ValueError, TypeError):
            original = context.get("original_name", "photo")
            operation = context.get("operation", "edit")
            return f"{original}-{operation}"


def base_name(filename: str) -> str:
    """
    'portrait.final.jpg' -> 'portrait'
    """
    stem = filename.rsplit("/", 1)[-1].rsplit("\\", 1)[-1]
    return stem.split(".")[0] or "photo"
