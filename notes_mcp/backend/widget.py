import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

from .config import PROJECT_DIR
from .domain import WidgetBundleNotFound

logger = logging.getLogger(__name__)

WIDGET_URI = "ui://widget/notes.html"
WIDGET_NAME = "notes-widget"
WIDGET_MIME_TYPE = "text/html+skybridge"
WIDGET_META = {
    "openai/widgetPrefersBorder": True,
    "openai/widgetCSP": {"connect_domains": [], "resource_domains": []},
}

SCRIPT_NAME = "notes.js"
STYLE_NAME = "notes.css"


def candidate_dirs(widget_dir: Optional[Path] = None, cwd: Optional[Path] = None) -> List[Path]:
    """Directories searched for the compiled bundle, in order."""
    cwd = Path(cwd or os.getcwd())
    dirs = [
        PROJECT_DIR / "web" / "dist",
        cwd / "web" / "dist",
        cwd / ".." / "web" / "dist",
    ]
    if widget_dir is not None:
        dirs.insert(0, Path(widget_dir))
    return dirs


def first_existing(paths: Iterable[Path]) -> Optional[Path]:
    for path in paths:
        if path.is_file():
            return path
    return None


class WidgetBundle:
    """The compiled widget script (and optional stylesheet) served as one HTML resource."""

    def __init__(self, script: str, style: str = "", script_path: Optional[Path] = None):
        self.script = script
        self.style = style
        self.script_path = script_path

    @classmethod
    def locate(cls, widget_dir: Optional[Path] = None, cwd: Optional[Path] = None) -> "WidgetBundle":
        dirs = candidate_dirs(widget_dir, cwd)
        script_candidates = [d / SCRIPT_NAME for d in dirs]
        script_path = first_existing(script_candidates)
        if script_path is None:
            raise WidgetBundleNotFound(SCRIPT_NAME, script_candidates)

        style_path = first_existing(d / STYLE_NAME for d in dirs)
        logger.info("Widget bundle: %s", script_path)
        return cls(
            script=script_path.read_text(encoding="utf-8"),
            style=style_path.read_text(encoding="utf-8") if style_path else "",
            script_path=script_path,
        )

    def render_html(self) -> str:
        parts = ['<div id="root"></div>']
        if self.style:
            parts.append(f"<style>{self.style}</style>")
        parts.append(f'<script type="module">{self.script}</script>')
        return "\n".join(parts)
