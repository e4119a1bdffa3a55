"""Cloning note templates.

Templates are markdown files in the vault's templates folder. Only the
``{{title}}``, ``{{date}}`` and ``{{time}}`` variables are substituted; any
other ``{{...}}`` text is left as written.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from .config import NOTE_SUFFIX, ConfigurationError, TemplatesOptions

if TYPE_CHECKING:
    from .client import Client

log = logging.getLogger(__name__)

_VARIABLE = re.compile(r"\{\{\s*(title|date|time)\s*\}\}")


def substitute_template_variables(text: str, title: str | None, opts: TemplatesOptions, now: datetime | None = None) -> str:
    now = now or datetime.now()
    values = {
        "title": title or "",
        "date": now.strftime(opts.date_format),
        "time": now.strftime(opts.time_format),
    }
    return _VARIABLE.sub(lambda m: values[m.group(1)], text)


def find_template(templates_dir: Path, name: str) -> Path | None:
    candidate = templates_dir / name
    if candidate.is_file():
        return candidate
    if not name.endswith(NOTE_SUFFIX):
        candidate = templates_dir / f"{name}{NOTE_SUFFIX}"
        if candidate.is_file():
            return candidate
    return None


def clone_template(name: str, dest: str | Path, client: Client, title: str | None = None) -> Path:
    """Create ``dest`` from the named template.

    Raises:
        ConfigurationError: If the vault has no usable templates folder.
        FileNotFoundError: If the template does not exist.
        FileExistsError: If ``dest`` already exists.
    """
    templates_dir = client.templates_dir()
    if templates_dir is None:
        raise ConfigurationError("Templates folder is not defined or does not exist")

    template_path = find_template(templates_dir, name)
    if template_path is None:
        raise FileNotFoundError(f"Template '{name}' not found in {templates_dir}")

    dest = Path(dest)
    if dest.exists():
        raise FileExistsError(f"{dest} already exists")

    opts = client.opts.templates or TemplatesOptions()
    rendered = substitute_template_variables(template_path.read_text(encoding="utf-8"), title, opts)

    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(rendered, encoding="utf-8")
    log.debug("Cloned template %s to %s", template_path, dest)
    return dest
