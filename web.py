"""
Shared Jinja2Templates instance.

Import from here so every route module uses the same object and the template
directory is declared in exactly one place.
"""

from pathlib import Path

from fastapi.templating import Jinja2Templates

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
