"""Sphinx configuration for the Contacts API reference."""

import os
import sys
from datetime import datetime

# Modules use relative imports inside ``app``; make the project root importable.
sys.path.insert(0, os.path.abspath(".."))
os.environ.setdefault("DATABASE_URL", "sqlite://")

project = "Contacts API"
copyright = f"{datetime.now().year}, Contacts API developers"
author = "Contacts API developers"
release = "1.0.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
]

autodoc_default_options = {
    "members": True,
    "member-order": "bysource",
}
autodoc_typehints = "description"
napoleon_google_docstring = True
napoleon_numpy_docstring = False

templates_path = ["_templates"]
exclude_patterns: list[str] = ["_build"]

html_theme = "alabaster"
