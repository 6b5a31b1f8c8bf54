from pathlib import Path

from fastapi.templating import Jinja2Templates

PACKAGE_DIR = Path(__file__).resolve().parent.parent
TEMPLATES_DIR = PACKAGE_DIR / "templates"
PUBLIC_DIR = PACKAGE_DIR / "public"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
