import os
from pathlib import Path

# Environment overrides are read once at import; settings.json values win over these.
SETTINGS_DIR = Path(os.environ.get("EDITSCOPE_HOME", str(Path.home() / ".editscope")))
APP_NAME = os.environ.get("EDITSCOPE_APP_NAME", "editscope")
SOURCE = os.environ.get("EDITSCOPE_SOURCE", "editscope-tracker")
CLI_BINARY = os.environ.get("EDITSCOPE_CLI", str(SETTINGS_DIR / "bin" / "editscope-cli"))
MONGO_URI = os.environ.get("EDITSCOPE_MONGO_URI")
MONGO_DB = os.environ.get("EDITSCOPE_MONGO_DB", "editscope")
