"""Clear cached app.* modules before test collection.

Each test file imports the workbench's ``app`` package itself, so every
file binds to one consistent set of module objects.
"""

import sys
from pathlib import Path

_TOOL_DIR = str(Path(__file__).resolve().parent.parent.parent / "evidence-workbench")
if _TOOL_DIR not in sys.path:
    sys.path.insert(0, _TOOL_DIR)


def pytest_collect_file(parent, file_path):
    if file_path.suffix == ".py" and file_path.name.startswith("test_"):
        for key in list(sys.modules.keys()):
            if key == "app" or key.startswith("app."):
                del sys.modules[key]
    return None
