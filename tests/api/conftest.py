"""
sys.modules isolation for API tests.

The API module keeps a process-wide workbench, so API tests re-import
``app.*`` per test. Cached entries are also cleared before each test file
is collected so every file starts from a clean ``app`` package.
"""

import sys


def pytest_collect_file(parent, file_path):
    if file_path.suffix == ".py" and file_path.name.startswith("test_"):
        for key in list(sys.modules.keys()):
            if key == "app" or key.startswith("app."):
                del sys.modules[key]
    return None
