import sys

import pytest



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")

    mode = config.getini("asyncio_mode")
    if str(mode) != "strict":
        raise pytest.UsageError("plugpm tests expect asyncio_mode='strict' (see pyproject.toml)")
