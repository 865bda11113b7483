import pytest

pytest_plugins = ["lp_lifecycle.testing.fake_chain"]


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "fake_chain: test drives the in-memory chain (select with -m)"
    )


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "fake_chain" in getattr(item, "fixturenames", ()):
            item.add_marker(pytest.mark.fake_chain)
