"""
Pytest configuration for multi-driver testing.

Test classes that inherit from MultiDriverTestBase get their ``api`` fixture
parametrized with every driver they enable, so each test runs once against
``Application.execute()`` and once through the ASGI adapter.
"""

from tests.framework.multi_driver_base import MultiDriverTestBase


def pytest_generate_tests(metafunc):
    """Parametrize the 'api' fixture for MultiDriverTestBase subclasses."""
    if (metafunc.cls is not None and
            issubclass(metafunc.cls, MultiDriverTestBase) and
            'api' in metafunc.fixturenames):

        drivers = metafunc.cls.get_available_drivers()
        metafunc.parametrize(
            'api',
            drivers,
            indirect=True,
            scope="class",
            ids=[f"driver-{d}" for d in drivers]
        )
