"""
Test framework for RESTful API testing using 4-layer architecture.
"""

from .dsl import RestApiDsl, HttpRequest, HttpResponse
from .drivers import DriverInterface, DirectDriver, AsgiDriver
from .multi_driver_base import MultiDriverTestBase, multi_driver_test_class, only_drivers

__all__ = [
    'RestApiDsl',
    'HttpRequest',
    'HttpResponse',
    'DriverInterface',
    'DirectDriver',
    'AsgiDriver',
    'MultiDriverTestBase',
    'multi_driver_test_class',
    'only_drivers',
]
