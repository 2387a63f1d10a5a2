"""
Drivers module - Browser driver implementations.
"""

from web_recorder.drivers.base import BaseBrowserDriver, extract_domain, is_closure_error
from web_recorder.drivers.playwright_driver import PlaywrightDriver
from web_recorder.drivers.sidecar_driver import SidecarDriver, SidecarProcess

__all__ = [
    "BaseBrowserDriver",
    "PlaywrightDriver",
    "SidecarDriver",
    "SidecarProcess",
    "extract_domain",
    "is_closure_error",
    "register_drivers",
]


def register_drivers() -> None:
    """Register driver implementations with the registry."""
    from web_recorder.interfaces.driver import DriverFamily
    from web_recorder.registry import DriverRegistry

    DriverRegistry.register_driver_factory(DriverFamily.PLAYWRIGHT, lambda: PlaywrightDriver)
    DriverRegistry.register_driver_factory(DriverFamily.SIDECAR, lambda: SidecarDriver)

    # Selenium (lazy - only loads when needed)
    def selenium_factory():
        from web_recorder.drivers.selenium_driver import SeleniumDriver
        return SeleniumDriver

    DriverRegistry.register_driver_factory(DriverFamily.SELENIUM, selenium_factory)


# Auto-register on import
register_drivers()
