"""
Driver Registry - Factory mapping browser kinds to driver implementations.

Drivers register under their family name; a session's ``BrowserKind``
declares the family it needs, so the rest of the recorder never names a
concrete driver class.

Example:
    >>> from web_recorder.registry import DriverRegistry
    >>>
    >>> DriverRegistry.register_driver_factory(DriverFamily.PLAYWRIGHT, lambda: PlaywrightDriver)
    >>>
    >>> driver = DriverRegistry.create(BrowserKind.CHROME_PLAYWRIGHT, "s1", config, settings)
"""

from typing import Callable, Dict, List, Type

from web_recorder.config import Settings
from web_recorder.interfaces.driver import BrowserKind, DriverFamily, IBrowserDriver
from web_recorder.recorder.models import RecordingConfig

DriverClass = Type[IBrowserDriver]


class DriverRegistry:
    """
    Central registry of driver families.

    Families register a factory that imports the implementation on first
    use; the loaded class is cached until the family is registered again.
    """

    _drivers: Dict[DriverFamily, DriverClass] = {}
    _factories: Dict[DriverFamily, Callable[[], DriverClass]] = {}

    @classmethod
    def register_driver_factory(cls, family: DriverFamily, factory: Callable[[], DriverClass]) -> None:
        """
        Register a factory that imports and returns a family's driver class.

        Registering again replaces the factory and forgets the class loaded
        by the previous one.
        """
        cls._factories[family] = factory
        cls._drivers.pop(family, None)

    @classmethod
    def get_driver_class(cls, family: DriverFamily) -> DriverClass:
        """
        Get the driver class for a family.

        Raises:
            ValueError: If no implementation is registered
        """
        if family in cls._drivers:
            return cls._drivers[family]

        if family in cls._factories:
            driver_class = cls._factories[family]()
            cls._drivers[family] = driver_class
            return driver_class

        raise ValueError(
            f"Unknown driver family: '{family.value}'. Available: {cls.list_families()}"
        )

    @classmethod
    def create(
        cls,
        kind: BrowserKind,
        session_id: str,
        config: RecordingConfig,
        settings: Settings,
    ) -> IBrowserDriver:
        """Instantiate the driver a browser kind maps to."""
        driver_class = cls.get_driver_class(kind.family)
        return driver_class(session_id, config, settings)

    @classmethod
    def list_families(cls) -> List[str]:
        """List all registered family names."""
        return sorted({f.value for f in cls._drivers} | {f.value for f in cls._factories})

    @classmethod
    def clear_all(cls) -> None:
        """Clear all registrations (useful for testing)."""
        cls._drivers.clear()
        cls._factories.clear()
