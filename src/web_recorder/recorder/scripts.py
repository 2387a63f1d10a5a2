"""
Script Renderer - Builds the in-page JavaScript from packaged templates.

Every script the recorder evaluates in a page comes from a Jinja2
template under ``recorder/templates``. The capture logic is written once
in ``_capture.js.j2``; each injection strategy template only supplies the
transport (XHR, fetch/sendBeacon) and the feature toggles below.

Example:
    >>> renderer = ScriptRenderer(settings)
    >>> script = renderer.recorder_script("csp_tolerant", session_id)
    >>> await driver.execute_script(script)
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Tuple

from jinja2 import Environment, PackageLoader, StrictUndefined

from web_recorder.config import Settings

logger = logging.getLogger(__name__)

API_NAME = "__webRecorder"


@dataclass(frozen=True)
class StrategyFeatures:
    """Which capture features a strategy template turns on."""
    capture_forms: bool = True
    capture_navigation: bool = True
    capture_extended: bool = False
    watch_domain: bool = False
    flush_on_unload: bool = False


# Strategy name -> (template, features), in the order they are tried.
STRATEGIES: Dict[str, Tuple[str, StrategyFeatures]] = {
    "native": ("full", StrategyFeatures(capture_extended=True, watch_domain=True, flush_on_unload=True)),
    "csp_tolerant": ("csp_tolerant", StrategyFeatures()),
    "minimal": ("minimal", StrategyFeatures(capture_forms=False, capture_navigation=False)),
    "full": ("full", StrategyFeatures(capture_extended=True, watch_domain=True, flush_on_unload=True)),
}

STRATEGY_ORDER: Tuple[str, ...] = tuple(STRATEGIES)


class ScriptRenderer:
    """Renders recorder scripts with the session's endpoints and flag names."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._env = Environment(
            loader=PackageLoader("web_recorder.recorder", "templates"),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )

    def render(self, name: str, **params: Any) -> str:
        """
        Render one template.

        Args:
            name: Template name without the ``.js.j2`` suffix
            **params: Template parameters; missing ones raise

        Returns:
            A JavaScript function body
        """
        template = self._env.get_template(f"{name}.js.j2")
        return template.render(**params)

    def endpoints(self, session_id: str) -> Dict[str, str]:
        """Absolute callback URLs for one session."""
        base = f"{self.settings.server.callback_base_url}/hooks/{session_id}"
        return {
            "event_url": f"{base}/event",
            "status_url": f"{base}/status",
            "control_url": f"{base}/control",
            "browser_info_url": f"{base}/browser-info",
        }

    def _page_names(self) -> Dict[str, str]:
        injection = self.settings.injection
        return {
            "activation_flag": injection.activation_flag,
            "paused_flag": injection.paused_flag,
            "marker_id": injection.marker_id,
            "api_name": API_NAME,
        }

    def recorder_script(self, strategy: str, session_id: str) -> str:
        """Render the full recorder script for an injection strategy."""
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown injection strategy: {strategy}")
        template, features = STRATEGIES[strategy]
        return self.render(
            template,
            session_id=session_id,
            strategy=strategy,
            **self.endpoints(session_id),
            **self._page_names(),
            **asdict(features),
        )

    def probe_script(self) -> str:
        """Script returning ``{active, marker}``."""
        return self.render("probe", **self._page_names())

    def ensure_marker_script(self) -> str:
        return self.render("ensure_marker", **self._page_names())

    def set_paused_script(self, paused: bool) -> str:
        return self.render("set_paused", paused=paused, **self._page_names())

    def teardown_script(self) -> str:
        return self.render("teardown", **self._page_names())

    def debug_script(self) -> str:
        return self.render("debug", **self._page_names())
