"""Render session owning one badge surface.

A session tracks the lifecycle of the renders targeting its surface as
IDLE -> RENDERING -> RENDERED | FAILED and tells subscribers about each
transition. Every render request takes a new generation number; only the
latest generation may commit its result, so a slow render that finishes
after a newer one has been requested is discarded instead of overwriting
the newer image.
"""
from __future__ import annotations

import enum
import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Union

from PIL import Image

from badge_export import badge_filename, save_png, to_png_data_uri
from badge_renderer import RenderedFace, render_back, render_front

logger = logging.getLogger(__name__)


class RenderState(enum.Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    RENDERED = "rendered"
    FAILED = "failed"


Observer = Callable[[RenderState, Optional[BaseException]], None]


class RenderSession:
    def __init__(self, face: str = "front") -> None:
        if face not in ("front", "back"):
            raise ValueError(f"Unknown badge face {face!r}")
        self.face = face
        self._lock = threading.Lock()
        self._observers: List[Observer] = []
        self._generation = 0
        self._state = RenderState.IDLE
        self._error: Optional[BaseException] = None
        self._result: Optional[RenderedFace] = None
        self._name = ""

    @property
    def state(self) -> RenderState:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def image(self) -> Optional[Image.Image]:
        return self._result.image if self._result is not None else None

    @property
    def result(self) -> Optional[RenderedFace]:
        return self._result

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer``; returns a callable that unregisters it."""
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def _notify(self, state: RenderState, error: Optional[BaseException]) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            observer(state, error)

    def _begin(self) -> int:
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._state = RenderState.RENDERING
            self._error = None
        self._notify(RenderState.RENDERING, None)
        return generation

    def _commit(
        self,
        generation: int,
        result: Optional[RenderedFace],
        error: Optional[BaseException],
        name: str,
    ) -> bool:
        with self._lock:
            if generation != self._generation:
                logger.info(
                    "Discarding stale %s render %d (latest is %d)",
                    self.face,
                    generation,
                    self._generation,
                )
                return False
            if error is not None:
                self._result = None
                self._state = RenderState.FAILED
            else:
                self._result = result
                self._state = RenderState.RENDERED
                self._name = name
            self._error = error
            state = self._state
        self._notify(state, error)
        return True

    def _run(self, render: Callable[[], RenderedFace], name: str) -> bool:
        generation = self._begin()
        try:
            result = render()
        except Exception as exc:
            if not self._commit(generation, None, exc, name):
                return False
            logger.error("Error rendering %s badge: %s", self.face, exc)
            raise
        return self._commit(generation, result, None, name)

    def render_front(
        self,
        template,
        photo_file=None,
        photo_url: Optional[str] = None,
        name: str = "",
        role: str = "",
        **kwargs,
    ) -> bool:
        """Render the front face into this session.

        Returns ``False`` when a newer render superseded this one. Render
        errors are re-raised after the session moves to FAILED.
        """

        if self.face != "front":
            raise ValueError("render_front called on a back-face session")
        return self._run(
            lambda: render_front(template, photo_file, photo_url, name, role, **kwargs),
            name,
        )

    def render_back(self, template, name: str = "", **kwargs) -> bool:
        if self.face != "back":
            raise ValueError("render_back called on a front-face session")
        return self._run(lambda: render_back(template, name, **kwargs), name)

    def to_png(self) -> Optional[str]:
        """PNG data URI of the committed image, or ``None`` before any success."""
        image = self.image
        if image is None:
            return None
        return to_png_data_uri(image)

    def default_filename(self) -> str:
        if self.face == "back":
            return "cracha-verso.png"
        return badge_filename("", self._name, "png")

    def download_png(
        self, filename: Optional[str] = None, directory: Union[str, Path] = "."
    ) -> Optional[Path]:
        """Save the committed image to ``directory``; ``None`` if nothing to save."""
        image = self.image
        if image is None:
            return None
        return save_png(image, Path(directory) / (filename or self.default_filename()))


__all__ = ["Observer", "RenderSession", "RenderState"]
