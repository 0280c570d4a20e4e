"""Process-wide, load-once model management.

Model bundles are expensive to load, so every named bundle is loaded at
most once per process. The first caller starts the load in a background
thread and stores the in-flight future; every later caller (including
concurrent session starts) receives the same future. A failed load
clears the memo so that a later call can try again.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional

from .errors import ModelLoadError

logger = logging.getLogger(__name__)


class ModelLoader:
    """Memoized asynchronous loader for a single model bundle."""

    def __init__(self, name: str, factory: Callable[[], Any]):
        """Initialize loader.

        Args:
            name: Human readable bundle name used in logs
            factory: Callable doing the actual (blocking) load and
                     returning the loaded model object
        """
        self.name = name
        self._factory = factory
        self._lock = threading.Lock()
        self._future: Optional[Future] = None

    def load(self) -> Future:
        """Start loading if needed and return the shared future."""
        with self._lock:
            if self._future is None:
                logger.info(f"Loading {self.name} models for the first time...")
                future: Future = Future()
                # A running future ignores cancel() from individual waiters
                future.set_running_or_notify_cancel()
                self._future = future
                thread = threading.Thread(
                    target=self._run,
                    args=(future,),
                    name=f"model-load-{self.name}",
                    daemon=True,
                )
                thread.start()
            else:
                logger.debug(f"{self.name} models already loaded or loading, reusing")
            return self._future

    def _run(self, future: Future) -> None:
        """Perform the load and resolve the future (loader thread)."""
        try:
            model = self._factory()
        except Exception as e:
            logger.error(f"Failed to load {self.name} models: {e}")
            with self._lock:
                if self._future is future:
                    self._future = None
            error = ModelLoadError(f"Failed to load {self.name} models.")
            error.__cause__ = e
            future.set_exception(error)
            return

        logger.info(f"{self.name} models loaded successfully")
        future.set_result(model)

    def get(self, timeout: Optional[float] = None) -> Any:
        """Block until the model is available and return it.

        Raises:
            ModelLoadError: If loading failed
        """
        return self.load().result(timeout=timeout)

    @property
    def is_loaded(self) -> bool:
        """True once the model finished loading successfully."""
        future = self._future
        return (
            future is not None
            and future.done()
            and not future.cancelled()
            and future.exception() is None
        )

    @property
    def model(self) -> Any:
        """The loaded model, or None if not (yet) available."""
        if not self.is_loaded:
            return None
        return self._future.result()

    def reset(self) -> None:
        """Forget the memoized load (the next load() starts over)."""
        with self._lock:
            self._future = None


# ============================================================
# Process-wide registry
# ============================================================

_registry_lock = threading.Lock()
_loaders: Dict[str, ModelLoader] = {}


def get_model_loader(key: str, factory: Callable[[], Any]) -> ModelLoader:
    """Return the process-wide loader for ``key``, creating it once.

    The factory of the first registration wins; later callers with the
    same key share that loader.
    """
    with _registry_lock:
        loader = _loaders.get(key)
        if loader is None:
            loader = ModelLoader(key, factory)
            _loaders[key] = loader
        return loader


def clear_model_loaders() -> None:
    """Drop every registered loader (used by tests and on shutdown)."""
    with _registry_lock:
        _loaders.clear()
