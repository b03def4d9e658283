"""OCR capability boundary: engine protocol, EasyOCR adapter and shared-handle provider.

The engine handle is expensive to build (model load) and handles one
recognition at a time. It is created once per process by an
``OCREngineProvider`` owned by the application, never by a module global.
"""

import asyncio
import logging
import os
import re
import threading
import time
import unicodedata
from typing import Callable, Optional, Protocol

import numpy as np

from .ocr_tree import OCRPage, page_from_detections

logger = logging.getLogger(__name__)


class OCRError(Exception):
    """Base class for OCR errors."""


class OCRFailure(OCRError):
    """The engine failed while recognizing an image."""


class OCRUnavailable(OCRFailure):
    """The engine could not be created or reached."""


class OCRTimeout(OCRError):
    """The OCR pipeline did not finish before its deadline."""


class OCREngine(Protocol):
    """Anything that turns an image into a hierarchical ``OCRPage``."""

    def recognize(self, image: np.ndarray) -> OCRPage:
        ...


class EasyOCREngine:
    """EasyOCR adapter producing ``OCRPage`` trees."""

    def __init__(self, reader):
        self._reader = reader
        # The reader is not safe for concurrent readtext calls
        self._lock = threading.Lock()

    @classmethod
    def create(cls, lang: str = "en", model_dir: Optional[str] = None) -> "EasyOCREngine":
        """
        Load the EasyOCR models. Slow; run it off the event loop.

        Raises:
            OCRUnavailable: If the models cannot be loaded
        """
        try:
            import easyocr
            import torch

            # Set thread limits for CPU inference
            num_threads = int(os.environ.get("TORCH_NUM_THREADS", min(4, os.cpu_count() or 2)))
            torch.set_num_threads(num_threads)

            logger.info(f"Initializing EasyOCR engine with {num_threads} threads...")
            model_dir = os.environ.get("EASYOCR_MODULE_PATH", model_dir)
            reader = easyocr.Reader(
                [lang],
                gpu=False,
                model_storage_directory=model_dir,
                verbose=False,
            )
        except Exception as e:
            logger.error(f"Failed to initialize EasyOCR: {e}")
            raise OCRUnavailable(f"Failed to initialize EasyOCR: {e}") from e

        logger.info("EasyOCR initialized successfully")
        return cls(reader)

    def recognize(self, image: np.ndarray) -> OCRPage:
        """
        Run one recognition pass.

        Raises:
            OCRFailure: If EasyOCR raises
        """
        height, width = image.shape[:2]
        with self._lock:
            try:
                detections = self._reader.readtext(
                    image,
                    decoder="greedy",
                    batch_size=1,
                    paragraph=False,
                )
            except Exception as e:
                logger.error(f"OCR processing failed: {e}")
                raise OCRFailure(f"OCR processing failed: {e}") from e

        normalized = []
        for points, text, confidence in detections:
            text = _normalize_text(text)
            if text:
                normalized.append((points, text, confidence))

        if not normalized:
            logger.warning("OCR returned no results")
        return page_from_detections(normalized, width=width, height=height)


def _normalize_text(text: str) -> str:
    """NFKC (ligatures etc.), collapse whitespace, strip."""
    normalized = unicodedata.normalize("NFKC", text or "")
    return re.sub(r"\s+", " ", normalized).strip()


class OCREngineProvider:
    """
    Lazily creates one shared engine.

    Concurrent first callers all await the same in-flight initialization.
    If it fails, the in-flight marker is cleared so a later call retries.
    """

    def __init__(self, factory: Callable[[], OCREngine]):
        self._factory = factory
        self._engine: Optional[OCREngine] = None
        self._pending: Optional[asyncio.Future] = None

    @property
    def is_ready(self) -> bool:
        """Check if the engine has been created."""
        return self._engine is not None

    async def get(self) -> OCREngine:
        """
        Return the shared engine, creating it on first use.

        Raises:
            OCRUnavailable: If the engine cannot be created
        """
        if self._engine is not None:
            return self._engine

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._initialize())
        pending = self._pending

        try:
            return await asyncio.shield(pending)
        except Exception:
            if self._pending is pending:
                self._pending = None
            raise

    async def _initialize(self) -> OCREngine:
        start = time.perf_counter()
        try:
            engine = await asyncio.to_thread(self._factory)
        except OCRUnavailable:
            raise
        except Exception as e:
            logger.error(f"OCR engine initialization failed: {e}")
            raise OCRUnavailable(f"OCR engine initialization failed: {e}") from e

        self._engine = engine
        self._pending = None
        logger.info(f"OCR engine ready in {(time.perf_counter() - start) * 1000:.0f}ms")
        return engine
