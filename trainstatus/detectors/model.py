"""
Object detection delegate.

Runs the camera snapshot through a pre-trained COCO object detector and
treats large-vehicle classes as evidence of a train.
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

from trainstatus.config import DETECTION_MODEL, MODEL_RETRY_INTERVAL, PROXY_CLASSES
from trainstatus.detectors.base import ThreadedDetector
from trainstatus.errors import DetectionError, ModelUnavailable
from trainstatus.status import Verdict

# Lazy imports for ML dependencies (torch, transformers) happen inside
# load_detection_pipeline so the simulated detectors don't pay for them

logger = logging.getLogger(__name__)


def load_detection_pipeline(model_name=DETECTION_MODEL):
    """
    Load a Hugging Face object-detection pipeline.

    Args:
        model_name: Model id or local directory

    Returns:
        Callable taking a PIL image and returning a list of
        {'label': str, 'score': float, 'box': dict}

    Raises:
        ModelUnavailable: If the ML stack or the weights can't be loaded
    """
    try:
        import torch
        from transformers import pipeline

        device = 0 if torch.cuda.is_available() else -1
        detector = pipeline('object-detection', model=model_name, device=device)
    except Exception as e:
        raise ModelUnavailable(f"Could not load detection model {model_name}: {e}") from e

    logger.info(f"Loaded detection model {model_name} on {'cuda' if device == 0 else 'cpu'}")
    return detector


class ObjectDetector(ThreadedDetector):
    """
    Blocking when any detection's label is a proxy class.

    Detections are used as the model reports them; no extra minimum score
    is applied on top of the pipeline's own output. A failed model load is
    remembered for ``retry_interval`` seconds so every check doesn't pay
    for another attempt.
    """

    name = "model"

    def __init__(
        self,
        fetch_image: Callable,
        model_name: str = DETECTION_MODEL,
        proxy_classes=PROXY_CLASSES,
        pipeline_factory: Optional[Callable] = None,
        retry_interval: float = MODEL_RETRY_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.fetch_image = fetch_image
        self.model_name = model_name
        self.proxy_classes = frozenset(label.lower() for label in proxy_classes)
        self.retry_interval = retry_interval
        self._clock = clock
        self._pipeline_factory = pipeline_factory or load_detection_pipeline
        self._pipeline = None
        self._load_error: Optional[ModelUnavailable] = None
        self._load_failed_at = 0.0
        self._load_lock = threading.Lock()

    def _get_pipeline(self):
        # Loaded once, on a worker thread, the first time it's needed
        with self._load_lock:
            if self._pipeline is not None:
                return self._pipeline

            if self._load_error is not None:
                if self._clock() - self._load_failed_at < self.retry_interval:
                    raise self._load_error
                logger.info(f"Retrying load of detection model {self.model_name}")

            try:
                self._pipeline = self._pipeline_factory(self.model_name)
            except ModelUnavailable as e:
                self._load_error = e
                self._load_failed_at = self._clock()
                raise
            self._load_error = None
            return self._pipeline

    async def prepare(self) -> None:
        try:
            await asyncio.to_thread(self._get_pipeline)
        except ModelUnavailable as e:
            logger.warning(f"Detection model not ready: {e}")

    def classify(self, image) -> Verdict:
        detector = self._get_pipeline()
        try:
            detections = detector(image)
        except Exception as e:
            raise DetectionError(f"Object detection failed: {e}") from e

        matches = [d for d in detections if str(d.get('label', '')).lower() in self.proxy_classes]
        if not matches:
            return Verdict(
                blocking=False,
                reason=f"No train-like vehicles among {len(detections)} detected objects",
            )

        best = max(matches, key=lambda d: d.get('score', 0.0))
        return Verdict(
            blocking=True,
            reason=f"Detected {best['label']} ({best.get('score', 0.0):.0%} confidence)",
        )

    def run(self) -> Verdict:
        return self.classify(self.fetch_image())
