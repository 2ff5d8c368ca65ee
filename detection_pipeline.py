"""
PlantScan - Detection Orchestrator

Runs one detection end to end:

    Idle -> Persisting -> Extracting -> Classifying -> Recommending
         -> Assembling -> Persisted | Failed

Image persistence and pixel extraction run side by side; everything after
that is strictly sequential. Anonymous and signed-in submissions share this
one pipeline, the only difference being the optional owner id.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

from asset_storage import RawImage, SupabaseStorage, persist_image
from database import insert_detection
from diagnostics_engine import classify_colors, extract_color_counts
from errors import DetectionCancelledError, DetectionInProgressError, RecordPersistError
from recommendation_engine import fetch_recommendations

logger = logging.getLogger("plantscan-pipeline")


class DetectionState(str, Enum):
    IDLE = "idle"
    PERSISTING = "persisting"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    RECOMMENDING = "recommending"
    ASSEMBLING = "assembling"
    PERSISTED = "persisted"
    FAILED = "failed"


@dataclass(frozen=True)
class DetectionRecord:
    id: str
    owner_id: Optional[str]
    image_url: str
    disease_name: str
    confidence: float
    severity: str
    recommendations: str
    created_at: datetime

    def to_result(self):
        """The result shape the frontend renders."""
        return {
            "disease_name": self.disease_name,
            "confidence": self.confidence,
            "severity": self.severity,
            "recommendations": self.recommendations,
        }


def _utcnow():
    return datetime.now(timezone.utc)


class DetectionPipeline:
    """
    Wires storage, diagnostics, recommendations and the record store together.

    persist_asset(image, owner_id) -> awaitable reference string
    recommend(disease_name)        -> awaitable recommendation text
    save_record(record)            -> blocking insert, run in a worker thread
    """

    def __init__(
        self,
        persist_asset: Callable[[RawImage, Optional[str]], Awaitable[str]],
        recommend: Callable[[str], Awaitable[str]],
        save_record: Callable[[DetectionRecord], object],
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.persist_asset = persist_asset
        self.recommend = recommend
        self.save_record = save_record
        self.clock = clock
        self._in_flight = set()

    async def run(
        self,
        image: RawImage,
        owner_id: Optional[str] = None,
        session_key: Optional[str] = None,
        cancel_check: Optional[Callable[[], Awaitable[bool]]] = None,
        on_state: Optional[Callable[[DetectionState], None]] = None,
    ) -> DetectionRecord:
        """
        Run one detection and return the stored record.

        Raises DetectionInProgressError if `session_key` already has a run in
        flight. ImageDecodeError, RecordPersistError and DetectionCancelledError
        propagate to the caller after the run is marked Failed.
        """
        key = session_key or owner_id
        if key is not None:
            if key in self._in_flight:
                logger.info(f"Ignoring detect request, session {key} already has one running")
                raise DetectionInProgressError("A detection is already running for this session.")
            self._in_flight.add(key)

        def enter(state):
            logger.info(f"Detection [{key or 'anonymous'}] -> {state.value}")
            if on_state is not None:
                on_state(state)

        try:
            return await self._run(image, owner_id, cancel_check, enter)
        except BaseException:
            enter(DetectionState.FAILED)
            raise
        finally:
            if key is not None:
                self._in_flight.discard(key)

    async def _run(self, image, owner_id, cancel_check, enter):
        enter(DetectionState.PERSISTING)
        upload = asyncio.ensure_future(self.persist_asset(image, owner_id))
        upload.add_done_callback(_log_upload_failure)

        try:
            enter(DetectionState.EXTRACTING)
            counts, _ = await asyncio.to_thread(extract_color_counts, image.data)

            enter(DetectionState.CLASSIFYING)
            classification = classify_colors(counts)

            if cancel_check is not None and await cancel_check():
                raise DetectionCancelledError("Detection cancelled before fetching recommendations.")

            enter(DetectionState.RECOMMENDING)
            recommendations = await self.recommend(classification.disease_name)

            image_url = await upload
        except BaseException:
            # A failed or abandoned request must not leave a new object behind.
            if not upload.done():
                upload.cancel()
            raise

        enter(DetectionState.ASSEMBLING)
        record = DetectionRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            image_url=image_url,
            disease_name=classification.disease_name,
            confidence=classification.confidence,
            severity=classification.severity,
            recommendations=recommendations,
            created_at=self.clock(),
        )

        try:
            await asyncio.to_thread(self.save_record, record)
        except RecordPersistError:
            raise
        except Exception as e:
            raise RecordPersistError(str(e)) from e

        enter(DetectionState.PERSISTED)
        return record


def _log_upload_failure(task):
    # Retrieves the exception so an abandoned upload never goes unobserved.
    if not task.cancelled() and task.exception() is not None:
        logger.warning(f"Image upload task failed: {task.exception()}")


def build_pipeline(settings, http_client, engine=None):
    """Production wiring: Supabase storage, Gemini recommendations, SQL record store."""
    storage = None
    if settings.storage_configured:
        storage = SupabaseStorage(settings.supabase_url, settings.supabase_key, settings.storage_bucket, http_client)

    async def persist_asset(image, owner_id):
        return await persist_image(image, storage, owner_id)

    async def recommend(disease_name):
        return await fetch_recommendations(disease_name, settings, http_client)

    def save_record(record):
        return insert_detection(record, engine)

    return DetectionPipeline(persist_asset=persist_asset, recommend=recommend, save_record=save_record)
