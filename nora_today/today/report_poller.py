from __future__ import annotations

import asyncio

from nora_today.core.errors import (
    ERROR_MESSAGES,
    AnalysisFailedError,
    AnalysisPendingError,
    ApiError,
    RemoteUnavailableError,
    user_message_for,
)
from nora_today.core.logging import DOMAIN_REMOTE, get_domain_logger
from nora_today.core.settings import settings
from nora_today.schemas.today import PollOutcome, PollStatus

logger = get_domain_logger(__name__, DOMAIN_REMOTE)


class AnalysisPoller:
    def __init__(
        self,
        recording_service,
        *,
        interval_seconds: float = settings.analysis_poll_interval_seconds,
        max_attempts: int = settings.analysis_poll_max_attempts,
    ):
        self.recording_service = recording_service
        self.interval_seconds = interval_seconds
        self.max_attempts = max(1, int(max_attempts))

    async def poll(self, recording_id: str) -> PollOutcome:
        """Wait for an analysis on a fixed interval, giving up after ``max_attempts`` pending answers."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                analysis = await self.recording_service.get_analysis(recording_id)
            except AnalysisPendingError:
                logger.info("Analysis for %s still processing (attempt %d/%d)", recording_id, attempt, self.max_attempts)
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.interval_seconds)
                continue
            except AnalysisFailedError as exc:
                logger.warning("Analysis for %s failed permanently: %s", recording_id, exc)
                return PollOutcome(
                    recording_id=recording_id,
                    status=PollStatus.FAILED,
                    attempts=attempt,
                    message=user_message_for(exc),
                )
            except (ApiError, RemoteUnavailableError) as exc:
                logger.warning("Unexpected error polling analysis for %s: %s", recording_id, exc)
                return PollOutcome(
                    recording_id=recording_id,
                    status=PollStatus.FAILED,
                    attempts=attempt,
                    message=ERROR_MESSAGES["PROCESSING_FAILED"],
                )
            return PollOutcome(recording_id=recording_id, status=PollStatus.READY, attempts=attempt, analysis=analysis)

        logger.warning("Analysis for %s timed out after %d attempts", recording_id, self.max_attempts)
        return PollOutcome(
            recording_id=recording_id,
            status=PollStatus.TIMED_OUT,
            attempts=self.max_attempts,
            message=ERROR_MESSAGES["PROCESSING_TIMEOUT"],
        )
