from __future__ import annotations

from nora_today.core.errors import AnalysisFailedError, AnalysisPendingError
from nora_today.schemas.remote import DashboardResponse, RecordingAnalysis, RecordingListResponse
from nora_today.services.base import RemoteService, error_body

_FAILED_MARKERS = ("analysis failed", "report generation failed")


class RecordingService(RemoteService):
    service_name = "recordings"

    async def get_dashboard(self) -> DashboardResponse:
        return await self._get_model("/api/recordings/dashboard", DashboardResponse, "Failed to fetch dashboard")

    async def get_recordings(self) -> RecordingListResponse:
        return await self._get_model("/api/recordings", RecordingListResponse, "Failed to fetch recordings")

    async def get_analysis(self, recording_id: str) -> RecordingAnalysis:
        """Fetch a finished analysis; raises AnalysisPendingError while upstream is still working."""
        response = await self._send("GET", f"/api/recordings/{recording_id}/analysis", parse_body=True)
        body = error_body(response)
        status = str(body.get("status") or "").lower()
        message = str(body.get("error") or body.get("message") or "")
        failed = status == "failed" or any(marker in message.lower() for marker in _FAILED_MARKERS)
        pending = response.status_code == 202 or status == "processing"
        if response.is_success and (failed or pending):
            self._breaker().record_success()

        if failed:
            raise AnalysisFailedError(recording_id, message or "Analysis failed")
        if pending:
            raise AnalysisPendingError(recording_id, message or "Analysis still processing")
        self._raise_for_error(response, "Failed to fetch analysis")
        return self._parse(response, RecordingAnalysis, "Failed to fetch analysis")
