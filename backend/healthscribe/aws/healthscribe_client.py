"""Amazon Transcribe medical scribe (HealthScribe) job accessor."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from aws_lambda_powertools import Logger

from ..models.encounter import Encounter, JobRequest

logger = Logger(service="healthscribe-client")

# ListMedicalScribeJobs accepts at most 100 results per page.
MAX_PAGE_SIZE = 100


class HealthScribeClient:
    """Start, inspect, list and delete medical scribe jobs.

    Args:
        transcribe_client: boto3 ``transcribe`` client.
    """

    def __init__(self, transcribe_client: Any):
        self.client = transcribe_client

    def start_job(self, request: JobRequest) -> Encounter:
        """Submit a job and return the encounter it describes.

        Raises:
            botocore.exceptions.ClientError: The service rejected the job.
            ValueError: The response carried no recognisable job status.
        """
        response = self.client.start_medical_scribe_job(**request.to_params())
        job = response.get("MedicalScribeJob") or {}
        job.setdefault("MedicalScribeJobName", request.job_name)
        logger.info(
            "Medical scribe job started",
            extra={
                "job_name": request.job_name,
                "status": job.get("MedicalScribeJobStatus"),
            },
        )
        return Encounter.from_job(job)

    def get_job(self, job_name: str) -> Encounter:
        response = self.client.get_medical_scribe_job(MedicalScribeJobName=job_name)
        return Encounter.from_job(response["MedicalScribeJob"])

    def list_jobs(
        self,
        status: Optional[str] = None,
        name_contains: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> List[Encounter]:
        """List job summaries, following ``NextToken`` across pages.

        Args:
            status: Only jobs in this ``MedicalScribeJobStatus``.
            name_contains: Only jobs whose name contains this string.
            max_results: Stop after this many jobs (all when None).
        """
        params: Dict[str, Any] = {}
        if status:
            params["Status"] = status
        if name_contains:
            params["JobNameContains"] = name_contains

        encounters: List[Encounter] = []
        while True:
            remaining = None if max_results is None else max_results - len(encounters)
            if remaining is not None and remaining <= 0:
                break
            params["MaxResults"] = min(MAX_PAGE_SIZE, remaining or MAX_PAGE_SIZE)
            response = self.client.list_medical_scribe_jobs(**params)
            for summary in response.get("MedicalScribeJobSummaries", []):
                encounters.append(Encounter.from_job(summary))
            next_token = response.get("NextToken")
            if not next_token:
                break
            params["NextToken"] = next_token

        logger.debug("Listed medical scribe jobs", extra={"count": len(encounters)})
        return encounters[:max_results] if max_results is not None else encounters

    def delete_job(self, job_name: str) -> None:
        """Delete the job record. Output objects in S3 are left in place."""
        self.client.delete_medical_scribe_job(MedicalScribeJobName=job_name)
        logger.info("Medical scribe job deleted", extra={"job_name": job_name})
