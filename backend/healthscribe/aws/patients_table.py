"""DynamoDB patient repository.

This module stores provider-owned patient records in a single DynamoDB table
keyed by ``patientId``. Every read and write is scoped to the calling
provider:

    • Searches query the ``providerId-patientName-index`` GSI
    • Recent patients come from the ``providerId-lastEncounterDate-index`` GSI
    • Updates, soft deletes and encounter bookkeeping are conditional on
      ``providerId`` and ``isActive``

Example:
    >>> table = boto3.resource("dynamodb").Table("NainaHealthScribe-Patients")
    >>> repo = PatientRepository(table)
    >>> patient = repo.create("provider-1", CreatePatientRequest(patient_name="Jane Doe"))
    >>> repo.search("provider-1", "jane")
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import PatientCreateError, PatientStoreError
from ..models.common import utc_now_iso
from ..models.patient import (
    CreatePatientRequest,
    Patient,
    PatientSearchResult,
    UpdatePatientRequest,
)
from .dynamodb import from_dynamo, is_condition_failure, to_dynamo_safe

logger = Logger(service="patients-table")

NAME_INDEX = "providerId-patientName-index"
ENCOUNTER_INDEX = "providerId-lastEncounterDate-index"
CREATE_ATTEMPTS = 3

_OWNED_AND_ACTIVE = "providerId = :providerId AND isActive = :isActive"


class PatientRepository:
    """Provider-scoped CRUD over the patients table.

    Args:
        table: boto3 DynamoDB ``Table`` resource.
        id_factory: Generates new patient identities (``uuid4`` by default).
    """

    def __init__(self, table: Any, id_factory: Optional[Callable[[], str]] = None):
        self.table = table
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def create(self, provider_id: str, request: CreatePatientRequest) -> Patient:
        """Create an active patient owned by ``provider_id``.

        A generated identity that already exists is replaced with a fresh one.

        Raises:
            PatientCreateError: If every attempt collided or the write failed.
        """
        now = utc_now_iso()
        for attempt in range(1, CREATE_ATTEMPTS + 1):
            patient = Patient(
                patient_id=self.id_factory(),
                provider_id=provider_id,
                patient_name=request.patient_name.strip(),
                date_of_birth=request.date_of_birth,
                mrn=request.mrn,
                phone_number=request.phone_number,
                email=request.email,
                demographics=request.demographics,
                is_active=True,
                created_at=now,
                updated_at=now,
                encounter_count=0,
            )
            try:
                self.table.put_item(
                    Item=to_dynamo_safe(patient.to_item()),
                    ConditionExpression="attribute_not_exists(patientId)",
                )
            except ClientError as e:
                if is_condition_failure(e):
                    logger.warning(
                        "Patient identity collision, regenerating",
                        extra={"patient_id": patient.patient_id, "attempt": attempt},
                    )
                    continue
                logger.error(
                    "Failed to create patient",
                    extra={"provider_id": provider_id, "error": str(e)},
                )
                raise PatientCreateError(f"Failed to create patient: {e}") from e
            except BotoCoreError as e:
                raise PatientCreateError(f"Failed to create patient: {e}") from e

            logger.info(
                "Patient created",
                extra={"patient_id": patient.patient_id, "provider_id": provider_id},
            )
            return patient

        raise PatientCreateError(
            f"Failed to create patient after {CREATE_ATTEMPTS} identity collisions"
        )

    def get(
        self, patient_id: str, provider_id: str, include_inactive: bool = False
    ) -> Optional[Patient]:
        """Fetch a patient owned by ``provider_id``.

        Returns None for unknown identities, patients of other providers and,
        unless ``include_inactive`` is set, soft-deleted patients.
        """
        try:
            response = self.table.get_item(Key={"patientId": patient_id})
        except (ClientError, BotoCoreError) as e:
            raise PatientStoreError(f"Failed to get patient {patient_id}: {e}") from e

        item = response.get("Item")
        if not item or item.get("providerId") != provider_id:
            return None
        patient = Patient.model_validate(from_dynamo(item))
        if not patient.is_active and not include_inactive:
            return None
        return patient

    def _query_active(
        self, index_name: str, provider_id: str, limit: int, ascending: bool
    ) -> List[Patient]:
        """Page through an index until ``limit`` active patients are found."""
        patients: List[Patient] = []
        kwargs: Dict[str, Any] = {
            "IndexName": index_name,
            "KeyConditionExpression": Key("providerId").eq(provider_id),
            "FilterExpression": Attr("isActive").eq(True),
            "ScanIndexForward": ascending,
        }
        try:
            while len(patients) < limit:
                response = self.table.query(**kwargs)
                patients.extend(
                    Patient.model_validate(from_dynamo(item))
                    for item in response.get("Items", [])
                )
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Patient query failed",
                extra={"index": index_name, "provider_id": provider_id, "error": str(e)},
            )
            raise PatientStoreError(f"Failed to query patients: {e}") from e
        return patients[:limit]

    def search(
        self, provider_id: str, term: str = "", limit: int = 50
    ) -> List[PatientSearchResult]:
        """Search a provider's active patients by name, MRN or email.

        Up to ``limit`` active patients are read in name order, then filtered
        by a case-insensitive substring match. A blank term returns them all.
        """
        candidates = self._query_active(NAME_INDEX, provider_id, limit, True)
        results = [p.to_search_result() for p in candidates if p.matches(term)]
        logger.debug(
            "Patient search",
            extra={
                "provider_id": provider_id,
                "candidates": len(candidates),
                "results": len(results),
            },
        )
        return results

    def recent(self, provider_id: str, limit: int = 10) -> List[PatientSearchResult]:
        """Active patients ordered by most recent encounter first."""
        patients = self._query_active(ENCOUNTER_INDEX, provider_id, limit, False)
        return [p.to_search_result() for p in patients]

    def _conditional_update(
        self,
        patient_id: str,
        provider_id: str,
        update_expression: str,
        names: Dict[str, str],
        values: Dict[str, Any],
        action: str,
    ) -> Dict[str, Any]:
        values = dict(values)
        values[":providerId"] = provider_id
        values[":isActive"] = True
        kwargs: Dict[str, Any] = {
            "Key": {"patientId": patient_id},
            "UpdateExpression": update_expression,
            "ConditionExpression": _OWNED_AND_ACTIVE,
            "ExpressionAttributeValues": to_dynamo_safe(values),
            "ReturnValues": "ALL_NEW",
        }
        if names:
            kwargs["ExpressionAttributeNames"] = names
        try:
            response = self.table.update_item(**kwargs)
        except ClientError as e:
            if is_condition_failure(e):
                logger.warning(
                    f"Patient {action} rejected",
                    extra={"patient_id": patient_id, "provider_id": provider_id},
                )
                raise PatientStoreError(
                    f"Patient {patient_id} not found, inactive or not owned by provider"
                ) from e
            raise PatientStoreError(f"Failed to {action} patient {patient_id}: {e}") from e
        except BotoCoreError as e:
            raise PatientStoreError(f"Failed to {action} patient {patient_id}: {e}") from e
        return from_dynamo(response.get("Attributes", {}))

    def update(
        self, patient_id: str, provider_id: str, request: UpdatePatientRequest
    ) -> Patient:
        """Apply the fields set on ``request`` to an owned, active patient.

        Raises:
            PatientStoreError: If the patient is missing, inactive, owned by
                another provider, or the write failed.
        """
        changes = request.changes()
        changes["updatedAt"] = utc_now_iso()
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        assignments: List[str] = []
        for index, (field, value) in enumerate(changes.items()):
            names[f"#f{index}"] = field
            values[f":v{index}"] = value
            assignments.append(f"#f{index} = :v{index}")
        attributes = self._conditional_update(
            patient_id,
            provider_id,
            "SET " + ", ".join(assignments),
            names,
            values,
            "update",
        )
        return Patient.model_validate(attributes)

    def soft_delete(self, patient_id: str, provider_id: str) -> None:
        """Mark an owned, active patient inactive. Records are never removed."""
        self._conditional_update(
            patient_id,
            provider_id,
            "SET isActive = :inactive, updatedAt = :updatedAt",
            {},
            {":inactive": False, ":updatedAt": utc_now_iso()},
            "delete",
        )
        logger.info(
            "Patient soft-deleted",
            extra={"patient_id": patient_id, "provider_id": provider_id},
        )

    def record_encounter(
        self, patient_id: str, provider_id: str, encounter_date: Optional[str] = None
    ) -> Patient:
        """Atomically bump the encounter count and last encounter date."""
        now = utc_now_iso()
        attributes = self._conditional_update(
            patient_id,
            provider_id,
            "SET lastEncounterDate = :encounterDate, updatedAt = :updatedAt "
            "ADD encounterCount :one",
            {},
            {
                ":encounterDate": encounter_date or now,
                ":updatedAt": now,
                ":one": 1,
            },
            "record encounter for",
        )
        return Patient.model_validate(attributes)

    def check_access(self) -> Tuple[bool, str]:
        """Probe the table with a one-item scan.

        Returns:
            Tuple of (reachable, message).
        """
        try:
            response = self.table.scan(Limit=1)
        except (ClientError, BotoCoreError) as e:
            logger.error("Patient table access check failed", extra={"error": str(e)})
            return False, f"Cannot access patient table: {e}"
        return True, f"Patient table reachable ({response.get('Count', 0)} item sampled)"
