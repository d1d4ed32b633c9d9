"""Tests for patient autosuggest."""

from unittest.mock import Mock

import pytest

from healthscribe.aws.patients_table import PatientRepository
from healthscribe.models.patient import CreatePatientRequest, PatientSearchResult
from healthscribe.services.patient_service import (
    PatientService,
    describe_patient,
    is_placeholder_name,
)


def result(name, patient_id="p-1", **fields):
    return PatientSearchResult(patient_id=patient_id, patient_name=name, **fields)


@pytest.fixture
def repository():
    return Mock(spec=PatientRepository)


@pytest.fixture
def service(repository):
    return PatientService(repository)


class TestSuggest:
    def test_options_and_create_offer(self, service, repository):
        repository.search.return_value = [
            result("Jane Doe", "p-1", mrn="M1", date_of_birth="1980-01-02", encounter_count=3)
        ]

        suggestions = service.suggest("P1", "jan")

        repository.search.assert_called_once_with("P1", "jan", 10)
        option = suggestions.options[0]
        assert option.value == option.label == "Jane Doe"
        assert option.description == "DOB: 1980-01-02 • MRN: M1 • 3 encounters"
        assert option.tags == ["M1", "1980-01-02"]
        assert option.patient_id == "p-1"
        assert suggestions.offer_create is True

    def test_exact_match_suppresses_create_offer(self, service, repository):
        repository.search.return_value = [result("Jane Doe")]

        assert service.suggest("P1", "jane doe").offer_create is False

    def test_no_results_offers_create(self, service, repository):
        repository.search.return_value = []

        suggestions = service.suggest("P1", "Zed")

        assert suggestions.options == []
        assert suggestions.offer_create is True

    @pytest.mark.parametrize("term", ["", "   ", "New Encounter"])
    def test_placeholder_terms_short_circuit(self, service, repository, term):
        suggestions = service.suggest("P1", term)

        assert suggestions.options == []
        assert suggestions.offer_create is False
        repository.search.assert_not_called()

    def test_missing_provider_short_circuits(self, service, repository):
        assert service.suggest(None, "jane").options == []
        assert service.search(None, "jane") == []
        repository.search.assert_not_called()


class TestDescribePatient:
    def test_single_encounter_is_singular(self):
        assert describe_patient(result("A", encounter_count=1)) == "1 encounter"

    def test_empty_description(self):
        assert describe_patient(result("A")) == ""


def test_is_placeholder_name():
    assert is_placeholder_name(None)
    assert is_placeholder_name(" New Encounter ")
    assert not is_placeholder_name("Jane")


def test_create_delegates(service, repository):
    request = CreatePatientRequest(patient_name="Jane")

    service.create("P1", request)

    repository.create.assert_called_once_with("P1", request)
