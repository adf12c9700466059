from unittest.mock import MagicMock

import pytest

from propwatch.errors import ValidationError
from propwatch.ingestion import SourceFile
from propwatch.models import AgencyStats, UploadJob
from propwatch.reference_data import ReferenceDatasets, active_jobs
from propwatch.stats import fetch_stats, status_breakdown

PPD = SourceFile("pp-2024-03.csv", b"{id},250000,2024-03-01,AB1 2CD\n")


def _job(id, status):
    return UploadJob(id=id, filename="pp.csv", source_year=2024, status=status,
                     records_processed=0, records_skipped=0, uploaded_at=None)


def test_upload_sends_period_and_file():
    client = MagicMock()
    client.upload_reference_dataset.return_value = {"upload_id": "p1", "status": "uploaded"}

    accepted = ReferenceDatasets(client).upload(2024, 3, PPD)

    assert accepted["status"] == "uploaded"
    client.upload_reference_dataset.assert_called_once_with(2024, 3, "pp-2024-03.csv", PPD.content)


@pytest.mark.parametrize("year, month", [(1994, 1), (2031, 1), (2024, 0), (2024, 13)])
def test_upload_rejects_out_of_range_period(year, month):
    client = MagicMock()

    with pytest.raises(ValidationError):
        ReferenceDatasets(client).upload(year, month, PPD)

    client.upload_reference_dataset.assert_not_called()


def test_upload_rejects_empty_file():
    client = MagicMock()
    with pytest.raises(ValidationError):
        ReferenceDatasets(client).upload(2024, 3, SourceFile("empty.csv", b""))
    client.upload_reference_dataset.assert_not_called()


def test_one_upload_at_a_time():
    client = MagicMock()
    datasets = ReferenceDatasets(client)
    errors = []

    def upload(*args):
        assert datasets.is_uploading
        try:
            datasets.upload(2024, 4, PPD)
        except ValidationError as e:
            errors.append(e)
        return {"status": "uploaded"}

    client.upload_reference_dataset.side_effect = upload

    datasets.upload(2024, 3, PPD)

    assert len(errors) == 1
    assert client.upload_reference_dataset.call_count == 1
    assert not datasets.is_uploading


def test_delete_job():
    client = MagicMock()
    datasets = ReferenceDatasets(client)

    datasets.delete_job("p1")
    client.delete_reference_job.assert_called_once_with("p1")

    with pytest.raises(ValidationError):
        datasets.delete_job("")


def test_active_jobs():
    jobs = [_job("a", "uploaded"), _job("b", "completed"), _job("c", "processing"), _job("d", "failed")]
    assert [j.id for j in active_jobs(jobs)] == ["a", "c"]


def test_fetch_stats():
    client = MagicMock()
    client.agency_stats.return_value = AgencyStats(10, 2, 1, 5000.0)
    assert fetch_stats(client).total_listings == 10


def test_status_breakdown():
    stats = AgencyStats(total_listings=10, suspicious_matches=3, confirmed_fraud=1, potential_savings=0)
    assert status_breakdown(stats) == [("Suspicious", 3), ("Confirmed Fraud", 1), ("Cleared", 6)]


def test_status_breakdown_drops_zero_slices():
    stats = AgencyStats(total_listings=4, suspicious_matches=0, confirmed_fraud=0, potential_savings=0)
    assert status_breakdown(stats) == [("Cleared", 4)]
    assert status_breakdown(AgencyStats(0, 0, 0, 0)) == []
