"""Tests for the bounded copy pool."""

from diary_engine.services.copy_pool import CopyJob, CopySourceError, run_copy_jobs

from helpers import write_photo


def test_outcomes_in_job_order(tmp_path):
    jobs = []
    for index in range(6):
        source = write_photo(tmp_path / "src" / f"{index}.jpg", bytes([index]) * 100)
        jobs.append(CopyJob(reference=f"r{index}", source=source, destination=tmp_path / "dst" / f"{index}.jpg"))
    
    outcomes = run_copy_jobs(jobs, max_workers=3)
    
    assert [outcome.job.reference for outcome in outcomes] == [f"r{i}" for i in range(6)]
    assert all(outcome.ok for outcome in outcomes)
    assert (tmp_path / "dst" / "5.jpg").read_bytes() == bytes([5]) * 100


def test_source_and_destination_failures_are_distinguished(tmp_path):
    good = write_photo(tmp_path / "good.jpg")
    blocker = tmp_path / "blocker"
    blocker.write_text("a file where a directory should be")
    
    missing, unwritable = run_copy_jobs([
        CopyJob(reference="missing", source=tmp_path / "nope.jpg", destination=tmp_path / "out" / "a.jpg"),
        CopyJob(reference="unwritable", source=good, destination=blocker / "b.jpg"),
    ])
    
    assert isinstance(missing.error, CopySourceError)
    assert missing.source_failed
    assert not unwritable.ok
    assert not unwritable.source_failed
    assert missing.as_failure().reference == "missing"


def test_no_jobs():
    assert run_copy_jobs([]) == []
