import time
from concurrent.futures import ThreadPoolExecutor

from gge_rollup.utils import job_store


def test_public_view_hides_private_fields(tmp_path):
    job = job_store.create_job("view", output_dir=str(tmp_path))
    view = job_store.public_view(job)
    assert not {"created_at", "output_path", "output_dir"} & set(view)
    view["logs"].append({"msg": "x"})
    assert job["logs"] == []


def test_progress_from_worker_threads():
    job_store.create_job("threads")
    report = job_store.progress_callback("threads")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda i: report(i % 100, f"Шаг {i}"), range(1000)))

    job = job_store.get_job("threads")
    assert len(job["logs"]) == job_store.MAX_LOGS
    assert all(entry["msg"].startswith("Шаг ") for entry in job["logs"])


def test_cleanup_removes_job_folder(tmp_path):
    folder = tmp_path / "jobs" / "old"
    folder.mkdir(parents=True)
    (folder / "combined_output.xlsx").write_bytes(b"x")
    job = job_store.create_job("old", output_dir=str(folder))
    job["created_at"] = time.time() - 24 * 3600
    job_store.create_job("fresh")

    assert job_store.cleanup_expired_jobs() >= 1
    assert job_store.get_job("old") is None
    assert job_store.get_job("fresh") is not None
    assert not folder.exists()
