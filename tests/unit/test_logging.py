"""Tests for the AppLogger and the in-memory log buffer."""

from imagegen.utils.logging import AppLogger, LogBuffer, LogEntry, LogLevel, get_log_buffer


class TestLogBuffer:

    def test_recent_is_newest_first_and_filtered(self):
        buffer = LogBuffer(max_size=10)
        buffer.add(LogEntry(LogLevel.INFO, "first", "worker"))
        buffer.add(LogEntry(LogLevel.ERROR, "second", "worker"))
        buffer.add(LogEntry(LogLevel.INFO, "third", "api"))

        messages = [e["message"] for e in buffer.get_recent()]
        assert messages == ["third", "second", "first"]

        assert [e["message"] for e in buffer.get_recent(source="worker")] == ["second", "first"]
        assert [e["message"] for e in buffer.get_recent(level=LogLevel.ERROR)] == ["second"]
        assert [e["message"] for e in buffer.get_errors()] == ["second"]

    def test_bounded_and_resizable(self):
        buffer = LogBuffer(max_size=3)
        for i in range(5):
            buffer.add(LogEntry(LogLevel.INFO, f"m{i}"))
        assert [e["message"] for e in buffer.get_recent()] == ["m4", "m3", "m2"]

        buffer.resize(2)
        assert [e["message"] for e in buffer.get_recent()] == ["m4", "m3"]

    def test_job_trail_is_oldest_first(self):
        buffer = LogBuffer()
        buffer.add(LogEntry(LogLevel.INFO, "Job claimed", "job_queue", {"job_id": 3}))
        buffer.add(LogEntry(LogLevel.INFO, "Job claimed", "job_queue", {"job_id": 4}))
        buffer.add(LogEntry(LogLevel.WARNING, "Job failed", "job_queue", {"job_id": 3, "run_id": 1}))

        trail = buffer.get_job_trail(3)
        assert [e["message"] for e in trail] == ["Job claimed", "Job failed"]
        assert trail[1]["job_id"] == 3
        assert [e["job_id"] for e in buffer.get_recent(job_id=4)] == [4]

    def test_stats(self):
        buffer = LogBuffer()
        buffer.add(LogEntry(LogLevel.WARNING, "w", "store"))
        buffer.add(LogEntry(LogLevel.ERROR, "e", "worker"))
        buffer.add(LogEntry(LogLevel.CRITICAL, "c", "worker"))

        stats = buffer.get_stats()
        assert stats["total"] == 3
        assert stats["error_count"] == 2
        assert stats["warning_count"] == 1
        assert stats["by_source"] == {"store": 1, "worker": 2}

        buffer.clear()
        assert buffer.get_stats()["total"] == 0


class TestAppLogger:

    def test_metadata_reaches_buffer(self, caplog):
        logger = AppLogger("worker")
        with caplog.at_level("INFO", logger="imagegen.worker"):
            logger.info("Job claimed", job_id=7, project="demo")

        entry = get_log_buffer().get_recent(limit=1)[0]
        assert entry["message"] == "Job claimed"
        assert entry["source"] == "worker"
        assert entry["job_id"] == 7
        assert entry["metadata"] == {"job_id": 7, "project": "demo"}
        assert "Job claimed job_id=7 project=demo" in caplog.text
