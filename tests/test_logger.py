"""
Tests for logger functionality.
"""

import threading

import pytest

from jobmatch.logger import StructuredLogger, get_logger, reset_logger


@pytest.fixture
def quiet_logger(tmp_path):
    return StructuredLogger(name="jobmatch-test", log_dir=tmp_path, enable_console=False)


class TestStructuredLogger:
    """Test structured logging functionality."""

    def test_logger_creation(self, quiet_logger):
        """Logger should be created with default settings."""
        assert quiet_logger.logger.name == "jobmatch-test"
        assert quiet_logger.metrics["oracle_calls"] == 0
        assert quiet_logger.logger.propagate is False

    def test_log_methods(self, quiet_logger):
        """All log level methods should work."""
        quiet_logger.debug("Debug message")
        quiet_logger.info("Info message")
        quiet_logger.warning("Warning message")
        quiet_logger.error("Error message")
        quiet_logger.critical("Critical message")

    def test_log_with_context(self, tmp_path, quiet_logger):
        """Context kwargs are appended to the message as JSON."""
        quiet_logger.info("Scored pair", candidate_id="c1", score=67)

        content = next(tmp_path.glob("*.log")).read_text()
        assert 'Scored pair | Context: {"candidate_id": "c1", "score": 67}' in content

    def test_context_with_unserializable_values(self, tmp_path, quiet_logger):
        quiet_logger.info("Tuple key", key=("match", "c1", "j1"), when=object())
        assert "Tuple key" in next(tmp_path.glob("*.log")).read_text()

    def test_oracle_metrics(self, quiet_logger):
        """Oracle calls, successes and failures are counted."""
        for _ in range(4):
            quiet_logger.record_oracle_call()
        for _ in range(3):
            quiet_logger.record_oracle_success()
        quiet_logger.record_oracle_failure("Timeout")
        quiet_logger.record_fallback()

        metrics = quiet_logger.get_metrics()

        assert metrics["oracle_calls"] == 4
        assert metrics["oracle_failures"] == 1
        assert metrics["fallbacks_used"] == 1
        assert metrics["errors_by_type"]["Timeout"] == 1
        assert metrics["oracle_success_rate"] == pytest.approx(0.75)

    def test_cache_and_upsert_metrics(self, quiet_logger):
        quiet_logger.record_cache(True)
        quiet_logger.record_cache(False)
        quiet_logger.record_cache(False)
        quiet_logger.record_upserts(created=5, updated=2)
        quiet_logger.record_error("PersistenceError")

        metrics = quiet_logger.get_metrics()

        assert metrics["cache_hit_rate"] == pytest.approx(0.333, rel=0.01)
        assert (metrics["matches_created"], metrics["matches_updated"]) == (5, 2)
        assert metrics["errors_by_type"] == {"PersistenceError": 1}

    def test_rates_without_data(self, quiet_logger):
        metrics = quiet_logger.get_metrics()
        assert metrics["oracle_success_rate"] == 0.0
        assert metrics["cache_hit_rate"] == 0.0

    def test_metrics_are_thread_safe(self, quiet_logger):
        def work():
            for _ in range(1000):
                quiet_logger.record_oracle_call()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert quiet_logger.metrics["oracle_calls"] == 8000

    def test_metrics_summary(self, tmp_path, quiet_logger):
        quiet_logger.record_error("CandidateNotFoundError")
        quiet_logger.log_metrics_summary()

        content = next(tmp_path.glob("*.log")).read_text()
        assert "Matching Session Metrics" in content
        assert "CandidateNotFoundError: 1" in content

    def test_log_file_creation(self, tmp_path, quiet_logger):
        """One dated file per logger name in the log directory."""
        quiet_logger.info("Test message")

        log_files = list(tmp_path.glob("jobmatch-test_*.log"))
        assert len(log_files) == 1
        assert "Test message" in log_files[0].read_text()

    def test_set_level(self, quiet_logger):
        quiet_logger.set_level("warning")
        assert quiet_logger.logger.level == 30


class TestGlobalLogger:
    """Test global logger singleton."""

    @pytest.fixture(autouse=True)
    def restore_global(self):
        import jobmatch.logger as logger_module

        saved = logger_module._global_logger
        yield
        logger_module._global_logger = saved

    def test_get_logger_singleton(self, tmp_path):
        """get_logger should return same instance."""
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger2 = get_logger()

        assert logger1 is logger2

    def test_reset_logger(self, tmp_path):
        """reset_logger should create new instance."""
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger1.record_oracle_call()

        reset_logger()

        logger2 = get_logger(log_dir=tmp_path, enable_console=False)

        assert logger2 is not logger1
        assert logger2.metrics["oracle_calls"] == 0
