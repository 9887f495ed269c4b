"""
Unit tests for retry logic with exponential backoff

Tests verify:
- Backoff calculation and jitter bounds
- Exception filtering by type and by SQLSTATE
- Retry callbacks
"""

from unittest.mock import Mock, patch

import pyodbc
import pytest

from src.utils.retry import (
    backoff_delay,
    is_retryable_db_exception,
    retry_database_operation,
    retry_with_backoff,
)


class SerializationFailure(Exception):
    """Stand-in for a psycopg2 error carrying a pgcode"""

    pgcode = "40001"


class UniqueViolation(Exception):
    pgcode = "23505"


class TestBackoffDelay:
    """Test backoff_delay calculation"""

    def test_exponential_growth_without_jitter(self):
        delays = [backoff_delay(attempt, 1.0, jitter=False) for attempt in range(4)]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        assert backoff_delay(10, 1.0, max_delay=15.0, jitter=False) == 15.0

    def test_jitter_stays_within_25_percent(self):
        for _ in range(50):
            delay = backoff_delay(1, 1.0)
            assert 1.5 <= delay <= 2.5

    def test_jitter_never_below_floor(self):
        assert backoff_delay(0, 0.01) >= 0.1


class TestRetryWithBackoff:
    """Test retry_with_backoff decorator"""

    def test_success_on_first_attempt(self):
        """Test function succeeds on first attempt without retries"""
        mock_func = Mock(return_value="success")
        decorated = retry_with_backoff(max_retries=3)(mock_func)

        assert decorated() == "success"
        assert mock_func.call_count == 1

    @patch('src.utils.retry.time.sleep')
    def test_success_after_retries(self, mock_sleep):
        """Test function succeeds after transient failures"""
        mock_func = Mock(side_effect=[
            ConnectionError("Connection failed"),
            ConnectionError("Connection failed"),
            "success"
        ])
        decorated = retry_with_backoff(max_retries=3, jitter=False)(mock_func)

        assert decorated() == "success"
        assert mock_func.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch('src.utils.retry.time.sleep')
    def test_max_retries_exceeded(self, mock_sleep):
        """Test the last error propagates once retries run out"""
        mock_func = Mock(side_effect=ConnectionError("Persistent error"))
        decorated = retry_with_backoff(max_retries=2)(mock_func)

        with pytest.raises(ConnectionError, match="Persistent error"):
            decorated()

        # initial + 2 retries
        assert mock_func.call_count == 3
        assert mock_sleep.call_count == 2

    def test_retryable_exceptions_filter(self):
        """Test only specified exceptions are retried"""
        mock_func = Mock(side_effect=ValueError("Not retryable"))
        decorated = retry_with_backoff(
            max_retries=3,
            retryable_exceptions=(ConnectionError, TimeoutError)
        )(mock_func)

        with pytest.raises(ValueError, match="Not retryable"):
            decorated()

        assert mock_func.call_count == 1

    @patch('src.utils.retry.time.sleep')
    def test_on_retry_callback_called(self, mock_sleep):
        """Test on_retry receives (attempt, exception, delay)"""
        mock_callback = Mock()
        mock_func = Mock(side_effect=[ConnectionError("Error 1"), "success"])
        decorated = retry_with_backoff(max_retries=3, on_retry=mock_callback)(mock_func)

        decorated()

        attempt, exception, delay = mock_callback.call_args.args
        assert attempt == 1
        assert isinstance(exception, ConnectionError)
        assert isinstance(delay, float)

    @patch('src.utils.retry.time.sleep')
    def test_on_retry_callback_exception_handled(self, mock_sleep):
        """Test exception in callback doesn't break retry logic"""
        mock_callback = Mock(side_effect=Exception("Callback error"))
        mock_func = Mock(side_effect=[ConnectionError("Error"), "success"])
        decorated = retry_with_backoff(max_retries=2, on_retry=mock_callback)(mock_func)

        assert decorated() == "success"

    def test_preserves_function_name(self):
        @retry_with_backoff()
        def fetch_members_page():
            return []

        assert fetch_members_page.__name__ == "fetch_members_page"


class TestIsRetryableDbException:
    """Test is_retryable_db_exception function"""

    @pytest.mark.parametrize("error", [
        pyodbc.OperationalError("08S01", "[08S01] Communication link failure"),
        pyodbc.Error("HYT00", "[HYT00] Query timeout expired"),
        pyodbc.Error("08001", "[08001] Client unable to establish connection"),
        SerializationFailure("could not serialize access"),
    ])
    def test_transient_sqlstates_retryable(self, error):
        assert is_retryable_db_exception(error) is True

    @pytest.mark.parametrize("error", [
        pyodbc.ProgrammingError("42S02", "[42S02] Invalid object name 'dbo.wgcterceiros'"),
        UniqueViolation("duplicate key value violates unique constraint"),
    ])
    def test_permanent_sqlstates_not_retryable(self, error):
        assert is_retryable_db_exception(error) is False

    @pytest.mark.parametrize("error", [
        ConnectionError("Connection failed"),
        TimeoutError("Operation timed out"),
        Exception("Connection reset by peer"),
        Exception("Broken pipe"),
        Exception("Deadlock found when trying to get lock"),
        Exception("Lock wait timeout exceeded"),
    ])
    def test_transient_messages_retryable(self, error):
        assert is_retryable_db_exception(error) is True

    @pytest.mark.parametrize("error", [
        Exception("Syntax error in SQL statement"),
        ValueError("Invalid column name"),
        Exception("NOT NULL constraint failed"),
    ])
    def test_other_errors_not_retryable(self, error):
        assert is_retryable_db_exception(error) is False

    def test_case_insensitive_matching(self):
        assert is_retryable_db_exception(Exception("CONNECTION FAILED")) is True
        assert is_retryable_db_exception(Exception("DEADLOCK DETECTED")) is True


class TestRetryDatabaseOperation:
    """Test retry_database_operation decorator"""

    @patch('src.utils.retry.time.sleep')
    def test_retries_transient_driver_error(self, mock_sleep):
        mock_func = Mock(side_effect=[
            pyodbc.OperationalError("08S01", "Communication link failure"),
            "success",
        ])
        decorated = retry_database_operation(max_retries=3)(mock_func)

        assert decorated() == "success"
        assert mock_func.call_count == 2

    def test_does_not_retry_constraint_violation(self):
        mock_func = Mock(side_effect=UniqueViolation("duplicate key"))
        decorated = retry_database_operation(max_retries=3)(mock_func)

        with pytest.raises(UniqueViolation):
            decorated()

        assert mock_func.call_count == 1

    @patch('src.utils.retry.time.sleep')
    def test_passes_arguments_through(self, mock_sleep):
        calls = []

        def fetch_page(offset, limit=10):
            calls.append((offset, limit))
            if len(calls) == 1:
                raise ConnectionError("Connection failed")
            return f"page {offset}+{limit}"

        decorated = retry_database_operation(max_retries=2)(fetch_page)

        assert decorated(200, limit=100) == "page 200+100"
        assert calls == [(200, 100), (200, 100)]
