"""
Tests for structured logging helpers.
"""

import logging

import structlog

from purchasekit.observability.logging import (
    add_app_context,
    drop_unset_transaction_context,
    log_context,
    setup_logging,
)


class TestLogContext:
    """Tests for log_context."""

    def test_binds_and_unbinds(self):
        with log_context(transaction_identifier="1000000001", product_id="pro_upgrade"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["transaction_identifier"] == "1000000001"
            assert bound["product_id"] == "pro_upgrade"

        bound = structlog.contextvars.get_contextvars()
        assert "transaction_identifier" not in bound
        assert "product_id" not in bound

    def test_unbinds_on_exception(self):
        try:
            with log_context(transaction_identifier="1000000001"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert "transaction_identifier" not in structlog.contextvars.get_contextvars()

    def test_nested_context_restores_outer_values(self):
        with log_context(transaction_identifier="1000000001", product_id="pro_upgrade"):
            with log_context(transaction_identifier="1000000002"):
                assert structlog.contextvars.get_contextvars()["transaction_identifier"] == (
                    "1000000002"
                )

            bound = structlog.contextvars.get_contextvars()
            assert bound["transaction_identifier"] == "1000000001"
            assert bound["product_id"] == "pro_upgrade"


class TestDropUnsetTransactionContext:
    def test_none_transaction_fields_removed(self):
        event = drop_unset_transaction_context(
            None,
            "info",
            {"event": "transaction_finished", "transaction_identifier": None, "state": "failed"},
        )

        assert "transaction_identifier" not in event
        assert event["state"] == "failed"

    def test_other_none_fields_kept(self):
        event = drop_unset_transaction_context(None, "info", {"event": "x", "error": None})
        assert event == {"event": "x", "error": None}


class TestAppContext:
    def test_adds_service_and_version(self):
        event = add_app_context(None, "info", {"event": "purchase_recorded"})

        assert event["service"] == "purchasekit"
        assert event["version"] == "0.1.0"


class TestSetupLogging:
    def test_logger_routes_through_stdlib(self, caplog):
        caplog.set_level(logging.INFO)
        setup_logging()

        logger = structlog.get_logger("purchasekit.tests")
        logger.info("purchase_recorded", product_id="pro_upgrade")

        assert "purchase_recorded" in caplog.text
        assert "pro_upgrade" in caplog.text
