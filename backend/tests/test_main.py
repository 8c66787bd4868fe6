"""Tests for the operator command line."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

import main
from modules.subscriptions import Subscription, SubscriptionRepository


JUNE_1 = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def cli(container):
    """Run main() against the test container."""

    def run(*argv: str) -> int:
        with patch("main.ServiceContainer", return_value=container):
            return main.main(list(argv))

    return run


def seed_subscription(store, subscription_id: str, customer_id: str = "cust-001") -> None:
    subscription = Subscription(
        subscription_id=subscription_id,
        customer_id=customer_id,
        plan_name="Business Monthly",
        amount=Decimal("100.00"),
        start_date=JUNE_1,
        next_billing_date=JUNE_1,
    )
    asyncio.run(SubscriptionRepository(store).create(subscription))


class TestParser:
    def test_requires_a_command(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args([])

    def test_as_of_parsing(self):
        assert main.parse_as_of(None) is None
        assert main.parse_as_of("2024-06-01") == JUNE_1


class TestCommands:
    def test_billing_cycle(self, cli, store, capsys):
        seed_subscription(store, "sub-1")

        assert cli("billing-cycle", "--as-of", "2024-06-02") == 0

        out = capsys.readouterr().out
        assert "Invoiced: 1" in out
        assert "INV-" in out

    def test_billing_cycle_with_failures(self, cli, store, capsys):
        seed_subscription(store, "sub-bad", customer_id="cust-unknown")

        assert cli("billing-cycle", "--as-of", "2024-06-02") == 1
        assert "sub-bad" in capsys.readouterr().out

    def test_overdue_empty(self, cli, capsys):
        assert cli("overdue") == 0
        assert "No overdue invoices." in capsys.readouterr().out

    def test_disputes_due_empty(self, cli, capsys):
        assert cli("disputes-due", "--as-of", "2024-06-01T00:00:00Z") == 0
        assert "No disputes due for review." in capsys.readouterr().out

    def test_audit_empty(self, cli, capsys):
        assert cli("audit", "INV-404") == 0
        assert "No audit entries" in capsys.readouterr().out

    def test_bad_date_exits_2(self, cli, capsys):
        assert cli("overdue", "--as-of", "not-a-date") == 2
        assert "Error" in capsys.readouterr().out
