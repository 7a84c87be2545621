"""
Terminal CLI tests (local-only commands, no server needed).
"""

from click.testing import CliRunner

from pos_terminal.cli import cli
from pos_terminal.local_store import LocalStore
from pos_terminal.models import PendingSale


def _seed(path):
    store = LocalStore(path)
    sale_id = store.save_pending_sale(PendingSale(
        local_id="11111111-2222-3333-4444-555555555555",
        items=[{"product_id": 1, "quantity": 1, "price_cents": 1000}],
        subtotal_cents=1000,
        tax_cents=83,
        discount_cents=0,
        total_cents=1083,
        payment_method="CASH",
        amount_paid_cents=1100,
        change_due_cents=17,
    ))
    store.mark_sale_sync_failed(sale_id, "Connection refused")
    store.close()


def test_pending_lists_queued_sales(tmp_path):
    path = str(tmp_path / "terminal.sqlite3")
    _seed(path)

    result = CliRunner().invoke(cli, ["pending"], env={"POS_LOCAL_DB": path})

    assert result.exit_code == 0, result.output
    assert "11111111-2222-3333-4444-555555555555" in result.output
    assert "10.83" in result.output
    assert "failed" in result.output
    assert "Connection refused" in result.output


def test_pending_empty(tmp_path):
    result = CliRunner().invoke(cli, ["pending"], env={"POS_LOCAL_DB": str(tmp_path / "empty.sqlite3")})
    assert result.exit_code == 0
    assert "No pending sales." in result.output


def test_logs_newest_first(tmp_path):
    path = str(tmp_path / "terminal.sqlite3")
    _seed(path)

    result = CliRunner().invoke(cli, ["logs", "--limit", "5"], env={"POS_LOCAL_DB": path})

    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert len(lines) == 1
    assert "OK   sale/create" in lines[0]
