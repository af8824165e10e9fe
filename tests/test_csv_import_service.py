"""Domain tests for the CSV import service and session."""

import asyncio
import json
import zipfile
from decimal import Decimal

import pytest

from budgetbridge.domain.csv_import import (
    DONE,
    IDLE,
    MAPPED,
    PARSED,
    PREVIEWED,
    ImportSession,
    is_backup_archive,
    parse_csv_text,
    read_import_file,
)
from budgetbridge.domain.errors import (
    ImportFileError,
    ImportStateError,
    MappingError,
    MetadataError,
    ReconciliationError,
)
from budgetbridge.domain.import_records import CREATE, ERROR, SKIPPED, SUCCESS
from budgetbridge.domain.materializer import CANCELLED


def balances(account_service):
    return {acc.name: acc.balance for acc in asyncio.run(account_service.list_accounts())}


class TestReadImportFile:
    """File reading and delimiter detection."""

    def test_reads_semicolon_file_with_bom(self, tmp_path):
        path = tmp_path / "bank.csv"
        path.write_bytes("\ufeffDate;Amount;Account\n01/02/2024;-1.234,56;Nubank\n\n".encode("utf-8"))

        parsed = read_import_file(path)

        assert parsed.headers == ["Date", "Amount", "Account"]
        assert parsed.records == [{"Date": "01/02/2024", "Amount": "-1.234,56", "Account": "Nubank"}]

    def test_comma_decimals_do_not_confuse_the_sniffer(self):
        parsed = parse_csv_text("Date;Amount\n2024-01-01;10,50\n2024-01-02;3,00\n", "x.csv")
        assert parsed.headers == ["Date", "Amount"]
        assert parsed.records[0]["Amount"] == "10,50"

    def test_empty_and_missing_files(self, tmp_path, write_csv):
        with pytest.raises(ImportFileError, match="empty"):
            read_import_file(write_csv("   \n"))
        with pytest.raises(ImportFileError, match="File not found"):
            read_import_file(tmp_path / "nope.csv")

    def test_zip_uses_known_csv_name(self, tmp_path):
        path = tmp_path / "export.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("notes.csv", "a,b\n" + "1,2\n" * 50)
            archive.writestr("firefly_export.csv", "date,amount,account\n2024-01-01,1,A\n")

        parsed = read_import_file(path)

        assert parsed.source == "firefly_export.csv"
        assert parsed.headers == ["date", "amount", "account"]

    def test_zip_without_csv(self, tmp_path):
        path = tmp_path / "empty.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("readme.txt", "hello")
        with pytest.raises(ImportFileError, match="no CSV"):
            read_import_file(path)

    def test_corrupt_zip(self, tmp_path):
        path = tmp_path / "broken.zip"
        path.write_bytes(b"PK\x03\x04 not really a zip")
        with pytest.raises(ImportFileError):
            read_import_file(path)

    def test_backup_archive_is_detected(self, tmp_path):
        path = tmp_path / "backup.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("manifest.json", json.dumps({"appName": "budgetbridge"}))
            archive.writestr("accounts.csv", "id,name\n")

        assert is_backup_archive(path)
        assert read_import_file(path).is_backup
        assert not is_backup_archive(tmp_path / "missing.zip")


class TestSessionStates:
    """The import session state machine."""

    def test_happy_path_states(self, temp_db, settings, fixtures_dir):
        session = ImportSession(temp_db, settings)
        assert session.state == IDLE

        session.load(fixtures_dir / "firefly_export.csv")
        assert session.state == PARSED
        session.confirm_mapping()
        assert session.state == MAPPED
        asyncio.run(session.preview())
        assert session.state == PREVIEWED
        asyncio.run(session.run_import())
        assert session.state == DONE

    def test_unreadable_file_returns_to_idle(self, temp_db, write_csv, fixtures_dir):
        session = ImportSession(temp_db)
        session.load(fixtures_dir / "firefly_export.csv")
        with pytest.raises(ImportFileError):
            session.load(write_csv(""))
        assert session.state == IDLE

    def test_incomplete_mapping_stays_parsed(self, temp_db, write_csv):
        session = ImportSession(temp_db)
        session.load(write_csv("When,Amount,Account\n2024-01-01,1,A\n"))

        with pytest.raises(MappingError) as excinfo:
            session.confirm_mapping()

        assert excinfo.value.missing == ["date"]
        assert "Missing required column mappings: date" in str(excinfo.value)
        assert session.state == PARSED
        session.confirm_mapping(overrides={"date": "When"})
        assert session.state == MAPPED

    def test_out_of_order_calls_raise(self, temp_db, write_csv):
        session = ImportSession(temp_db)
        with pytest.raises(ImportStateError):
            session.confirm_mapping()
        with pytest.raises(ImportStateError):
            asyncio.run(session.preview())
        session.load(write_csv("Date,Amount,Account,Currency\n2024-01-01,1,A,EUR\n"))
        with pytest.raises(ImportStateError):
            asyncio.run(session.run_import())

    def test_import_requires_a_pending_row(self, import_service, write_csv):
        session = asyncio.run(
            import_service.preview_file(write_csv("Date,Amount,Account,Currency\n2024-01-01,abc,A,EUR\n"))
        )
        with pytest.raises(ImportStateError, match="Nothing to import"):
            asyncio.run(session.run_import())
        assert session.state == PREVIEWED

    def test_backup_archive_is_not_imported(self, temp_db, tmp_path):
        path = tmp_path / "backup.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("manifest.json", json.dumps({"appName": "budgetbridge"}))
        session = ImportSession(temp_db)
        with pytest.raises(ImportFileError, match="backup archive"):
            session.load(path)
        assert session.state == IDLE


class TestFireflyImport:
    """End-to-end import of a Firefly III style export."""

    def test_preview_writes_nothing(self, import_service, account_service, fixtures_dir):
        session = asyncio.run(import_service.preview_file(fixtures_dir / "firefly_export.csv"))

        assert [(e.name, e.action, e.balance) for e in session.account_preview] == [
            ("Main Checking", CREATE, Decimal("1000.00")),
            ("Savings", CREATE, Decimal("250.00")),
            ("Travel Card USD", CREATE, Decimal("0")),
        ]
        assert session.account_preview[2].currency == "USD"
        assert session.pending_count == 4
        assert session.new_categories == ["Food", "Income"]
        assert session.new_tags == ["weekly", "food"]
        assert asyncio.run(account_service.list_accounts()) == []

    def test_import(self, import_service, account_service, transaction_service, category_service, fixtures_dir):
        result = asyncio.run(import_service.import_file(fixtures_dir / "firefly_export.csv"))

        assert result.total_rows == 6
        assert result.succeeded == 4
        assert result.skipped == 2
        assert result.failed == 0
        assert result.transfers == 2
        assert sorted(result.accounts_created) == ["Main Checking", "Savings", "Travel Card USD"]
        assert sorted(result.categories_created) == ["Food", "Income"]
        assert result.errors == []
        assert balances(account_service) == {
            "Main Checking": Decimal("2557.50"),
            "Savings": Decimal("550.00"),
            "Travel Card USD": Decimal("110.00"),
        }
        # Two single-leg rows plus two legs for each transfer
        assert len(asyncio.run(transaction_service.list_transactions())) == 6
        assert {c.name for c in asyncio.run(category_service.list_categories())} == {"Food", "Income"}

    def test_reimport_preview_resets_opening_balances(self, import_service, fixtures_dir):
        asyncio.run(import_service.import_file(fixtures_dir / "firefly_export.csv"))
        session = asyncio.run(import_service.preview_file(fixtures_dir / "firefly_export.csv"))
        # Balances moved with the first import's transactions; the file still
        # carries the opening balances, so those accounts would be reset
        preview = {entry.name: entry for entry in session.account_preview}
        assert {name: entry.action for name, entry in preview.items()} == {
            "Main Checking": "update",
            "Savings": "update",
            "Travel Card USD": "no_change",
        }
        assert preview["Main Checking"].balance == Decimal("1000.00")
        assert preview["Savings"].balance == Decimal("250.00")


class TestScenarios:
    """Behaviour of mixed and failing batches."""

    def test_withdrawal_and_deposit_cancel_out(self, import_service, account_service, write_csv):
        existing = asyncio.run(account_service.create_account("Nubank", "BRL", Decimal("100")))
        path = write_csv(
            "type,source_name,destination_name,amount,currency_code,date\n"
            "withdrawal,Nubank,,-50.00,BRL,2024-01-01\n"
            "deposit,,Nubank,50.00,BRL,2024-01-02\n"
        )

        result = asyncio.run(import_service.import_file(path))

        assert result.succeeded == 2
        account = asyncio.run(account_service.get_account(existing))
        assert account.balance == Decimal("100")

    def test_bad_row_does_not_stop_batch(self, import_service, account_service, fixtures_dir):
        overrides = {
            "date": "Data",
            "description": "Descrição",
            "amount": "Valor",
            "account": "Conta",
            "currency_code": "Moeda",
        }
        session = asyncio.run(import_service.preview_file(fixtures_dir / "bank_semicolon.csv", overrides))
        result = asyncio.run(session.run_import())

        assert [row.import_status for row in session.rows] == [SUCCESS, SUCCESS, ERROR]
        assert result.failed == 1
        assert result.errors == ["Row 4: Could not parse amount 'abc'"]
        assert balances(account_service) == {"Nubank": Decimal("3765.44")}

    def test_progress_is_reported(self, import_service, fixtures_dir):
        session = asyncio.run(import_service.preview_file(fixtures_dir / "firefly_export.csv"))
        seen = []
        asyncio.run(session.run_import(progress=lambda done, total: seen.append((done, total))))
        assert seen[-1] == (4, 4)

    def test_cancel_before_transactions(self, import_service, transaction_service, fixtures_dir):
        session = asyncio.run(import_service.preview_file(fixtures_dir / "firefly_export.csv"))

        async def run():
            cancel = asyncio.Event()
            cancel.set()
            return await session.run_import(cancel_event=cancel)

        result = asyncio.run(run())

        assert result.cancelled
        assert result.skipped == 6
        assert {row.error_message for row in session.rows if row.kind != "opening_balance"} == {CANCELLED}
        assert asyncio.run(transaction_service.list_transactions()) == []
        assert session.state == DONE

    def test_account_failure_aborts_before_transactions(self, import_service, transaction_service, fixtures_dir):
        session = asyncio.run(import_service.preview_file(fixtures_dir / "firefly_export.csv"))

        async def broken_create(*args, **kwargs):
            raise RuntimeError("store unavailable")

        session.account_service.create_account = broken_create

        with pytest.raises(ReconciliationError) as excinfo:
            asyncio.run(session.run_import())

        assert len(excinfo.value.errors) == 3
        assert asyncio.run(transaction_service.list_transactions()) == []
        assert all(row.import_status == SKIPPED for row in session.rows)
        assert session.state == DONE

    def test_metadata_failure_aborts_before_transactions(self, import_service, transaction_service, fixtures_dir):
        session = asyncio.run(import_service.preview_file(fixtures_dir / "firefly_export.csv"))

        async def broken_create(name):
            raise RuntimeError("store unavailable")

        session.tag_service.create_tag = broken_create

        with pytest.raises(MetadataError) as excinfo:
            asyncio.run(session.run_import())

        assert len(excinfo.value.errors) == 2
        assert asyncio.run(transaction_service.list_transactions()) == []
        assert session.result.skipped == 6

    def test_default_currency(self, import_service, account_service, write_csv):
        path = write_csv("Date,Amount,Account\n2024-01-01,-5,Wallet\n")
        result = asyncio.run(import_service.import_file(path, default_currency="brl"))
        assert result.succeeded == 1
        (account,) = asyncio.run(account_service.list_accounts())
        assert account.currency == "BRL"
