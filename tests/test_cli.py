from typer.testing import CliRunner

from stockline.cli import app, schema_statements

runner = CliRunner()


def test_normalize_command():
    result = runner.invoke(app, ["normalize", "https://tags.example.com/rb-10-02-16.jpg"])

    assert result.exit_code == 0
    assert "RB-10-02-16" in result.output


def test_normalize_command_rejects_bad_input():
    result = runner.invoke(app, ["normalize", "hello"])

    assert result.exit_code == 1
    assert "Invalid product code" in result.output


def test_schema_orders_parents_before_children():
    statements = schema_statements()
    tables = [s.split()[2] for s in statements if s.startswith("CREATE TABLE")]

    assert tables.index("products_catalog") < tables.index("inventory_movements")
    assert tables.index("locations") < tables.index("inventory_on_hand_by_location")
    assert any("ck_location_on_hand_non_negative" in s for s in statements)


def test_init_db_dry_run_prints_sql_without_connecting():
    result = runner.invoke(app, ["init-db", "--dry-run"])

    assert result.exit_code == 0
    assert "DROP TABLE IF EXISTS inventory_movements CASCADE" in result.output
    assert "CREATE TABLE locations" in result.output
