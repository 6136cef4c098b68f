"""
Unit tests for SqlSafetyValidator

Tests rule-based statement checks:
- Destructive statements and stacked statements are blocking
- Writes are blocked unless write mode is enabled, including writes nested
  in a CTE and SELECT ... INTO
- JOIN without a condition and unbounded SELECT * only warn
"""

import pytest

from querypilot.validation.safety import (
    BlockingSafetyIssueError,
    SqlSafetyValidator,
    ensure_executable,
)


class TestBlockingIssues:
    """Test statements that must not run."""

    def test_select_is_safe(self, validator):
        report = validator.validate("SELECT id, amount FROM orders WHERE status = 'paid'")
        assert report.is_safe
        assert report.blocking_issues == []
        assert report.statement_types == ["SELECT"]

    @pytest.mark.parametrize("sql", ["DROP TABLE orders", "TRUNCATE orders", "ALTER TABLE orders ADD c int"])
    def test_destructive_statements(self, validator, sql):
        report = validator.validate(sql)
        assert not report.is_safe
        assert report.blocking_issues

    def test_destructive_allowed_in_write_mode(self):
        report = SqlSafetyValidator(allow_write=True).validate("DROP TABLE orders")
        assert report.is_safe

    def test_delete_without_where_blocks_in_write_mode(self):
        report = SqlSafetyValidator(allow_write=True).validate("DELETE FROM orders")
        assert not report.is_safe
        assert "WHERE" in report.blocking_issues[0]

    def test_update_requires_write_mode(self, validator):
        report = validator.validate("UPDATE orders SET status = 'void' WHERE id = 1")
        assert not report.is_safe
        assert "write mode" in report.blocking_issues[0]

    def test_update_allowed_in_write_mode(self):
        report = SqlSafetyValidator(allow_write=True).validate(
            "UPDATE orders SET status = 'void' WHERE id = 1"
        )
        assert report.is_safe

    def test_stacked_statements(self, validator):
        report = validator.validate("SELECT 1; DROP TABLE orders")
        assert not report.is_safe
        assert any("2 statements" in issue for issue in report.blocking_issues)

    def test_empty_statement(self, validator):
        report = validator.validate("   ")
        assert not report.is_safe

    def test_ensure_executable(self, validator):
        with pytest.raises(BlockingSafetyIssueError) as exc_info:
            ensure_executable(validator.validate("DROP TABLE orders"))
        assert exc_info.value.report.blocking_issues

    @pytest.mark.parametrize(
        "sql",
        [
            "WITH gone AS (DELETE FROM customers RETURNING *) SELECT * FROM gone",
            "WITH moved AS (UPDATE orders SET status = 'void' WHERE id = 1 RETURNING id) "
            "SELECT * FROM moved",
            "WITH added AS (INSERT INTO regions (name) VALUES ('西南') RETURNING id) "
            "SELECT id FROM added",
        ],
    )
    def test_data_modifying_cte(self, validator, sql):
        report = validator.validate(sql)
        assert not report.is_safe
        assert any("requires write mode" in issue for issue in report.blocking_issues)

    def test_data_modifying_cte_allowed_in_write_mode(self):
        report = SqlSafetyValidator(allow_write=True).validate(
            "WITH gone AS (DELETE FROM customers WHERE id = 2 RETURNING *) SELECT * FROM gone"
        )
        assert report.is_safe

    def test_select_into(self, validator):
        report = validator.validate("SELECT * INTO orders_backup FROM orders")
        assert not report.is_safe
        assert any("INTO" in issue for issue in report.blocking_issues)

    def test_read_only_cte_is_safe(self, validator):
        report = validator.validate(
            "WITH paid AS (SELECT * FROM orders WHERE status = 'paid') SELECT COUNT(*) FROM paid"
        )
        assert report.is_safe


class TestWarnings:
    """Test advisory warnings."""

    def test_join_without_condition(self, validator):
        report = validator.validate("SELECT * FROM orders JOIN customers LIMIT 10")
        assert report.is_safe
        assert any("cartesian" in warning for warning in report.warnings)

    def test_join_with_condition_is_clean(self, validator):
        report = validator.validate(
            "SELECT o.id FROM orders o JOIN customers c ON o.customer_id = c.id"
        )
        assert report.warnings == []

    def test_select_star_without_limit_on_large_table(self, validator):
        report = validator.validate("SELECT * FROM orders", {"orders": 250_000})
        assert report.is_safe
        assert "orders" in report.warnings[0]
        assert "250000" in report.warnings[0]

    def test_select_star_with_limit(self, validator):
        report = validator.validate("SELECT * FROM orders LIMIT 5", {"orders": 250_000})
        assert report.warnings == []

    def test_summary(self, validator):
        summary = validator.validate("DROP TABLE orders").summary()
        assert summary.startswith("BLOCKED")
