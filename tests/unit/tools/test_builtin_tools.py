"""
Unit tests for built-in tools

Tests discovery, validation, planning and assistant tools through the
executor, plus the canonical query block in submitted explanations.
"""

import json
from unittest.mock import MagicMock

import pytest

from querypilot.connectors.base import QueryError
from querypilot.discovery.knowledge import KnowledgeBase
from querypilot.tools import ToolContext, ToolExecutor
from querypilot.tools.builtin.assistant import MODIFICATION_NOTICE, render_solution_explanation


@pytest.fixture
def state(make_state):
    return make_state()


@pytest.fixture
def ctx(tool_services, state):
    return ToolContext(
        user_id="tester",
        correlation_id="corr-1",
        data_source_id=1,
        db_type="postgresql",
        state=state,
        services=tool_services,
    )


@pytest.fixture
def run(ctx):
    executor = ToolExecutor()

    async def _run(name, **arguments):
        return await executor.execute(name, arguments, ctx)

    return _run


class TestDiscoveryTools:
    """Test discovery tools rendering."""

    @pytest.mark.asyncio
    async def test_list_entities_table(self, run):
        result = await run("list_entities")
        assert result.success
        assert result.content.splitlines()[0].startswith("| name | type |")
        assert "| orders | table |" in result.content

    @pytest.mark.asyncio
    async def test_compass_lines(self, run):
        result = await run("get_database_compass")
        assert result.content.splitlines() == [
            "orders.customer_id -> customers.id",
            "customers.region_id -> regions.id",
        ]

    @pytest.mark.asyncio
    async def test_same_table_join(self, run):
        result = await run("find_join_path", start_table="orders", end_table="orders")
        assert "no JOIN is needed" in result.content

    @pytest.mark.asyncio
    async def test_sample_renders_nulls(self, run, sample_rows):
        sample_rows["regions"].append({"id": 3, "name": None})
        result = await run("sample_entity_data", entity="regions", limit=5)
        assert "| 3 | NULL |" in result.content

    @pytest.mark.asyncio
    async def test_cross_entity_search_without_matches(self, run):
        result = await run("cross_entity_search", keyword="zzz-not-there")
        payload = json.loads(result.content)
        assert payload["results"] == []
        assert "all text columns scanned" in payload["note"]

    @pytest.mark.asyncio
    async def test_entity_statistics(self, run):
        result = await run("get_entity_statistics", entity="orders", top_n=1)
        payload = json.loads(result.content)
        assert result.success
        assert payload["row_count"] == 3
        status = next(column for column in payload["columns"] if column["name"] == "status")
        assert status["top_values"] == [{"value": "paid", "count": 2}]

    @pytest.mark.asyncio
    async def test_related_knowledge_disabled(self, run):
        result = await run("search_related_knowledge", query="GMV")
        assert result.error_kind == "discovery_error"

    @pytest.mark.asyncio
    async def test_related_knowledge_rendering(self, run, discovery_service):
        knowledge_base = KnowledgeBase(persist_directory="unused")
        knowledge_base.collection = MagicMock()
        knowledge_base.collection.query.return_value = {
            "metadatas": [[
                {"keyword": "GMV", "description": "Paid order total", "source_type": "sql"},
                {"keyword": "order total per region", "example_query": "SELECT 1",
                 "source_type": "sql"},
            ]]
        }
        discovery_service.knowledge_base = knowledge_base

        result = await run("search_related_knowledge", query="GMV by region")

        assert "- **GMV**: Paid order total" in result.content
        assert "**Reference sql queries**" in result.content
        assert knowledge_base.collection.query.call_args.kwargs["n_results"] == 3

    @pytest.mark.asyncio
    async def test_related_knowledge_no_matches(self, run, discovery_service):
        knowledge_base = KnowledgeBase(persist_directory="unused")
        knowledge_base.collection = MagicMock()
        knowledge_base.collection.query.return_value = {"metadatas": [[]]}
        discovery_service.knowledge_base = knowledge_base

        result = await run("search_related_knowledge", query="churn")

        assert result.success
        assert result.content == "No knowledge base entries relate to 'churn'."


class TestValidationTools:
    """Test SQL validation and sampling tools."""

    @pytest.mark.asyncio
    async def test_validate_safe_sql_runs_explain(self, run, fake_connector):
        result = await run("validate_sql", sql="SELECT id FROM orders WHERE status = 'paid'")
        payload = json.loads(result.content)
        assert payload["is_safe"] is True
        assert fake_connector.executed[-1][0].startswith("EXPLAIN SELECT id FROM orders")

    @pytest.mark.asyncio
    async def test_validate_reports_large_table_warning(self, run):
        payload = json.loads((await run("validate_sql", sql="SELECT * FROM orders")).content)
        assert any("orders" in warning for warning in payload["warnings"])

    @pytest.mark.asyncio
    async def test_validate_blocking_skips_explain(self, run, fake_connector):
        payload = json.loads((await run("validate_sql", sql="DROP TABLE orders")).content)
        assert payload["is_safe"] is False
        assert not any(query.startswith("EXPLAIN") for query, _ in fake_connector.executed)
        assert "Fix every blocking issue" in payload["next_step"]

    @pytest.mark.asyncio
    async def test_validate_reports_database_rejection(self, run, fake_connector):
        async def reject(sql):
            raise QueryError('column "colour" does not exist')

        fake_connector.explain = reject
        payload = json.loads((await run("validate_sql", sql="SELECT colour FROM orders")).content)
        assert payload["is_safe"] is False
        assert any("colour" in issue for issue in payload["blocking_issues"])

    @pytest.mark.asyncio
    async def test_run_query_sample(self, run, fake_connector):
        result = await run("run_query_sample", sql="SELECT * FROM orders;")
        assert result.success
        assert "| paid |" in result.content
        assert fake_connector.executed[-1][0] == (
            "SELECT * FROM (SELECT * FROM orders) AS sample_sub LIMIT 5"
        )

    @pytest.mark.asyncio
    async def test_run_query_sample_rejects_writes(self, run):
        result = await run("run_query_sample", sql="DELETE FROM orders WHERE id = 1")
        assert result.error_kind == "tool_error"


class TestPlanningTools:
    """Test plan steps and intermediate data on the state."""

    @pytest.mark.asyncio
    async def test_plan_lifecycle(self, run, state):
        await run("add_plan_step", task="find revenue table", assigned_to="sql_agent")
        assert (await run("update_plan_step", step=0, status="in_progress")).success
        assert (await run("update_plan_step", step=0, status="completed", result="orders")).success
        assert state.plan[0].status == "completed"
        assert state.intermediate_results["step_0"] == "orders"

    @pytest.mark.asyncio
    async def test_invalid_transition_is_reported(self, run, state):
        await run("add_plan_step", task="t", assigned_to="sql_agent")
        result = await run("update_plan_step", step=0, status="completed")
        assert result.error_kind == "tool_error"
        assert state.plan[0].status == "pending"

    @pytest.mark.asyncio
    async def test_unknown_role_is_invalid(self, run):
        result = await run("add_plan_step", task="t", assigned_to="janitor")
        assert result.error_kind == "invalid_arguments"

    @pytest.mark.asyncio
    async def test_blueprint(self, run, state):
        await run("save_blueprint", target_tables=["orders", "regions"], join_logic="via customers")
        assert state.intermediate_results["blueprint"] == {
            "target_tables": ["orders", "regions"],
            "join_logic": "via customers",
        }

    @pytest.mark.asyncio
    async def test_save_intermediate_data(self, run, state):
        await run("save_intermediate_data", key="region_ids", data=[1, 2])
        assert state.intermediate_results["region_ids"] == [1, 2]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "key",
        ['tool:list_entities:{}', "step_0", "blueprint"],
    )
    async def test_reserved_keys_are_refused(self, run, state, key):
        state.record_result(key, "original")

        result = await run("save_intermediate_data", key=key, data="overwritten")

        assert result.error_kind == "tool_error"
        assert "reserved" in result.content
        assert state.intermediate_results[key] == "original"

    @pytest.mark.asyncio
    async def test_step_like_names_are_allowed(self, run, state):
        await run("save_intermediate_data", key="step_totals", data={"a": 1})
        assert state.intermediate_results["step_totals"] == {"a": 1}


class TestAssistantTools:
    """Test time, clarification and submission tools."""

    @pytest.mark.asyncio
    async def test_current_time_in_timezone(self, run):
        payload = json.loads((await run("get_current_time", timezone="Asia/Shanghai")).content)
        assert payload["timezone"] == "Asia/Shanghai"
        assert payload["iso"].endswith("+08:00")

    @pytest.mark.asyncio
    async def test_unknown_timezone(self, run):
        result = await run("get_current_time", timezone="Mars/Olympus")
        assert result.error_kind == "tool_error"

    @pytest.mark.asyncio
    async def test_clarify_intent_payload(self, run):
        result = await run("clarify_intent", question="Which region?", options=["华东", "华北"])
        assert result.data == {"question": "Which region?", "options": ["华东", "华北"]}

    @pytest.mark.asyncio
    async def test_submit_sql_solution(self, run):
        result = await run(
            "submit_sql_solution",
            sql="SELECT 1",
            explanation="Counts rows.\n\n```\nSELECT 2\n```",
        )
        solution = result.data
        assert solution.sql == "SELECT 1"
        assert solution.language == "sql"
        assert solution.explanation == "Counts rows.\n\n```sql\nSELECT 1\n```"

    @pytest.mark.asyncio
    async def test_modification_notice(self, run):
        result = await run(
            "submit_sql_solution",
            sql="UPDATE orders SET status = 'void' WHERE id = 1",
            explanation="Voids order 1.",
            risk_level="modification",
        )
        assert result.data.explanation.endswith(MODIFICATION_NOTICE)


class TestRenderSolutionExplanation:
    """Test the canonical fenced query block."""

    def test_appends_block_when_missing(self):
        assert render_solution_explanation("Total revenue.", "SELECT 1", "sql") == (
            "Total revenue.\n\n```sql\nSELECT 1\n```"
        )

    def test_replaces_model_block(self):
        text = "Here:\n\n```sql\nSELECT  1\n```\n\nDone."
        assert render_solution_explanation(text, "SELECT 1", "sql") == (
            "Here:\n\n```sql\nSELECT 1\n```\n\nDone."
        )

    def test_keeps_single_block_when_model_wrote_several(self):
        text = "A\n```sql\nSELECT 1\n```\nB\n```sql\nSELECT 1\n```"
        rendered = render_solution_explanation(text, "SELECT 1", "sql")
        assert rendered.count("```sql") == 1

    def test_unrelated_blocks_are_kept(self):
        text = "Output looks like:\n```json\n{\"total\": 3}\n```"
        rendered = render_solution_explanation(text, "status:500", "lucene")
        assert "```json" in rendered
        assert rendered.endswith("```lucene\nstatus:500\n```")
