import pytest

from querypilot.prompts.loader import PromptLoader


def test_prompt_loader_strips_front_matter():
    loader = PromptLoader()
    content = loader.load("agents/supervisor.md")
    assert not content.startswith("---")
    assert "discovery_agent" in content
    assert loader.get_metadata("agents/supervisor.md")["name"] == "supervisor"


def test_prompt_loader_renders_template():
    loader = PromptLoader()
    rendered = loader.render(
        "agents/supervisor.md", message="有哪些表？", db_type="postgresql"
    )
    assert "postgresql" in rendered
    assert "有哪些表？" in rendered
    assert "{{" not in rendered


def test_discovery_skill_switches_on_search_engine():
    loader = PromptLoader()
    search = loader.render(
        "skills/discovery.md", search_engine=True, semantic_search=False, knowledge_search=False
    )
    sql = loader.render(
        "skills/discovery.md", search_engine=False, semantic_search=True, knowledge_search=False
    )
    assert "Indices play the role of tables" in search
    assert "Indices play the role of tables" not in sql
    assert "search_related_tables" in sql
    assert "get_entity_statistics" in sql
    assert "search_related_knowledge" not in sql


def test_discovery_skill_mentions_knowledge_base_when_enabled():
    loader = PromptLoader()
    for search_engine in (True, False):
        rendered = loader.render(
            "skills/discovery.md",
            search_engine=search_engine,
            semantic_search=False,
            knowledge_search=True,
        )
        assert "search_related_knowledge" in rendered


def test_missing_variable_is_an_error(tmp_path):
    (tmp_path / "greeting.md").write_text("---\nname: greeting\n---\nHello {{ name }}")
    loader = PromptLoader(tmp_path)
    assert loader.render("greeting.md", name="Ada") == "Hello Ada"
    with pytest.raises(Exception):
        loader.render("greeting.md")


def test_missing_prompt_raises_file_not_found(tmp_path):
    loader = PromptLoader(tmp_path)
    with pytest.raises(FileNotFoundError):
        loader.load("nope.md")
    with pytest.raises(FileNotFoundError):
        loader.render("nope.md")
