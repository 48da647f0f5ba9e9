from django_ai_rag.llm.prompt import Prompt


def test_prompt_missing_token_renders_placeholder():
    """Test a placeholder without a token is left in place."""
    p = Prompt("Context: {context}")
    assert p._tokens == {}
    assert p == "Context: {context}"


def test_prompt_tokens_on_creation():
    """Test tokens supplied at creation are rendered."""
    p = Prompt("Answer from [{count}] sources", count=3)
    assert p == "Answer from [3] sources"


def test_prompt_render_overrides_without_mutating():
    """Test render() tokens override stored tokens for that call only."""
    p = Prompt("Model: {model}", model="glm-4")

    assert p.render(model="gpt-4o-mini") == "Model: gpt-4o-mini"
    assert p.render() == "Model: glm-4"


def test_prompt_token_values_are_not_reformatted():
    """Test braces inside a token value survive rendering."""
    p = Prompt("[1] {context}")
    rendered = p.render(context='config = {"key": "{value}"}')
    assert rendered == '[1] config = {"key": "{value}"}'
