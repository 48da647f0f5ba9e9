class TokenDict(dict):
    """Dict where missing keys render back as their ``{key}`` placeholder."""

    def __missing__(self, key):
        return f"{{{key}}}"


class Prompt(str):
    """
    A prompt template string whose ``{token}`` placeholders are rendered on use.

    Usage:
        Prompt("Answer from [{count}] sources", count=3) -> "Answer from [3] sources"

    Token values are substituted verbatim, so retrieved document text containing
    braces can be passed as a token without being re-interpreted.
    """

    _tokens: dict[str, object]

    def __new__(cls, text: str, /, **tokens):
        obj = super().__new__(cls, text)
        obj._tokens = dict(tokens)
        return obj

    def render(self, **extra_tokens) -> str:
        tokens = {**self._tokens, **extra_tokens}
        return super().__str__().format_map(TokenDict(tokens))

    def __str__(self) -> str:
        return self.render()

    def __eq__(self, other):
        if isinstance(other, str):
            return str(self) == other
        return super().__eq__(other)

    __hash__ = str.__hash__
