"""
Tests for the lexer and the token cursor.
"""

from strand import Lexer, LexicalError, TT, TokenCursor


def make_tokens(code):
    tokens, error = Lexer("<test>", code).make_tokens()
    assert error is None, error
    return tokens


def kinds(code):
    return [tok.type for tok in make_tokens(code)]


class TestTokenKinds:
    def test_keywords_and_identifiers(self):
        assert kinds("VAR x PRINT IF ELSE WHILE print") == [
            TT.VAR, TT.IDENTIFIER, TT.PRINT, TT.IF, TT.ELSE, TT.WHILE, TT.IDENTIFIER, TT.EOF,
        ]

    def test_operators(self):
        assert kinds("= == ! != < <= > >= ? + - / %") == [
            TT.ASSIGN, TT.EQ, TT.NOT, TT.NEQ, TT.LT, TT.LE, TT.GT, TT.GE,
            TT.QUESTION, TT.PLUS, TT.MINUS, TT.SLASH, TT.PERCENT, TT.EOF,
        ]

    def test_delimiters_and_newlines(self):
        assert kinds("({})\n") == [
            TT.LPAREN, TT.LBRACE, TT.RBRACE, TT.RPAREN, TT.NEWLINE, TT.EOF,
        ]

    def test_operators_without_spaces(self):
        assert kinds('x="a"+y') == [
            TT.IDENTIFIER, TT.ASSIGN, TT.STRING_LITERAL, TT.PLUS, TT.IDENTIFIER, TT.EOF,
        ]

    def test_identifier_with_digits_and_underscore(self):
        tokens = make_tokens("_name2")
        assert tokens[0].type == TT.IDENTIFIER
        assert tokens[0].value == "_name2"

    def test_comment_is_skipped_but_newline_kept(self):
        assert kinds("PRINT x # trailing words\nPRINT y") == [
            TT.PRINT, TT.IDENTIFIER, TT.NEWLINE, TT.PRINT, TT.IDENTIFIER, TT.EOF,
        ]


class TestStringLiterals:
    def test_lexeme_keeps_quotes(self):
        tokens = make_tokens("\"hello world\" 'single'")
        assert tokens[0].value == '"hello world"'
        assert tokens[1].value == "'single'"

    def test_other_quote_inside_literal(self):
        tokens = make_tokens("\"it's\"")
        assert tokens[0].type == TT.STRING_LITERAL
        assert tokens[0].value == "\"it's\""

    def test_backslash_is_not_an_escape(self):
        tokens = make_tokens(r'"a\n"')
        assert tokens[0].value == r'"a\n"'

    def test_unterminated_literal(self):
        tokens, error = Lexer("<test>", 'VAR x = "abc\nPRINT x').make_tokens()
        assert tokens == []
        assert isinstance(error, LexicalError)
        assert error.line == 1
        assert "Unterminated" in error.details

    def test_unexpected_character(self):
        _, error = Lexer("<test>", "VAR x = \"a\"\nx * y").make_tokens()
        assert isinstance(error, LexicalError)
        assert error.line == 2
        assert error.as_diagnostic() == "ERROR (line 2): Unexpected character '*'"


class TestLineNumbers:
    def test_tokens_carry_source_line(self):
        tokens = make_tokens("VAR a = \"1\"\n\nPRINT a")
        print_tok = [tok for tok in tokens if tok.type == TT.PRINT][0]
        assert tokens[0].line == 1
        assert print_tok.line == 3


class TestTokenCursor:
    def test_peek_and_advance(self):
        tokens = make_tokens("a + b")
        cursor = TokenCursor(tokens)
        assert cursor.peek(2).value == "b"
        assert cursor.advance().value == "a"
        assert cursor.current_tok.type == TT.PLUS

    def test_sub_range_reports_eof_at_boundary(self):
        tokens = make_tokens("a + b\nc")
        cursor = TokenCursor(tokens, 0, 3)
        cursor.advance()
        cursor.advance()
        cursor.advance()
        assert cursor.at_end()
        assert cursor.current_tok.type == TT.EOF
        assert cursor.current_tok.line == 1
        assert cursor.advance().type == TT.EOF

    def test_skip_block_stops_on_matching_brace(self):
        tokens = make_tokens("{ a { b } c } d")
        cursor = TokenCursor(tokens, 1)
        assert cursor.skip_block()
        assert cursor.current_tok.type == TT.RBRACE
        assert cursor.peek(1).value == "d"

    def test_skip_block_runs_out_of_tokens(self):
        tokens = make_tokens("{ a { b }")
        cursor = TokenCursor(tokens, 1)
        assert not cursor.skip_block()

    def test_skip_statement_spans_nested_braces(self):
        tokens = make_tokens("WHILE (a) {\nPRINT a\n}\nPRINT b")
        cursor = TokenCursor(tokens)
        assert cursor.skip_statement()
        assert cursor.current_tok.type == TT.NEWLINE
        assert cursor.peek(1).type == TT.PRINT
        assert cursor.peek(2).value == "b"

    def test_skip_statement_leaves_enclosing_brace(self):
        tokens = make_tokens("PRINT a }")
        cursor = TokenCursor(tokens)
        assert cursor.skip_statement()
        assert cursor.current_tok.type == TT.RBRACE
